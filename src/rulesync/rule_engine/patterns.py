"""Glob matching for rule files and dependency manifests."""

from __future__ import annotations

import posixpath
from collections.abc import Iterable
from functools import lru_cache

import pathspec

# IDE / agent rule configs and written coding standards, relative to the repository root.
RULE_FILE_PATTERNS: tuple[str, ...] = (
    ".cursorrules",
    ".cursor/rules/**",
    ".windsurfrules",
    ".windsurf/rules/**",
    ".clinerules",
    ".clinerules/**",
    ".roo/rules/**",
    ".github/copilot-instructions.md",
    ".github/instructions/**/*.instructions.md",
    ".github/pull_request_template.md",
    ".claude/rules/**",
    "CLAUDE.md",
    "AGENTS.md",
    "GEMINI.md",
    "CONVENTIONS.md",
    "CONTRIBUTING.md",
    ".kody/rules/**",
    ".rules/**",
    "docs/coding-standards/**",
)

MANIFEST_FILE_PATTERNS: tuple[str, ...] = (
    # JavaScript / TypeScript
    "package.json",
    "pnpm-workspace.yaml",
    "pnpm-lock.yaml",
    "yarn.lock",
    "package-lock.json",
    # Python
    "requirements.txt",
    "pyproject.toml",
    "poetry.lock",
    "Pipfile",
    "Pipfile.lock",
    # Go / Rust
    "go.mod",
    "Cargo.toml",
    # Java / Kotlin
    "pom.xml",
    "build.gradle",
    "build.gradle.kts",
    "settings.gradle",
    "settings.gradle.kts",
    "gradle.lockfile",
    "gradle/libs.versions.toml",
    # .NET
    "**/*.csproj",
    "**/*.fsproj",
    "packages.config",
    "Directory.Packages.props",
    "global.json",
    # Ruby
    "Gemfile",
    "Gemfile.lock",
    "**/*.gemspec",
    # Elixir
    "mix.exs",
    "mix.lock",
)


def normalize_path(path: str | None) -> str:
    """Repository-relative POSIX form: forward slashes, no leading './' or '/'."""
    normalized = (path or "").replace("\\", "/")
    while normalized.startswith("./"):
        normalized = normalized[2:]
    return normalized.lstrip("/")


def _anchor(pattern: str) -> str:
    # gitignore syntax floats slash-less patterns to any depth; rule patterns are root-relative.
    pattern = normalize_path(pattern)
    if pattern.startswith("**/"):
        return pattern
    return "/" + pattern


@lru_cache(maxsize=256)
def _compile(patterns: tuple[str, ...]) -> pathspec.GitIgnoreSpec:
    return pathspec.GitIgnoreSpec.from_lines([_anchor(p) for p in patterns if p])


def matches(path: str | None, patterns: Iterable[str]) -> bool:
    """True iff any pattern matches ``path`` (case-sensitive)."""
    normalized = normalize_path(path)
    pattern_set = tuple(sorted(set(patterns)))
    if not normalized or not pattern_set:
        return False
    return _compile(pattern_set).match_file(normalized)


def matches_case_insensitive(path: str | None, patterns: Iterable[str]) -> bool:
    """Like :func:`matches`, ignoring case on both sides."""
    return matches((path or "").lower(), (p.lower() for p in patterns))


def directory_patterns(
    directories: Iterable[str],
    base_patterns: Iterable[str] = RULE_FILE_PATTERNS,
) -> list[str]:
    """Re-root every base pattern under each configured directory."""
    base = list(base_patterns)
    result: list[str] = []
    for directory in directories:
        root = normalize_path(directory)
        if not root:
            continue
        result.extend(posixpath.join(root, p) for p in base)
    return result
