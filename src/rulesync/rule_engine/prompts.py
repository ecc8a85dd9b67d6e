"""Prompt builders for converting rule files and manifests into review rules."""

from __future__ import annotations

from collections.abc import Sequence

from rulesync.llm.models import PromptMessage, PromptRole
from rulesync.rule_engine.models import FileCandidate

_RULE_SHAPE = (
    '{"title": string, "rule": string, "path": string, "sourcePath": string, '
    '"severity": "low"|"medium"|"high"|"critical", "scope"?: "file"|"pull-request", '
    '"status"?: "active"|"pending"|"rejected"|"deleted", '
    '"examples": [{"snippet": string, "isCorrect": boolean}], "sourceSnippet"?: string}'
)

_SEVERITY_GUIDE = (
    'Severity: must/required/security/blocker -> "high" or "critical"; '
    'should/warn -> "medium"; tip/info/optional -> "low".'
)

_SCOPE_GUIDE = (
    'Scope: "file" for code or file content; "pull-request" for PR titles, '
    "descriptions, commits, reviewers or labels."
)

_ENGLISH_ONLY = (
    "Always write the rule text in English, even when the source is in another language."
)

_NO_EXTRA_KEYS = "Do not include repositoryId, origin, uuid, timestamps or any other extra keys."

MANIFEST_NAMES_HINT = (
    "package.json, requirements.txt, pyproject.toml, go.mod, Cargo.toml, pom.xml, "
    "build.gradle(.kts), *.csproj, Gemfile, mix.exs"
)


def file_to_rules_system_prompt() -> str:
    return " ".join(
        [
            "Convert a repository rule file (editor or agent rules, coding standards, "
            "contribution guides) into review rules.",
            "Emit exactly one rule for the file: when several candidate rules exist, merge "
            "them into one comprehensive rule that keeps every essential detail.",
            'Output only a JSON object {"rules": [...]}; output {"rules": []} when the file '
            "imposes no requirement. No comments or explanations.",
            f"Each item must match exactly: {_RULE_SHAPE}",
            "Extract a rule only when the text imposes a requirement, restriction, "
            "convention or standard.",
            _SEVERITY_GUIDE,
            _SCOPE_GUIDE,
            'Status: "active".',
            'path is the target glob: use globs declared by the file (frontmatter "globs:" '
            'or explicit sections); otherwise "**/*". Join several globs with commas.',
            "sourcePath is always the exact input file path.",
            "sourceSnippet, when possible, is a verbatim copy of the line or paragraph "
            "that produced the rule; omit it otherwise.",
            "The rule field must be self-contained: list every prohibited and recommended "
            "pattern, keep method names, class names, code snippets and setup steps, and "
            "use markdown lists or code blocks. Do not summarise.",
            "Examples: prefer one incorrect and one correct minimal snippet.",
            _ENGLISH_ONLY,
            _NO_EXTRA_KEYS,
        ]
    )


def file_to_rules_fallback_prompt() -> str:
    return (
        "Return ONLY a JSON array of rules, without code fences. Each rule has title, rule, "
        'path, sourcePath, severity ("low"|"medium"|"high"|"critical"), optional scope, '
        'examples [{"snippet", "isCorrect"}] and, when you can copy an exact excerpt, '
        f"sourceSnippet. {_ENGLISH_ONLY} No explanations."
    )


def file_user_prompt(file_path: str, content: str) -> str:
    return f"File: {file_path}\n\nContent:\n{content}"


def batch_system_prompt(cap: int) -> str:
    return " ".join(
        [
            "You will receive several repository rule files. Return ONLY a JSON object "
            f'{{"rules": [...]}} (no code fences) with at most {cap} of the most important '
            "rules across all files, ranked by impact: critical or high severity, "
            "security and compliance, then breadth of applicability. "
            'Return {"rules": []} when there are none.',
            "Each rule must include title, rule, path, sourcePath, severity, optional scope, "
            "examples and optional sourceSnippet.",
            "Merge the candidate rules of each file into one, then keep only the top rules overall.",
            "sourcePath must be the input file path; use it for path too unless the file "
            "declares specific globs.",
            "Skip files without rules; never emit placeholders.",
            f"For dependency manifests ({MANIFEST_NAMES_HINT}) infer high-impact rules for "
            "that stack (security, auth, logging, testing, linting, secrets).",
            _SEVERITY_GUIDE,
            _SCOPE_GUIDE,
            _ENGLISH_ONLY,
            _NO_EXTRA_KEYS,
        ]
    )


def batch_fallback_prompt(cap: int) -> str:
    return " ".join(
        [
            f'Return ONLY a JSON object {{"rules": [...]}} (no code fences, no text), at most {cap} rules.',
            "Each rule has title, rule, path, sourcePath, severity, optional scope, "
            "examples and optional sourceSnippet.",
            _ENGLISH_ONLY,
            _NO_EXTRA_KEYS,
        ]
    )


def manifest_system_prompt(cap: int) -> str:
    return " ".join(
        [
            "You will receive dependency manifests and lockfiles. They contain no rule text: "
            "infer the stack from the declared dependencies and frameworks.",
            f'Return ONLY a JSON object {{"rules": [...]}} (no code fences) with at most {cap} '
            "high-impact, actionable rules for code and configuration in that stack: "
            "security and auth, secrets handling, logging and observability, testing, "
            "linting and type checking, dependency hygiene. Avoid generic style nits.",
            "Do not propose rules that depend on CI/CD, bots, or pinning specific library "
            "versions or patches.",
            "Each rule has title, rule, path (the manifest path or a derived glob), severity, "
            "optional scope and examples.",
            _SEVERITY_GUIDE,
            _ENGLISH_ONLY,
            _NO_EXTRA_KEYS,
        ]
    )


def manifest_fallback_prompt(cap: int) -> str:
    return " ".join(
        [
            f'Return ONLY a JSON object {{"rules": [...]}} (no code fences, no text), at most {cap} rules.',
            "Rules must be high-impact and actionable in code or config for the stack these "
            "manifests describe (security, secrets, logging, testing, dependency hygiene).",
            "Each rule has title, rule, path, severity, optional scope and examples.",
            _ENGLISH_ONLY,
            _NO_EXTRA_KEYS,
        ]
    )


def render_files(files: Sequence[FileCandidate]) -> str:
    return "\n\n".join(
        f"### FILE: {f.path}\n<content>\n{f.content}\n</content>" for f in files
    )


def batch_user_prompt(repository_id: str, files: Sequence[FileCandidate]) -> str:
    return f"Repository: {repository_id}\nFiles:\n\n{render_files(files)}"


def manifest_user_prompt(repository_id: str, files: Sequence[FileCandidate]) -> str:
    return f"Repository: {repository_id}\nManifests:\n\n{render_files(files)}"


def messages(system: str, user: str) -> list[PromptMessage]:
    return [
        PromptMessage(role=PromptRole.SYSTEM, content=system),
        PromptMessage(role=PromptRole.USER, content=user),
    ]
