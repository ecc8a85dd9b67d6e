"""Resolve which configured monorepo directory owns a repository file."""

from __future__ import annotations

import logging
import posixpath
from collections.abc import Iterable

from rulesync.rule_engine.models import ConfiguredDirectory, OrganizationContext
from rulesync.rule_engine.patterns import normalize_path
from rulesync.rule_engine.review_config import ReviewConfigStore

logger = logging.getLogger(__name__)


def normalize_directory(path: str | None) -> str:
    normalized = posixpath.normpath(normalize_path(path)) if path else ""
    return "" if normalized == "." else normalized


def owns(directory: str, file_path: str) -> bool:
    """Segment-boundary prefix test: 'apps/app' owns 'apps/app/x' but not 'apps/app1/x'."""
    return file_path == directory or file_path.startswith(directory + "/")


def select_directory(
    directories: Iterable[ConfiguredDirectory], file_path: str
) -> ConfiguredDirectory | None:
    """Pick the most specific (longest) configured directory that owns ``file_path``."""
    normalized_file = normalize_directory(file_path)
    best: ConfiguredDirectory | None = None
    best_len = -1
    for directory in directories:
        normalized_dir = normalize_directory(directory.path)
        if not normalized_dir or not owns(normalized_dir, normalized_file):
            continue
        if len(normalized_dir) > best_len:
            best = directory
            best_len = len(normalized_dir)
    return best


class DirectoryResolver:
    """Directory lookups for one sync pass.

    The configured directory list is loaded once and results are memoised by
    file path, so a resolver must not outlive the pass that created it.
    """

    def __init__(
        self,
        review_config: ReviewConfigStore,
        organization: OrganizationContext,
        repository_id: str,
    ) -> None:
        self._review_config = review_config
        self._organization = organization
        self._repository_id = repository_id
        self._directories: list[ConfiguredDirectory] | None = None
        self._cache: dict[str, ConfiguredDirectory | None] = {}

    async def directories(self) -> list[ConfiguredDirectory]:
        if self._directories is None:
            self._directories = await self._load()
        return self._directories

    async def _load(self) -> list[ConfiguredDirectory]:
        if not self._repository_id:
            return []
        try:
            cfg = await self._review_config.get_repository_config(
                self._organization, self._repository_id
            )
        except Exception as e:
            logger.warning(
                "Failed to load configured directories for repository %s: %s",
                self._repository_id,
                e,
            )
            return []
        if cfg is None:
            logger.warning(
                "No review configuration for repository %s; directory scoping disabled",
                self._repository_id,
            )
            return []
        return list(cfg.directories)

    async def resolve_directory_for_file(self, file_path: str) -> ConfiguredDirectory | None:
        if file_path in self._cache:
            return self._cache[file_path]
        directories = await self.directories()
        resolved = select_directory(directories, file_path) if directories else None
        self._cache[file_path] = resolved
        return resolved


async def resolve_directory_for_file(
    review_config: ReviewConfigStore,
    organization: OrganizationContext,
    repository_id: str,
    file_path: str,
) -> ConfiguredDirectory | None:
    """One-shot lookup outside a sync pass."""
    resolver = DirectoryResolver(review_config, organization, repository_id)
    return await resolver.resolve_directory_for_file(file_path)
