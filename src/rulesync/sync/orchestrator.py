"""Rules sync workflows: incremental PR sync, full repository sync and fast onboarding.

All three workflows contain their failures. Errors are logged (or, for the
fast onboarding path, reported in the result) per file and per pass; nothing
here raises to the caller.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Any

from rulesync.config import SyncConfig, clamp_concurrency
from rulesync.platforms.base import (
    PlatformAdapter,
    extract_refs_from_pull_request,
    supports,
)
from rulesync.platforms.models import FileListing, PlatformCapability, PullRequestRefs
from rulesync.rule_engine.directories import DirectoryResolver
from rulesync.rule_engine.extraction import RuleExtractionEngine
from rulesync.rule_engine.markers import should_force_sync, should_ignore
from rulesync.rule_engine.models import (
    GLOBAL_REPOSITORY_ID,
    ChangedFile,
    FastSyncResult,
    FileCandidate,
    FileStatus,
    OrganizationContext,
    RepositoryRef,
    Rule,
    RuleCandidate,
    RuleOrigin,
    RuleStatus,
    RuleUpsert,
    SkippedFile,
    SyncError,
    SyncTarget,
    UserInfo,
)
from rulesync.rule_engine.patterns import (
    MANIFEST_FILE_PATTERNS,
    RULE_FILE_PATTERNS,
    directory_patterns,
    matches,
)
from rulesync.rule_engine.review_config import RepositoryReviewConfig, ReviewConfigStore
from rulesync.rule_engine.store import RuleStore
from rulesync.sync.content import ContentFetcher
from rulesync.sync.pool import run_bounded

logger = logging.getLogger(__name__)


class _DefaultBranch:
    """Default branch looked up at most once per pass."""

    def __init__(
        self,
        platform: PlatformAdapter,
        organization: OrganizationContext,
        repository: RepositoryRef,
    ) -> None:
        self._platform = platform
        self._organization = organization
        self._repository = repository
        self._loaded = False
        self._value: str | None = None

    async def get(self) -> str | None:
        if not self._loaded:
            self._loaded = True
            if not supports(self._platform, PlatformCapability.DEFAULT_BRANCH):
                return None
            try:
                self._value = await self._platform.get_default_branch(
                    self._organization, self._repository
                )
            except Exception as e:
                logger.warning(
                    "Failed to resolve default branch for repository %s: %s",
                    self._repository.id,
                    e,
                )
        return self._value


class RulesSyncService:
    def __init__(
        self,
        *,
        platform: PlatformAdapter,
        rule_store: RuleStore,
        review_config: ReviewConfigStore,
        extraction: RuleExtractionEngine,
        config: SyncConfig | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._platform = platform
        self._rule_store = rule_store
        self._review_config = review_config
        self._extraction = extraction
        self._config = config or SyncConfig()
        self._content = ContentFetcher(
            platform,
            attempts=self._config.content_fetch_attempts,
            backoff_seconds=self._config.content_fetch_backoff_seconds,
            sleep=sleep,
        )
        self._system_user = UserInfo(
            user_id=self._config.system_user_id,
            user_email=self._config.system_user_email,
        )

    # --- Incremental sync from a pull request ---

    async def sync_from_changed_files(
        self,
        organization: OrganizationContext,
        repository: RepositoryRef,
        pull_request_number: int,
        files: Sequence[ChangedFile],
    ) -> None:
        try:
            repo_config = await self._load_review_config(organization, repository.id)
            patterns = self._rule_patterns(repo_config)
            rule_changes = [
                f
                for f in files
                if matches(f.filename, patterns)
                or (f.previous_filename and matches(f.previous_filename, patterns))
            ]
            if not rule_changes:
                logger.debug("No rule files among %d changed files", len(files))
                return

            refs = await self._pull_request_refs(organization, repository, pull_request_number)
            default_branch = _DefaultBranch(self._platform, organization, repository)
            contents: dict[str, str | None] = {}

            if not self._is_sync_enabled(repo_config):
                forced: list[ChangedFile] = []
                for f in rule_changes:
                    if f.status == FileStatus.REMOVED:
                        continue
                    content = await self._fetch_changed_file(
                        organization, repository, f.filename, refs, default_branch
                    )
                    contents[f.filename] = content
                    if content and should_force_sync(content):
                        logger.info("File %s marked for force sync", f.filename)
                        forced.append(f)
                if not forced:
                    logger.info(
                        "Rules sync disabled for repository %s and no file forces sync",
                        repository.id,
                    )
                    return
                rule_changes = forced

            resolver = DirectoryResolver(self._review_config, organization, repository.id)
            for f in rule_changes:
                try:
                    await self._sync_changed_file(
                        organization, repository, f, refs, default_branch, contents, resolver
                    )
                except Exception:
                    logger.exception(
                        "Failed to sync changed rule file %s (repository %s, PR #%s)",
                        f.filename,
                        repository.id,
                        pull_request_number,
                    )
        except Exception:
            logger.exception(
                "Rules sync from changed files failed for repository %s (PR #%s)",
                repository.id,
                pull_request_number,
            )

    async def _sync_changed_file(
        self,
        organization: OrganizationContext,
        repository: RepositoryRef,
        f: ChangedFile,
        refs: PullRequestRefs,
        default_branch: _DefaultBranch,
        contents: dict[str, str | None],
        resolver: DirectoryResolver,
    ) -> None:
        if f.status == FileStatus.REMOVED:
            await self._delete_rule_by_source_path(organization, repository.id, f.filename)
            return

        if f.filename in contents:
            content = contents[f.filename]
        else:
            content = await self._fetch_changed_file(
                organization, repository, f.filename, refs, default_branch
            )
        if not content:
            logger.warning("No content for changed rule file %s on any ref", f.filename)
            return

        lookup_path = (
            f.previous_filename
            if f.status == FileStatus.RENAMED and f.previous_filename
            else f.filename
        )
        await self._sync_content(
            organization, repository, f.filename, content, resolver, lookup_path=lookup_path
        )

    async def _fetch_changed_file(
        self,
        organization: OrganizationContext,
        repository: RepositoryRef,
        filename: str,
        refs: PullRequestRefs,
        default_branch: _DefaultBranch,
    ) -> str | None:
        # head, then base, then default branch: the head branch may be gone after merge
        content = await self._content.fetch_first(
            organization, repository, filename, [refs.head, refs.base]
        )
        if content:
            return content
        branch = await default_branch.get()
        if not branch or branch in (refs.head, refs.base):
            return None
        return await self._content.fetch(organization, repository, filename, branch)

    # --- Full repository sync ---

    async def sync_repository_main(self, target: SyncTarget) -> None:
        organization, repository = target.organization, target.repository
        try:
            repo_config = await self._load_review_config(organization, repository.id)
            sync_enabled = self._is_sync_enabled(repo_config)
            branch = await self._platform.get_default_branch(organization, repository)
            listings = await self._platform.get_repository_all_files(
                organization,
                repository,
                branch=branch,
                file_patterns=self._rule_patterns(repo_config),
            )

            contents: dict[str, str | None] = {}
            if not sync_enabled:
                forced: list[FileListing] = []
                for listing in listings:
                    content = await self._content.fetch(
                        organization, repository, listing.path, branch
                    )
                    contents[listing.path] = content
                    if content and should_force_sync(content):
                        logger.info("File %s marked for force sync", listing.path)
                        forced.append(listing)
                if not forced:
                    logger.info(
                        "Rules sync disabled for repository %s and no file forces sync",
                        repository.id,
                    )
                    return
                listings = forced

            resolver = DirectoryResolver(self._review_config, organization, repository.id)
            for listing in listings:
                try:
                    if listing.path in contents:
                        content = contents[listing.path]
                    else:
                        content = await self._content.fetch(
                            organization, repository, listing.path, branch
                        )
                    if not content:
                        continue
                    await self._sync_content(
                        organization, repository, listing.path, content, resolver
                    )
                except Exception:
                    logger.exception(
                        "Failed to sync rule file %s (repository %s)",
                        listing.path,
                        repository.id,
                    )
        except Exception:
            logger.exception("Repository rules sync failed for repository %s", repository.id)

    # --- Shared per-file flow ---

    async def _sync_content(
        self,
        organization: OrganizationContext,
        repository: RepositoryRef,
        file_path: str,
        content: str,
        resolver: DirectoryResolver,
        *,
        lookup_path: str | None = None,
    ) -> Rule | None:
        lookup_path = lookup_path or file_path

        if should_ignore(content):
            logger.info("File %s carries the ignore marker, removing its rule", file_path)
            for path in dict.fromkeys([file_path, lookup_path]):
                await self._delete_rule_by_source_path(organization, repository.id, path)
            return None

        candidates = await self._extraction.convert_file_to_rules(
            file_path, repository.id, content, organization
        )
        rule = _first_usable(candidates)
        if rule is None:
            logger.warning("No usable rule extracted from %s", file_path)
            return None

        existing = await self._find_rule_by_source_path(organization, repository.id, lookup_path)
        directory = await resolver.resolve_directory_for_file(file_path)
        dto = RuleUpsert(
            uuid=existing.uuid if existing else None,
            title=rule.title,
            rule=rule.rule,
            path=rule.path or file_path,
            source_path=file_path,
            severity=rule.severity,
            scope=rule.scope,
            status=rule.status,
            origin=RuleOrigin.USER,
            repository_id=repository.id,
            directory_id=directory.id if directory else None,
            examples=rule.examples,
            source_snippet=rule.source_snippet,
        )

        try:
            result = await self._rule_store.create_or_update(organization, dto, self._system_user)
        except Exception:
            logger.exception(
                "Failed to persist rule for %s (repository %s)", file_path, repository.id
            )
            return None

        logger.info(
            "Synced rule %s from %s (repository %s)",
            _get_rule_id(result),
            file_path,
            repository.id,
        )
        await self._touch_review_config(organization, repository.id)
        return result

    # --- Fast onboarding sync ---

    async def sync_repository_main_fast(
        self,
        target: SyncTarget,
        *,
        max_files: int | None = None,
        max_file_size_bytes: int | None = None,
        max_total_bytes: int | None = None,
        max_concurrent: int | None = None,
    ) -> FastSyncResult:
        """Batch-convert a repository's rule files into pending onboarding rules.

        Files are capped by count, per-file size and aggregate size using
        listing metadata before any content is fetched. When too few rule
        files survive, dependency manifests are converted instead.
        """
        organization, repository = target.organization, target.repository
        caps = _FastCaps(
            max_files=self._config.max_files if max_files is None else max_files,
            max_file_size_bytes=(
                self._config.max_file_size_bytes
                if max_file_size_bytes is None
                else max_file_size_bytes
            ),
            max_total_bytes=(
                self._config.max_total_bytes if max_total_bytes is None else max_total_bytes
            ),
            concurrency=clamp_concurrency(
                self._config.max_concurrent if max_concurrent is None else max_concurrent
            ),
        )
        result = FastSyncResult()

        try:
            branch = await self._platform.get_default_branch(organization, repository)
            repo_config = await self._load_review_config(organization, repository.id)
            listings = await self._platform.get_repository_all_files(
                organization,
                repository,
                branch=branch,
                file_patterns=self._rule_patterns(repo_config),
            )

            resolver = DirectoryResolver(self._review_config, organization, repository.id)
            candidates = await self._collect_candidates(
                organization, repository, branch, listings, caps, result, resolver
            )

            manifest_mode = False
            if len(candidates) <= self._config.manifest_fallback_threshold:
                manifest_listings = await self._platform.get_repository_all_files(
                    organization,
                    repository,
                    branch=branch,
                    file_patterns=MANIFEST_FILE_PATTERNS,
                    max_files=caps.max_files,
                )
                manifest_candidates = await self._collect_candidates(
                    organization, repository, branch, manifest_listings, caps, result, None
                )
                if manifest_candidates:
                    logger.info(
                        "Only %d rule files in repository %s, converting %d manifests instead",
                        len(candidates),
                        repository.id,
                        len(manifest_candidates),
                    )
                    candidates = manifest_candidates
                    manifest_mode = True

            if not candidates:
                return result

            if manifest_mode:
                rules = await self._extraction.convert_manifests_to_rules_fast_batch(
                    candidates, repository.id, organization
                )
            else:
                rules = await self._extraction.convert_files_to_rules_fast_batch(
                    candidates, repository.id, organization
                )

            directory_by_path = {c.path: c.directory_id for c in candidates}
            for rule in rules:
                if not rule.is_usable:
                    continue
                await self._persist_onboarding_rule(organization, rule, directory_by_path, result)
        except Exception as e:
            logger.exception("Fast rules sync failed for repository %s", repository.id)
            result.errors.append(SyncError(message=str(e) or "unexpected error"))

        return result

    async def _collect_candidates(
        self,
        organization: OrganizationContext,
        repository: RepositoryRef,
        branch: str,
        listings: Sequence[FileListing],
        caps: _FastCaps,
        result: FastSyncResult,
        resolver: DirectoryResolver | None,
    ) -> list[FileCandidate]:
        selected = _apply_metadata_caps(listings, caps, result.skipped_files)
        if not selected:
            return []

        async def load(path: str) -> FileCandidate | None:
            try:
                content = await self._content.fetch(organization, repository, path, branch)
                if not content:
                    result.skipped_files.append(SkippedFile(file=path, reason="empty content"))
                    return None
                if len(content.encode("utf-8")) > caps.max_file_size_bytes:
                    result.skipped_files.append(SkippedFile(file=path, reason="file too large"))
                    return None
                if should_ignore(content):
                    result.skipped_files.append(
                        SkippedFile(file=path, reason="ignored via @kody-ignore")
                    )
                    return None
                directory = await resolver.resolve_directory_for_file(path) if resolver else None
                return FileCandidate(
                    path=path,
                    content=content,
                    directory_id=directory.id if directory else None,
                )
            except Exception as e:
                logger.warning("Failed to load %s for fast sync: %s", path, e)
                result.errors.append(SyncError(file=path, message=str(e) or "unexpected error"))
                return None

        loaded = await run_bounded(selected, load, caps.concurrency)
        return [c for c in loaded if c is not None]

    async def _persist_onboarding_rule(
        self,
        organization: OrganizationContext,
        rule: RuleCandidate,
        directory_by_path: dict[str, str | None],
        result: FastSyncResult,
    ) -> None:
        source_path = rule.source_path or rule.path
        dto = RuleUpsert(
            title=rule.title,
            rule=rule.rule,
            path=rule.path or source_path,
            source_path=source_path,
            severity=rule.severity,
            scope=rule.scope,
            status=rule.status or RuleStatus.PENDING,
            origin=RuleOrigin.USER,
            repository_id=GLOBAL_REPOSITORY_ID,
            directory_id=directory_by_path.get(source_path),
            examples=rule.examples,
            source_snippet=rule.source_snippet,
        )
        try:
            created = await self._rule_store.create_or_update(organization, dto, self._system_user)
        except Exception as e:
            logger.exception("Failed to save onboarding rule from %s", source_path)
            result.errors.append(
                SyncError(file=source_path, message=str(e) or "failed to save rule")
            )
            return
        result.rules.append(created)

    # --- Helpers ---

    async def _load_review_config(
        self, organization: OrganizationContext, repository_id: str
    ) -> RepositoryReviewConfig | None:
        try:
            return await self._review_config.get_repository_config(organization, repository_id)
        except Exception as e:
            logger.warning("Failed to load review config for repository %s: %s", repository_id, e)
            return None

    @staticmethod
    def _is_sync_enabled(repo_config: RepositoryReviewConfig | None) -> bool:
        return bool(repo_config and repo_config.ide_rules_sync_enabled)

    @staticmethod
    def _rule_patterns(repo_config: RepositoryReviewConfig | None) -> list[str]:
        directories = [d.path for d in repo_config.directories] if repo_config else []
        return [*RULE_FILE_PATTERNS, *directory_patterns(directories)]

    async def _pull_request_refs(
        self,
        organization: OrganizationContext,
        repository: RepositoryRef,
        pull_request_number: int,
    ) -> PullRequestRefs:
        if not supports(self._platform, PlatformCapability.PULL_REQUESTS):
            logger.warning(
                "Platform %s cannot read pull requests; using the default branch only",
                getattr(self._platform, "kind", "unknown"),
            )
            return PullRequestRefs()
        try:
            pr = await self._platform.get_pull_request_by_number(
                organization, repository, pull_request_number
            )
        except Exception as e:
            logger.warning("Failed to load PR #%s metadata: %s", pull_request_number, e)
            return PullRequestRefs()
        return extract_refs_from_pull_request(pr)

    async def _find_rule_by_source_path(
        self, organization: OrganizationContext, repository_id: str, source_path: str
    ) -> Rule | None:
        try:
            rule_set = await self._rule_store.find_by_organization_id(organization.organization_id)
        except Exception as e:
            logger.warning("Failed to look up rules for %s: %s", source_path, e)
            return None
        if rule_set is None:
            return None
        return next(
            (
                r
                for r in rule_set.rules
                if r.repository_id == repository_id
                and r.source_path == source_path
                and r.status != RuleStatus.DELETED
            ),
            None,
        )

    async def _delete_rule_by_source_path(
        self, organization: OrganizationContext, repository_id: str, source_path: str
    ) -> None:
        try:
            rule_set = await self._rule_store.find_by_organization_id(organization.organization_id)
            if rule_set is None:
                return
            for rule in rule_set.rules:
                if (
                    rule.repository_id == repository_id
                    and rule.status != RuleStatus.DELETED
                    and rule.source_path.split("#")[0] == source_path
                ):
                    await self._rule_store.delete_rule_logically(rule_set.uuid, rule.uuid)
                    logger.info("Soft-deleted rule %s for %s", rule.uuid, source_path)
        except Exception:
            logger.exception(
                "Failed to delete rule for %s (repository %s)", source_path, repository_id
            )

    async def _touch_review_config(
        self, organization: OrganizationContext, repository_id: str
    ) -> None:
        try:
            await self._review_config.update_or_create_parameter(
                organization, repository_id, {"kodyRules": []}
            )
        except Exception:
            logger.exception("Failed to touch review config for repository %s", repository_id)


@dataclass(frozen=True)
class _FastCaps:
    max_files: int
    max_file_size_bytes: int
    max_total_bytes: int
    concurrency: int


def _apply_metadata_caps(
    listings: Sequence[FileListing], caps: _FastCaps, skipped: list[SkippedFile]
) -> list[str]:
    """Select files by listing metadata alone; unknown sizes count as zero."""
    selected: list[str] = []
    total = 0
    for listing in listings:
        if len(selected) >= caps.max_files:
            skipped.append(SkippedFile(file=listing.path, reason="max files cap reached"))
            continue
        size = listing.size if listing.size is not None and listing.size >= 0 else 0
        if size > caps.max_file_size_bytes:
            skipped.append(SkippedFile(file=listing.path, reason="file too large (metadata)"))
            continue
        if total + size > caps.max_total_bytes:
            skipped.append(SkippedFile(file=listing.path, reason="max aggregate size reached"))
            continue
        selected.append(listing.path)
        total += size
    return selected


def _first_usable(candidates: Sequence[RuleCandidate]) -> RuleCandidate | None:
    return next((c for c in candidates if c.is_usable), None)


def _get_rule_id(result: Any) -> str | None:
    """Rule id from a store result, whichever of uuid, id or _id it carries."""
    if result is None:
        return None
    for key in ("uuid", "id", "_id"):
        value = result.get(key) if isinstance(result, dict) else getattr(result, key, None)
        if value:
            return str(value)
    return None
