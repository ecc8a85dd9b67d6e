"""Platform adapter contract, errors and helpers shared by every platform."""

from __future__ import annotations

import base64
import binascii
from collections.abc import Sequence
from typing import Any, Protocol

from rulesync.platforms.models import (
    FileContent,
    FileListing,
    PlatformCapability,
    PlatformKind,
    PullRequestRefs,
)
from rulesync.rule_engine.models import OrganizationContext, RepositoryRef


class PlatformError(RuntimeError):
    """A platform API call failed."""


class RateLimitedError(PlatformError):
    """The platform rejected a call because its rate limit is exhausted."""

    def __init__(self, message: str, retry_after: float | None = None) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class PlatformAdapter(Protocol):
    """What the sync workflows need from a source-control platform.

    Adapters advertise the operations they implement through ``capabilities``;
    callers check :func:`supports` instead of relying on stub methods that raise.
    """

    kind: PlatformKind
    capabilities: frozenset[PlatformCapability]

    async def get_repository_all_files(
        self,
        organization: OrganizationContext,
        repository: RepositoryRef,
        *,
        branch: str,
        file_patterns: Sequence[str],
        max_files: int | None = None,
    ) -> list[FileListing]: ...

    async def get_repository_content_file(
        self,
        organization: OrganizationContext,
        repository: RepositoryRef,
        *,
        filename: str,
        ref: str,
    ) -> FileContent | None: ...

    async def get_default_branch(
        self, organization: OrganizationContext, repository: RepositoryRef
    ) -> str: ...

    async def get_pull_request_by_number(
        self,
        organization: OrganizationContext,
        repository: RepositoryRef,
        pull_request_number: int,
    ) -> dict[str, Any] | None: ...


def supports(adapter: PlatformAdapter, capability: PlatformCapability) -> bool:
    return capability in getattr(adapter, "capabilities", frozenset())


def _dig(data: Any, *keys: str) -> Any:
    for key in keys:
        if not isinstance(data, dict):
            return None
        data = data.get(key)
    return data


def _strip_heads(ref: Any) -> str | None:
    if not isinstance(ref, str) or not ref:
        return None
    return ref.removeprefix("refs/heads/")


def extract_refs_from_pull_request(pr: dict[str, Any] | None) -> PullRequestRefs:
    """Read head/base branch names from any supported platform's PR payload."""
    if not isinstance(pr, dict):
        return PullRequestRefs()
    head = (
        _dig(pr, "head", "ref")  # GitHub
        or _dig(pr, "source", "branch", "name")  # Bitbucket Cloud
        or pr.get("sourceRefName")  # Azure DevOps
        or pr.get("source_branch")  # GitLab
        or _dig(pr, "fromRef", "displayId")  # Bitbucket Server
    )
    base = (
        _dig(pr, "base", "ref")
        or _dig(pr, "destination", "branch", "name")
        or pr.get("targetRefName")
        or pr.get("target_branch")
        or _dig(pr, "toRef", "displayId")
    )
    return PullRequestRefs(head=_strip_heads(head), base=_strip_heads(base))


def decode_content(file: FileContent | None) -> str | None:
    """Return the text of a fetched file, decoding base64 payloads."""
    if file is None or not file.content:
        return None
    if (file.encoding or "").lower() != "base64":
        return file.content
    try:
        raw = base64.b64decode(file.content)
    except (binascii.Error, ValueError) as e:
        raise PlatformError(f"Invalid base64 file content: {e}") from e
    return raw.decode("utf-8", errors="replace")
