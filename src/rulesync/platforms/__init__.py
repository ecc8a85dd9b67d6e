"""Source-control platform adapters."""

from rulesync.platforms.base import (
    PlatformAdapter,
    PlatformError,
    RateLimitedError,
    decode_content,
    extract_refs_from_pull_request,
    supports,
)
from rulesync.platforms.github import GitHubAdapter
from rulesync.platforms.models import (
    FileContent,
    FileListing,
    PlatformCapability,
    PlatformKind,
    PullRequestRefs,
)

__all__ = [
    "FileContent",
    "FileListing",
    "GitHubAdapter",
    "PlatformAdapter",
    "PlatformCapability",
    "PlatformError",
    "PlatformKind",
    "PullRequestRefs",
    "RateLimitedError",
    "decode_content",
    "extract_refs_from_pull_request",
    "supports",
]
