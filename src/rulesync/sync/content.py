"""File content fetching with rate-limit retry and a branch fallback chain."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable

from rulesync.platforms.base import (
    PlatformAdapter,
    PlatformError,
    RateLimitedError,
    decode_content,
)
from rulesync.rule_engine.models import OrganizationContext, RepositoryRef

logger = logging.getLogger(__name__)


class ContentFetcher:
    def __init__(
        self,
        adapter: PlatformAdapter,
        *,
        attempts: int = 3,
        backoff_seconds: float = 0.5,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._adapter = adapter
        self._attempts = max(attempts, 1)
        self._backoff = backoff_seconds
        self._sleep = sleep

    async def fetch(
        self,
        organization: OrganizationContext,
        repository: RepositoryRef,
        filename: str,
        ref: str,
    ) -> str | None:
        """Decoded content of ``filename`` at ``ref``, or None when unavailable.

        Rate-limited calls are retried with a delay that grows with each
        attempt, or the platform's ``retry_after`` when that is longer. Any
        other platform error gives up on this ref immediately.
        """
        for attempt in range(1, self._attempts + 1):
            try:
                file = await self._adapter.get_repository_content_file(
                    organization, repository, filename=filename, ref=ref
                )
                return decode_content(file)
            except RateLimitedError as e:
                if attempt >= self._attempts:
                    logger.warning(
                        "Rate limited fetching %s@%s after %d attempts: %s",
                        filename,
                        ref,
                        attempt,
                        e,
                    )
                    return None
                await self._sleep(max(e.retry_after or 0, self._backoff * attempt))
            except PlatformError as e:
                logger.warning("Failed to fetch %s@%s: %s", filename, ref, e)
                return None
        return None

    async def fetch_first(
        self,
        organization: OrganizationContext,
        repository: RepositoryRef,
        filename: str,
        refs: Iterable[str | None],
    ) -> str | None:
        """Try each ref in order and return the first non-empty content."""
        tried: set[str] = set()
        for ref in refs:
            if not ref or ref in tried:
                continue
            tried.add(ref)
            content = await self.fetch(organization, repository, filename, ref)
            if content:
                return content
            logger.debug("No content for %s at %s, trying next ref", filename, ref)
        return None
