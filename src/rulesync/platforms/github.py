"""GitHub REST adapter on httpx.AsyncClient."""

from __future__ import annotations

import logging
import os
from collections.abc import Sequence
from typing import Any
from urllib.parse import quote

import httpx

from rulesync.platforms.base import PlatformError, RateLimitedError
from rulesync.platforms.models import (
    FileContent,
    FileListing,
    PlatformCapability,
    PlatformKind,
)
from rulesync.rule_engine.models import OrganizationContext, RepositoryRef
from rulesync.rule_engine.patterns import matches

logger = logging.getLogger(__name__)

_DEFAULT_GITHUB_API = "https://api.github.com"


class GitHubAdapter:
    kind = PlatformKind.GITHUB
    capabilities = frozenset(
        {
            PlatformCapability.LIST_FILES,
            PlatformCapability.READ_FILE,
            PlatformCapability.DEFAULT_BRANCH,
            PlatformCapability.PULL_REQUESTS,
        }
    )

    def __init__(
        self,
        token: str | None = None,
        *,
        base_url: str = _DEFAULT_GITHUB_API,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._token = token if token is not None else os.environ.get("GITHUB_TOKEN")
        self._client = client or httpx.AsyncClient(
            base_url=base_url.rstrip("/"), timeout=timeout
        )

    async def close(self) -> None:
        await self._client.aclose()

    def _headers(self) -> dict[str, str]:
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    @staticmethod
    def _slug(repository: RepositoryRef) -> str:
        return repository.full_name or repository.name

    async def _get(self, path: str, params: dict[str, Any] | None = None) -> httpx.Response:
        try:
            resp = await self._client.get(path, params=params, headers=self._headers())
        except httpx.HTTPError as e:
            raise PlatformError(f"GitHub request {path} failed: {e}") from e

        if resp.status_code == 429 or (
            resp.status_code == 403 and resp.headers.get("x-ratelimit-remaining") == "0"
        ):
            retry_after = resp.headers.get("retry-after")
            raise RateLimitedError(
                f"GitHub rate limit hit on {path}",
                retry_after=float(retry_after) if retry_after and retry_after.isdigit() else None,
            )
        return resp

    @staticmethod
    def _raise_for_status(resp: httpx.Response, path: str) -> None:
        if resp.status_code >= 400:
            raise PlatformError(f"GitHub {path} returned {resp.status_code}: {resp.text[:200]}")

    async def get_repository_all_files(
        self,
        organization: OrganizationContext,
        repository: RepositoryRef,
        *,
        branch: str,
        file_patterns: Sequence[str],
        max_files: int | None = None,
    ) -> list[FileListing]:
        path = f"/repos/{self._slug(repository)}/git/trees/{quote(branch)}"
        resp = await self._get(path, params={"recursive": "1"})
        self._raise_for_status(resp, path)
        data = resp.json()
        if data.get("truncated"):
            logger.warning("Git tree for %s@%s was truncated", self._slug(repository), branch)

        patterns = list(file_patterns)
        listings: list[FileListing] = []
        for entry in data.get("tree", []):
            if entry.get("type") != "blob":
                continue
            if patterns and not matches(entry.get("path"), patterns):
                continue
            listings.append(
                FileListing(path=entry["path"], size=entry.get("size"), sha=entry.get("sha"))
            )
            if max_files is not None and len(listings) >= max_files:
                break
        return listings

    async def get_repository_content_file(
        self,
        organization: OrganizationContext,
        repository: RepositoryRef,
        *,
        filename: str,
        ref: str,
    ) -> FileContent | None:
        path = f"/repos/{self._slug(repository)}/contents/{quote(filename)}"
        resp = await self._get(path, params={"ref": ref})
        if resp.status_code == 404:
            return None
        self._raise_for_status(resp, path)
        data = resp.json()
        # A directory path answers with a listing.
        if not isinstance(data, dict) or data.get("content") is None:
            return None
        return FileContent(content=data["content"], encoding=data.get("encoding"))

    async def get_default_branch(
        self, organization: OrganizationContext, repository: RepositoryRef
    ) -> str:
        if repository.default_branch:
            return repository.default_branch
        path = f"/repos/{self._slug(repository)}"
        resp = await self._get(path)
        self._raise_for_status(resp, path)
        return resp.json().get("default_branch") or "main"

    async def get_pull_request_by_number(
        self,
        organization: OrganizationContext,
        repository: RepositoryRef,
        pull_request_number: int,
    ) -> dict[str, Any] | None:
        path = f"/repos/{self._slug(repository)}/pulls/{pull_request_number}"
        resp = await self._get(path)
        if resp.status_code == 404:
            return None
        self._raise_for_status(resp, path)
        return resp.json()
