"""Tests for platforms/github.py: GitHub REST adapter over httpx."""

from __future__ import annotations

import base64
from collections.abc import Callable

import httpx
import pytest

from rulesync.rule_engine.models import OrganizationContext, RepositoryRef

ORG = OrganizationContext(organization_id="org-1")
REPO = RepositoryRef(id="1", name="web", full_name="acme/web")


def _adapter(handler: Callable[[httpx.Request], httpx.Response]):
    from rulesync.platforms.github import GitHubAdapter

    client = httpx.AsyncClient(
        base_url="https://api.github.test", transport=httpx.MockTransport(handler)
    )
    return GitHubAdapter(token="t0k", client=client)


class TestGitHubAdapter:
    def test_declares_all_capabilities(self):
        from rulesync.platforms.github import GitHubAdapter
        from rulesync.platforms.models import PlatformCapability, PlatformKind

        assert GitHubAdapter.kind == PlatformKind.GITHUB
        assert set(PlatformCapability) <= GitHubAdapter.capabilities

    @pytest.mark.asyncio
    async def test_lists_matching_blobs(self):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(
                200,
                json={
                    "tree": [
                        {"path": "AGENTS.md", "type": "blob", "size": 120, "sha": "a"},
                        {"path": ".cursor", "type": "tree"},
                        {"path": ".cursor/rules/api.md", "type": "blob", "size": 40, "sha": "b"},
                        {"path": "src/main.py", "type": "blob", "size": 10, "sha": "c"},
                    ],
                    "truncated": False,
                },
            )

        adapter = _adapter(handler)
        listings = await adapter.get_repository_all_files(
            ORG, REPO, branch="main", file_patterns=["AGENTS.md", ".cursor/rules/**"]
        )
        await adapter.close()

        assert [(f.path, f.size) for f in listings] == [
            ("AGENTS.md", 120),
            (".cursor/rules/api.md", 40),
        ]
        assert seen[0].url.path == "/repos/acme/web/git/trees/main"
        assert seen[0].url.params["recursive"] == "1"
        assert seen[0].headers["Authorization"] == "Bearer t0k"
        assert seen[0].headers["X-GitHub-Api-Version"] == "2022-11-28"

    @pytest.mark.asyncio
    async def test_listing_respects_max_files(self):
        def handler(request: httpx.Request) -> httpx.Response:
            tree = [{"path": f"{i}/package.json", "type": "blob", "size": 1} for i in range(5)]
            return httpx.Response(200, json={"tree": tree})

        adapter = _adapter(handler)
        listings = await adapter.get_repository_all_files(
            ORG, REPO, branch="main", file_patterns=["**/package.json"], max_files=2
        )
        await adapter.close()
        assert len(listings) == 2

    @pytest.mark.asyncio
    async def test_reads_file_content(self):
        encoded = base64.b64encode(b"# rules\n@kody-sync").decode()

        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/repos/acme/web/contents/.cursor/rules/api.md"
            assert request.url.params["ref"] == "feature/x"
            return httpx.Response(200, json={"content": encoded, "encoding": "base64"})

        adapter = _adapter(handler)
        file = await adapter.get_repository_content_file(
            ORG, REPO, filename=".cursor/rules/api.md", ref="feature/x"
        )
        await adapter.close()
        assert file.encoding == "base64"
        assert file.content == encoded

    @pytest.mark.asyncio
    async def test_missing_file_returns_none(self):
        adapter = _adapter(lambda request: httpx.Response(404, json={"message": "Not Found"}))
        assert (
            await adapter.get_repository_content_file(ORG, REPO, filename="AGENTS.md", ref="main")
            is None
        )
        await adapter.close()

    @pytest.mark.asyncio
    async def test_directory_path_returns_none(self):
        adapter = _adapter(lambda request: httpx.Response(200, json=[{"name": "a.md"}]))
        assert (
            await adapter.get_repository_content_file(ORG, REPO, filename=".cursor", ref="main")
            is None
        )
        await adapter.close()

    @pytest.mark.asyncio
    async def test_rate_limit_on_403(self):
        from rulesync.platforms.base import RateLimitedError

        adapter = _adapter(
            lambda request: httpx.Response(403, headers={"x-ratelimit-remaining": "0"})
        )
        with pytest.raises(RateLimitedError):
            await adapter.get_repository_content_file(ORG, REPO, filename="AGENTS.md", ref="main")
        await adapter.close()

    @pytest.mark.asyncio
    async def test_rate_limit_on_429_with_retry_after(self):
        from rulesync.platforms.base import RateLimitedError

        adapter = _adapter(lambda request: httpx.Response(429, headers={"retry-after": "7"}))
        with pytest.raises(RateLimitedError) as exc_info:
            await adapter.get_pull_request_by_number(ORG, REPO, 3)
        await adapter.close()
        assert exc_info.value.retry_after == 7.0

    @pytest.mark.asyncio
    async def test_plain_403_is_platform_error(self):
        from rulesync.platforms.base import PlatformError, RateLimitedError

        adapter = _adapter(lambda request: httpx.Response(403, text="forbidden"))
        with pytest.raises(PlatformError) as exc_info:
            await adapter.get_repository_content_file(ORG, REPO, filename="AGENTS.md", ref="main")
        await adapter.close()
        assert not isinstance(exc_info.value, RateLimitedError)

    @pytest.mark.asyncio
    async def test_default_branch_from_api(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/repos/acme/web"
            return httpx.Response(200, json={"default_branch": "trunk"})

        adapter = _adapter(handler)
        assert await adapter.get_default_branch(ORG, REPO) == "trunk"
        await adapter.close()

    @pytest.mark.asyncio
    async def test_default_branch_known_on_repository(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("no request expected")

        adapter = _adapter(handler)
        repo = RepositoryRef(id="1", name="web", full_name="acme/web", default_branch="develop")
        assert await adapter.get_default_branch(ORG, repo) == "develop"
        await adapter.close()

    @pytest.mark.asyncio
    async def test_pull_request(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/repos/acme/web/pulls/12"
            return httpx.Response(200, json={"head": {"ref": "feat"}, "base": {"ref": "main"}})

        adapter = _adapter(handler)
        pr = await adapter.get_pull_request_by_number(ORG, REPO, 12)
        await adapter.close()
        assert pr["head"]["ref"] == "feat"

    @pytest.mark.asyncio
    async def test_transport_error_is_platform_error(self):
        from rulesync.platforms.base import PlatformError

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        adapter = _adapter(handler)
        with pytest.raises(PlatformError):
            await adapter.get_default_branch(ORG, REPO)
        await adapter.close()
