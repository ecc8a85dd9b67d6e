"""Shared fixtures and fakes for rulesync tests."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Callable

import pytest

from rulesync.config import SyncConfig
from rulesync.llm.models import LLMError, PromptMessage, PromptRunConfig
from rulesync.platforms.models import (
    FileContent,
    FileListing,
    PlatformCapability,
    PlatformKind,
)
from rulesync.rule_engine.models import OrganizationContext, RepositoryRef, SyncTarget
from rulesync.rule_engine.patterns import matches


class FakePlatformAdapter:
    """In-memory platform: ``files`` maps ref -> {path: content}."""

    kind = PlatformKind.GITHUB

    def __init__(self) -> None:
        self.files: dict[str, dict[str, str]] = {}
        self.sizes: dict[str, int] = {}
        self.default_branch = "main"
        self.pull_request: dict | None = None
        self.capabilities = frozenset(PlatformCapability)
        self.errors: dict[tuple[str, str], list[Exception]] = {}
        self.delay = 0.0
        self.content_calls: list[tuple[str, str]] = []
        self.listing_calls: list[list[str]] = []
        self.pull_request_calls = 0
        self.in_flight = 0
        self.max_in_flight = 0

    async def get_repository_all_files(
        self, organization, repository, *, branch, file_patterns, max_files=None
    ) -> list[FileListing]:
        patterns = list(file_patterns)
        self.listing_calls.append(patterns)
        listings = [
            FileListing(path=path, size=self.sizes.get(path, len(content.encode("utf-8"))))
            for path, content in sorted(self.files.get(branch, {}).items())
            if matches(path, patterns)
        ]
        return listings[:max_files] if max_files is not None else listings

    async def get_repository_content_file(
        self, organization, repository, *, filename, ref
    ) -> FileContent | None:
        self.content_calls.append((filename, ref))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
            queued = self.errors.get((filename, ref))
            if queued:
                raise queued.pop(0)
            content = self.files.get(ref, {}).get(filename)
            return FileContent(content=content) if content is not None else None
        finally:
            self.in_flight -= 1

    async def get_default_branch(self, organization, repository) -> str:
        return self.default_branch

    async def get_pull_request_by_number(self, organization, repository, pull_request_number):
        self.pull_request_calls += 1
        return self.pull_request


def rule_per_file(config: PromptRunConfig, messages: list[PromptMessage]) -> str:
    """Answer every single-file prompt with one high-severity rule for that file."""
    first_line = messages[-1].content.split("\n", 1)[0]
    path = first_line.removeprefix("File: ").strip()
    return json.dumps(
        {
            "rules": [
                {
                    "title": f"Rule from {path}",
                    "rule": "Follow the conventions in this file.",
                    "path": "**/*",
                    "sourcePath": path,
                    "severity": "high",
                    "examples": [],
                }
            ]
        }
    )


class FakePromptRunner:
    """Pops scripted ``responses`` first, then falls back to ``handler``."""

    def __init__(
        self,
        responses: list[str | Exception] | None = None,
        handler: Callable[[PromptRunConfig, list[PromptMessage]], str] | None = None,
    ) -> None:
        self.responses = list(responses or [])
        self.handler = handler
        self.calls: list[tuple[PromptRunConfig, list[PromptMessage]]] = []

    async def run(self, config: PromptRunConfig, messages: list[PromptMessage]) -> str:
        self.calls.append((config, messages))
        if self.responses:
            response = self.responses.pop(0)
            if isinstance(response, Exception):
                raise response
            return response
        if self.handler is not None:
            return self.handler(config, messages)
        raise LLMError("no scripted response")


async def no_sleep(seconds: float) -> None:
    return None


@pytest.fixture
def organization() -> OrganizationContext:
    return OrganizationContext(organization_id="org-1", team_id="team-1")


@pytest.fixture
def repository() -> RepositoryRef:
    return RepositoryRef(id="repo-1", name="web", full_name="acme/web")


@pytest.fixture
def target(organization, repository) -> SyncTarget:
    return SyncTarget(organization=organization, repository=repository)


@pytest.fixture
def platform() -> FakePlatformAdapter:
    return FakePlatformAdapter()


@pytest.fixture
def runner() -> FakePromptRunner:
    return FakePromptRunner(handler=rule_per_file)


@pytest.fixture
def rule_store():
    from rulesync.rule_engine.store import InMemoryRuleStore

    return InMemoryRuleStore()


@pytest.fixture
def review_config():
    from rulesync.rule_engine.review_config import InMemoryReviewConfigStore

    return InMemoryReviewConfigStore()


@pytest.fixture
def sync_config() -> SyncConfig:
    return SyncConfig()


@pytest.fixture
def service(platform, runner, rule_store, review_config, sync_config):
    from rulesync.rule_engine.extraction import RuleExtractionEngine
    from rulesync.sync.orchestrator import RulesSyncService

    return RulesSyncService(
        platform=platform,
        rule_store=rule_store,
        review_config=review_config,
        extraction=RuleExtractionEngine(runner, sync_config),
        config=sync_config,
        sleep=no_sleep,
    )
