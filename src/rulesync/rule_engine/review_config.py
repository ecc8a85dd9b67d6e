"""Review-configuration access: per-repository sync flag and configured directories."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Protocol

from pydantic import BaseModel, ConfigDict, Field

from rulesync.rule_engine.models import ConfiguredDirectory, OrganizationContext

logger = logging.getLogger(__name__)


class RepositoryReviewConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    ide_rules_sync_enabled: bool = Field(default=False, alias="ideRulesSyncEnabled")
    directories: list[ConfiguredDirectory] = Field(default_factory=list)


class ReviewConfigStore(Protocol):
    async def get_repository_config(
        self, organization: OrganizationContext, repository_id: str
    ) -> RepositoryReviewConfig | None: ...

    async def update_or_create_parameter(
        self,
        organization: OrganizationContext,
        repository_id: str,
        config_value: dict[str, Any],
    ) -> None: ...


def parse_repository_config(raw: Any) -> RepositoryReviewConfig | None:
    """Build a repository config from a loosely shaped dict, dropping malformed directories."""
    if not isinstance(raw, dict) or raw.get("id") is None:
        return None
    configs = raw.get("configs") if isinstance(raw.get("configs"), dict) else {}
    enabled = raw.get("ideRulesSyncEnabled", configs.get("ideRulesSyncEnabled"))
    directories = [
        ConfiguredDirectory(id=str(d["id"]), path=d["path"])
        for d in raw.get("directories") or []
        if isinstance(d, dict) and d.get("id") and isinstance(d.get("path"), str)
    ]
    return RepositoryReviewConfig(
        id=str(raw["id"]),
        ide_rules_sync_enabled=enabled is True,
        directories=directories,
    )


class InMemoryReviewConfigStore:
    def __init__(self) -> None:
        self._configs: dict[tuple[str, str], RepositoryReviewConfig] = {}
        self.touches: list[tuple[str, str, dict[str, Any]]] = []

    def set_repository_config(
        self, organization_id: str, config: RepositoryReviewConfig
    ) -> None:
        self._configs[(organization_id, config.id)] = config

    async def get_repository_config(
        self, organization: OrganizationContext, repository_id: str
    ) -> RepositoryReviewConfig | None:
        return self._configs.get((organization.organization_id, str(repository_id)))

    async def update_or_create_parameter(
        self,
        organization: OrganizationContext,
        repository_id: str,
        config_value: dict[str, Any],
    ) -> None:
        key = (organization.organization_id, str(repository_id))
        self._configs.setdefault(key, RepositoryReviewConfig(id=str(repository_id)))
        self.touches.append((organization.organization_id, str(repository_id), config_value))


class JsonFileReviewConfigStore:
    """Review configuration kept in a JSON file.

    Layout::

        {"organizations": {"<org id>": {"repositories": [
            {"id": "...", "configs": {"ideRulesSyncEnabled": true},
             "directories": [{"id": "...", "path": "apps/web"}]}
        ]}}}
    """

    def __init__(self, path: Path) -> None:
        self._path = path
        self._lock = asyncio.Lock()

    def _read(self) -> dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            text = self._path.read_text()
            data = json.loads(text) if text.strip() else {}
        except (json.JSONDecodeError, OSError) as e:
            logger.warning("Failed to read review config from %s: %s", self._path, e)
            return {}
        return data if isinstance(data, dict) else {}

    @staticmethod
    def _repositories(data: dict[str, Any], organization_id: str) -> list[Any]:
        orgs = data.get("organizations")
        if not isinstance(orgs, dict):
            return []
        org = orgs.get(organization_id)
        if not isinstance(org, dict) or not isinstance(org.get("repositories"), list):
            return []
        return org["repositories"]

    async def get_repository_config(
        self, organization: OrganizationContext, repository_id: str
    ) -> RepositoryReviewConfig | None:
        data = await asyncio.to_thread(self._read)
        for raw in self._repositories(data, organization.organization_id):
            if isinstance(raw, dict) and str(raw.get("id")) == str(repository_id):
                return parse_repository_config(raw)
        return None

    async def update_or_create_parameter(
        self,
        organization: OrganizationContext,
        repository_id: str,
        config_value: dict[str, Any],
    ) -> None:
        async with self._lock:
            data = await asyncio.to_thread(self._read)
            orgs = data.setdefault("organizations", {})
            org = orgs.setdefault(organization.organization_id, {})
            repos = org.setdefault("repositories", [])
            entry = next(
                (r for r in repos if isinstance(r, dict) and str(r.get("id")) == str(repository_id)),
                None,
            )
            if entry is None:
                entry = {"id": str(repository_id), "configs": {}, "directories": []}
                repos.append(entry)
            configs = entry.setdefault("configs", {})
            for key, value in config_value.items():
                configs.setdefault(key, value)
            await asyncio.to_thread(self._write, data)

    def _write(self, data: dict[str, Any]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(json.dumps(data, indent=2))
