"""Tests for rule_engine/review_config.py: sync flag, directories and touch writes."""

from __future__ import annotations

import json

import pytest

from rulesync.rule_engine.models import OrganizationContext

ORG = OrganizationContext(organization_id="org-1")


@pytest.mark.unit
class TestParseRepositoryConfig:
    def test_flag_under_configs(self):
        from rulesync.rule_engine.review_config import parse_repository_config

        cfg = parse_repository_config({"id": "r", "configs": {"ideRulesSyncEnabled": True}})
        assert cfg.ide_rules_sync_enabled is True

    def test_flag_must_be_true_boolean(self):
        from rulesync.rule_engine.review_config import parse_repository_config

        cfg = parse_repository_config({"id": "r", "configs": {"ideRulesSyncEnabled": "yes"}})
        assert cfg.ide_rules_sync_enabled is False

    def test_malformed_directories_dropped(self):
        from rulesync.rule_engine.review_config import parse_repository_config

        cfg = parse_repository_config(
            {
                "id": 7,
                "directories": [
                    {"id": "d1", "path": "apps/web"},
                    {"id": "d2"},
                    "apps/api",
                    {"path": "apps/x"},
                ],
            }
        )
        assert cfg.id == "7"
        assert [d.id for d in cfg.directories] == ["d1"]

    def test_missing_id(self):
        from rulesync.rule_engine.review_config import parse_repository_config

        assert parse_repository_config({"configs": {}}) is None
        assert parse_repository_config(None) is None


class TestInMemoryReviewConfigStore:
    @pytest.mark.asyncio
    async def test_touch_creates_record(self):
        from rulesync.rule_engine.review_config import InMemoryReviewConfigStore

        store = InMemoryReviewConfigStore()
        await store.update_or_create_parameter(ORG, "repo-1", {"kodyRules": []})
        cfg = await store.get_repository_config(ORG, "repo-1")
        assert cfg is not None
        assert cfg.ide_rules_sync_enabled is False
        assert store.touches == [("org-1", "repo-1", {"kodyRules": []})]

    @pytest.mark.asyncio
    async def test_touch_keeps_existing_settings(self):
        from rulesync.rule_engine.review_config import (
            InMemoryReviewConfigStore,
            RepositoryReviewConfig,
        )

        store = InMemoryReviewConfigStore()
        store.set_repository_config(
            "org-1", RepositoryReviewConfig(id="repo-1", ide_rules_sync_enabled=True)
        )
        await store.update_or_create_parameter(ORG, "repo-1", {"kodyRules": []})
        cfg = await store.get_repository_config(ORG, "repo-1")
        assert cfg.ide_rules_sync_enabled is True


class TestJsonFileReviewConfigStore:
    @pytest.mark.asyncio
    async def test_reads_repository(self, tmp_path):
        from rulesync.rule_engine.review_config import JsonFileReviewConfigStore

        path = tmp_path / "review.json"
        path.write_text(
            json.dumps(
                {
                    "organizations": {
                        "org-1": {
                            "repositories": [
                                {
                                    "id": "repo-1",
                                    "configs": {"ideRulesSyncEnabled": True},
                                    "directories": [{"id": "d1", "path": "apps/web"}],
                                }
                            ]
                        }
                    }
                }
            )
        )
        cfg = await JsonFileReviewConfigStore(path).get_repository_config(ORG, "repo-1")
        assert cfg.ide_rules_sync_enabled is True
        assert cfg.directories[0].path == "apps/web"

    @pytest.mark.asyncio
    async def test_missing_file(self, tmp_path):
        from rulesync.rule_engine.review_config import JsonFileReviewConfigStore

        store = JsonFileReviewConfigStore(tmp_path / "none.json")
        assert await store.get_repository_config(ORG, "repo-1") is None

    @pytest.mark.asyncio
    async def test_invalid_json(self, tmp_path):
        from rulesync.rule_engine.review_config import JsonFileReviewConfigStore

        path = tmp_path / "review.json"
        path.write_text("{broken")
        assert await JsonFileReviewConfigStore(path).get_repository_config(ORG, "r") is None

    @pytest.mark.asyncio
    async def test_touch_is_idempotent(self, tmp_path):
        from rulesync.rule_engine.review_config import JsonFileReviewConfigStore

        path = tmp_path / "nested" / "review.json"
        store = JsonFileReviewConfigStore(path)
        await store.update_or_create_parameter(ORG, "repo-1", {"kodyRules": []})
        await store.update_or_create_parameter(ORG, "repo-1", {"kodyRules": []})

        data = json.loads(path.read_text())
        repos = data["organizations"]["org-1"]["repositories"]
        assert len(repos) == 1
        assert repos[0]["configs"] == {"kodyRules": []}

    @pytest.mark.asyncio
    async def test_touch_does_not_overwrite(self, tmp_path):
        from rulesync.rule_engine.review_config import JsonFileReviewConfigStore

        path = tmp_path / "review.json"
        path.write_text(
            json.dumps(
                {
                    "organizations": {
                        "org-1": {
                            "repositories": [
                                {"id": "repo-1", "configs": {"kodyRules": ["keep"]}}
                            ]
                        }
                    }
                }
            )
        )
        await JsonFileReviewConfigStore(path).update_or_create_parameter(
            ORG, "repo-1", {"kodyRules": []}
        )
        data = json.loads(path.read_text())
        assert data["organizations"]["org-1"]["repositories"][0]["configs"]["kodyRules"] == [
            "keep"
        ]
