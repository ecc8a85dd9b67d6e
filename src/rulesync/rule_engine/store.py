"""Rule persistence: the store contract plus in-memory and SQLite implementations.

Both implementations keep the one-active-rule-per-source-path invariant on
their own: a create without ``uuid`` whose (organization, repository,
sourcePath) already has an active rule updates that rule instead of inserting
a second one.
"""

from __future__ import annotations

import asyncio
import json
import sqlite3
import threading
import uuid
from datetime import UTC, datetime
from typing import Protocol

from rulesync.rule_engine.models import (
    OrganizationContext,
    Rule,
    RuleExample,
    RuleSet,
    RuleStatus,
    RuleUpsert,
    UserInfo,
)
from rulesync.rule_engine.schema import _run_migrations


class RuleStoreError(RuntimeError):
    """Raised when a rule cannot be persisted."""


class RuleStore(Protocol):
    async def create_or_update(
        self, organization: OrganizationContext, dto: RuleUpsert, user: UserInfo
    ) -> Rule: ...

    async def find_by_organization_id(self, organization_id: str) -> RuleSet | None: ...

    async def delete_rule_logically(self, entity_uuid: str, rule_uuid: str) -> Rule | None: ...


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


_UPSERT_FIELDS = (
    "title",
    "rule",
    "path",
    "source_path",
    "severity",
    "scope",
    "status",
    "origin",
    "repository_id",
    "directory_id",
    "examples",
    "source_snippet",
)


class InMemoryRuleStore:
    def __init__(self) -> None:
        self._sets: dict[str, RuleSet] = {}
        self._lock = asyncio.Lock()

    def _rule_set(self, organization_id: str) -> RuleSet:
        if organization_id not in self._sets:
            self._sets[organization_id] = RuleSet(
                uuid=str(uuid.uuid4()), organization_id=organization_id
            )
        return self._sets[organization_id]

    async def create_or_update(
        self, organization: OrganizationContext, dto: RuleUpsert, user: UserInfo
    ) -> Rule:
        async with self._lock:
            rule_set = self._rule_set(organization.organization_id)
            target: Rule | None = None
            if dto.uuid:
                target = next((r for r in rule_set.rules if r.uuid == dto.uuid), None)
            if target is None and dto.status == RuleStatus.ACTIVE:
                target = next(
                    (
                        r
                        for r in rule_set.rules
                        if r.repository_id == dto.repository_id
                        and r.source_path == dto.source_path
                        and r.status == RuleStatus.ACTIVE
                    ),
                    None,
                )

            if target is not None:
                updated = target.model_copy(
                    update={
                        **{name: getattr(dto, name) for name in _UPSERT_FIELDS},
                        "updated_at": _now_iso(),
                        "updated_by": user.user_id,
                    }
                )
                rule_set.rules = [updated if r.uuid == target.uuid else r for r in rule_set.rules]
                return updated

            created = Rule(
                organization_id=organization.organization_id,
                updated_by=user.user_id,
                **{name: getattr(dto, name) for name in _UPSERT_FIELDS},
            )
            rule_set.rules.append(created)
            return created

    async def find_by_organization_id(self, organization_id: str) -> RuleSet | None:
        rule_set = self._sets.get(organization_id)
        return rule_set.model_copy(deep=True) if rule_set else None

    async def delete_rule_logically(self, entity_uuid: str, rule_uuid: str) -> Rule | None:
        async with self._lock:
            rule_set = next((s for s in self._sets.values() if s.uuid == entity_uuid), None)
            if rule_set is None:
                return None
            for i, rule in enumerate(rule_set.rules):
                if rule.uuid == rule_uuid:
                    deleted = rule.model_copy(
                        update={"status": RuleStatus.DELETED, "updated_at": _now_iso()}
                    )
                    rule_set.rules[i] = deleted
                    return deleted
            return None


class SqliteRuleStore:
    """Rule store on SQLite; the partial unique index backs the active-rule invariant."""

    def __init__(self, path: str = ":memory:") -> None:
        self._conn = sqlite3.connect(path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.Lock()
        _run_migrations(self._conn)

    def close(self) -> None:
        self._conn.close()

    # --- async contract ---

    async def create_or_update(
        self, organization: OrganizationContext, dto: RuleUpsert, user: UserInfo
    ) -> Rule:
        return await asyncio.to_thread(
            self._create_or_update, organization.organization_id, dto, user
        )

    async def find_by_organization_id(self, organization_id: str) -> RuleSet | None:
        return await asyncio.to_thread(self._find_by_organization_id, organization_id)

    async def delete_rule_logically(self, entity_uuid: str, rule_uuid: str) -> Rule | None:
        return await asyncio.to_thread(self._delete_rule_logically, entity_uuid, rule_uuid)

    # --- sync implementation ---

    def _ensure_rule_set(self, organization_id: str) -> str:
        row = self._conn.execute(
            "SELECT uuid FROM rule_sets WHERE organization_id = ?", (organization_id,)
        ).fetchone()
        if row:
            return row["uuid"]
        set_uuid = str(uuid.uuid4())
        self._conn.execute(
            "INSERT INTO rule_sets (uuid, organization_id) VALUES (?, ?)",
            (set_uuid, organization_id),
        )
        return set_uuid

    @staticmethod
    def _values(dto: RuleUpsert) -> tuple:
        return (
            dto.title,
            dto.rule,
            dto.path,
            dto.source_path,
            dto.severity.value,
            dto.scope.value,
            dto.status.value,
            dto.origin.value,
            dto.repository_id,
            dto.directory_id,
            json.dumps([e.model_dump(by_alias=True) for e in dto.examples]),
            dto.source_snippet,
        )

    def _create_or_update(self, organization_id: str, dto: RuleUpsert, user: UserInfo) -> Rule:
        now = _now_iso()
        with self._lock:
            try:
                self._ensure_rule_set(organization_id)
                if dto.uuid:
                    assignments = ", ".join(f"{name} = ?" for name in _UPSERT_FIELDS)
                    cur = self._conn.execute(
                        f"UPDATE rules SET {assignments}, updated_at = ?, updated_by = ?"
                        " WHERE uuid = ? AND organization_id = ?",
                        (*self._values(dto), now, user.user_id, dto.uuid, organization_id),
                    )
                    if cur.rowcount:
                        self._conn.commit()
                        return self._get(dto.uuid)

                new_uuid = str(uuid.uuid4())
                columns = ", ".join(_UPSERT_FIELDS)
                placeholders = ", ".join("?" for _ in _UPSERT_FIELDS)
                updates = ", ".join(
                    f"{name} = excluded.{name}" for name in _UPSERT_FIELDS
                )
                self._conn.execute(
                    f"INSERT INTO rules (uuid, organization_id, {columns},"
                    " created_at, updated_at, updated_by)"
                    f" VALUES (?, ?, {placeholders}, ?, ?, ?)"
                    " ON CONFLICT (organization_id, repository_id, source_path)"
                    " WHERE status = 'active'"
                    f" DO UPDATE SET {updates}, updated_at = excluded.updated_at,"
                    " updated_by = excluded.updated_by",
                    (new_uuid, organization_id, *self._values(dto), now, now, user.user_id),
                )
                self._conn.commit()
            except sqlite3.Error as exc:
                self._conn.rollback()
                raise RuleStoreError(
                    f"Failed to persist rule for source path {dto.source_path!r}"
                ) from exc

            if dto.status == RuleStatus.ACTIVE:
                row = self._conn.execute(
                    "SELECT * FROM rules WHERE organization_id = ? AND repository_id = ?"
                    " AND source_path = ? AND status = 'active'",
                    (organization_id, dto.repository_id, dto.source_path),
                ).fetchone()
                return self._row_to_rule(row)
            return self._get(new_uuid)

    def _get(self, rule_uuid: str) -> Rule:
        row = self._conn.execute("SELECT * FROM rules WHERE uuid = ?", (rule_uuid,)).fetchone()
        if row is None:
            raise RuleStoreError(f"Rule {rule_uuid} not found after write")
        return self._row_to_rule(row)

    def _find_by_organization_id(self, organization_id: str) -> RuleSet | None:
        with self._lock:
            row = self._conn.execute(
                "SELECT uuid FROM rule_sets WHERE organization_id = ?", (organization_id,)
            ).fetchone()
            if row is None:
                return None
            rows = self._conn.execute(
                "SELECT * FROM rules WHERE organization_id = ? ORDER BY created_at",
                (organization_id,),
            ).fetchall()
        return RuleSet(
            uuid=row["uuid"],
            organization_id=organization_id,
            rules=[self._row_to_rule(r) for r in rows],
        )

    def _delete_rule_logically(self, entity_uuid: str, rule_uuid: str) -> Rule | None:
        with self._lock:
            row = self._conn.execute(
                "SELECT organization_id FROM rule_sets WHERE uuid = ?", (entity_uuid,)
            ).fetchone()
            if row is None:
                return None
            cur = self._conn.execute(
                "UPDATE rules SET status = 'deleted', updated_at = ?"
                " WHERE uuid = ? AND organization_id = ?",
                (_now_iso(), rule_uuid, row["organization_id"]),
            )
            self._conn.commit()
            if not cur.rowcount:
                return None
            return self._get(rule_uuid)

    @staticmethod
    def _row_to_rule(row: sqlite3.Row) -> Rule:
        examples = [RuleExample.model_validate(e) for e in json.loads(row["examples"] or "[]")]
        return Rule(
            uuid=row["uuid"],
            organization_id=row["organization_id"],
            repository_id=row["repository_id"],
            directory_id=row["directory_id"],
            title=row["title"],
            rule=row["rule"],
            path=row["path"],
            source_path=row["source_path"],
            severity=row["severity"],
            scope=row["scope"],
            status=row["status"],
            origin=row["origin"],
            examples=examples,
            source_snippet=row["source_snippet"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            updated_by=row["updated_by"],
        )
