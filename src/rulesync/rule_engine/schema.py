"""SQLite DDL and migration runner for the rule store."""

from __future__ import annotations

import sqlite3

SCHEMA_VERSIONS_DDL = """
CREATE TABLE IF NOT EXISTS schema_versions (
    version INTEGER PRIMARY KEY,
    applied_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now'))
);
"""

RULE_SETS_DDL = """
CREATE TABLE IF NOT EXISTS rule_sets (
    uuid TEXT PRIMARY KEY,
    organization_id TEXT NOT NULL UNIQUE
);
"""

RULES_DDL = """
CREATE TABLE IF NOT EXISTS rules (
    uuid TEXT PRIMARY KEY,
    organization_id TEXT NOT NULL,
    repository_id TEXT NOT NULL,
    directory_id TEXT,
    title TEXT NOT NULL,
    rule TEXT NOT NULL,
    path TEXT NOT NULL,
    source_path TEXT NOT NULL,
    severity TEXT NOT NULL DEFAULT 'medium',
    scope TEXT NOT NULL DEFAULT 'file',
    status TEXT NOT NULL DEFAULT 'active',
    origin TEXT NOT NULL DEFAULT 'user',
    examples TEXT NOT NULL DEFAULT '[]',
    source_snippet TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    updated_by TEXT
);
"""

RULES_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_rules_org ON rules(organization_id);",
    "CREATE INDEX IF NOT EXISTS idx_rules_repo_source ON rules(repository_id, source_path);",
    # At most one active rule per source path per repository.
    "CREATE UNIQUE INDEX IF NOT EXISTS idx_rules_active_source ON rules"
    "(organization_id, repository_id, source_path) WHERE status = 'active';",
]

MIGRATIONS: dict[int, list[str]] = {
    1: [
        RULE_SETS_DDL,
        RULES_DDL,
        *RULES_INDEXES,
    ],
}


def _get_current_version(db: sqlite3.Connection) -> int:
    try:
        row = db.execute("SELECT MAX(version) FROM schema_versions").fetchone()
        return row[0] or 0
    except sqlite3.OperationalError:
        return 0


def _run_migrations(db: sqlite3.Connection) -> None:
    """Apply all pending migrations to the rule store database."""
    db.execute("PRAGMA journal_mode=WAL")
    db.executescript(SCHEMA_VERSIONS_DDL)

    current = _get_current_version(db)
    for version in sorted(MIGRATIONS.keys()):
        if version <= current:
            continue
        for statement in MIGRATIONS[version]:
            db.executescript(statement)
        db.execute("INSERT INTO schema_versions (version) VALUES (?)", (version,))
    db.commit()
