"""Rules sync workflows over a platform adapter, rule store and extraction engine."""

from rulesync.sync.content import ContentFetcher
from rulesync.sync.orchestrator import RulesSyncService
from rulesync.sync.pool import run_bounded

__all__ = [
    "ContentFetcher",
    "RulesSyncService",
    "run_bounded",
]
