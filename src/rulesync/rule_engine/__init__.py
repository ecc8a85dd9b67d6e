"""Rule engine: models, file patterns, sync markers and directory scoping."""

from rulesync.rule_engine.directories import DirectoryResolver, resolve_directory_for_file
from rulesync.rule_engine.json_extract import extract_json_array, extract_json_object
from rulesync.rule_engine.markers import should_force_sync, should_ignore
from rulesync.rule_engine.models import (
    GLOBAL_REPOSITORY_ID,
    ChangedFile,
    ConfiguredDirectory,
    FastSyncResult,
    FileCandidate,
    FileStatus,
    OrganizationContext,
    RepositoryRef,
    Rule,
    RuleCandidate,
    RuleScope,
    RuleSet,
    RuleSeverity,
    RuleStatus,
    RuleUpsert,
    SyncTarget,
    UserInfo,
)
from rulesync.rule_engine.patterns import (
    MANIFEST_FILE_PATTERNS,
    RULE_FILE_PATTERNS,
    matches,
    matches_case_insensitive,
)

__all__ = [
    "GLOBAL_REPOSITORY_ID",
    "MANIFEST_FILE_PATTERNS",
    "RULE_FILE_PATTERNS",
    "ChangedFile",
    "ConfiguredDirectory",
    "DirectoryResolver",
    "FastSyncResult",
    "FileCandidate",
    "FileStatus",
    "OrganizationContext",
    "RepositoryRef",
    "Rule",
    "RuleCandidate",
    "RuleScope",
    "RuleSet",
    "RuleSeverity",
    "RuleStatus",
    "RuleUpsert",
    "SyncTarget",
    "UserInfo",
    "extract_json_array",
    "extract_json_object",
    "matches",
    "matches_case_insensitive",
    "resolve_directory_for_file",
    "should_force_sync",
    "should_ignore",
]
