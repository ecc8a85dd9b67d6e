"""Pydantic models and enums for the rule engine layer."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field


class RuleSeverity(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class RuleScope(StrEnum):
    FILE = "file"
    PULL_REQUEST = "pull-request"


class RuleStatus(StrEnum):
    ACTIVE = "active"
    PENDING = "pending"
    REJECTED = "rejected"
    DELETED = "deleted"


class RuleOrigin(StrEnum):
    USER = "user"
    LIBRARY = "library"


class FileStatus(StrEnum):
    ADDED = "added"
    MODIFIED = "modified"
    REMOVED = "removed"
    RENAMED = "renamed"
    COPIED = "copied"
    CHANGED = "changed"
    UNCHANGED = "unchanged"


SEVERITY_RANK: dict[RuleSeverity, int] = {
    RuleSeverity.CRITICAL: 3,
    RuleSeverity.HIGH: 2,
    RuleSeverity.MEDIUM: 1,
    RuleSeverity.LOW: 0,
}

# Onboarding rules are persisted under this repository id until a user adopts them.
GLOBAL_REPOSITORY_ID = "global"


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


class _CamelModel(BaseModel):
    """Accepts both snake_case and the camelCase keys used on the wire."""

    model_config = ConfigDict(populate_by_name=True)


class OrganizationContext(_CamelModel):
    organization_id: str = Field(alias="organizationId")
    team_id: str | None = Field(default=None, alias="teamId")


class UserInfo(_CamelModel):
    user_id: str = Field(alias="userId")
    user_email: str = Field(alias="userEmail")


class RepositoryRef(_CamelModel):
    id: str
    name: str
    full_name: str | None = Field(default=None, alias="fullName")
    default_branch: str | None = Field(default=None, alias="defaultBranch")


class SyncTarget(_CamelModel):
    organization: OrganizationContext = Field(alias="organizationAndTeamData")
    repository: RepositoryRef


class ConfiguredDirectory(BaseModel):
    id: str
    path: str


class FileCandidate(_CamelModel):
    path: str
    content: str
    directory_id: str | None = Field(default=None, alias="directoryId")


class ChangedFile(BaseModel):
    filename: str
    status: FileStatus
    previous_filename: str | None = None


class RuleExample(_CamelModel):
    snippet: str = ""
    is_correct: bool = Field(default=False, alias="isCorrect")


class RuleCandidate(_CamelModel):
    """A rule produced by extraction, before it is persisted."""

    title: str = ""
    rule: str = ""
    path: str = ""
    source_path: str = Field(default="", alias="sourcePath")
    severity: RuleSeverity = RuleSeverity.MEDIUM
    scope: RuleScope = RuleScope.FILE
    status: RuleStatus = RuleStatus.ACTIVE
    examples: list[RuleExample] = Field(default_factory=list)
    source_snippet: str | None = Field(default=None, alias="sourceSnippet")

    @property
    def is_usable(self) -> bool:
        return bool(self.title and self.rule)


class RuleUpsert(_CamelModel):
    """Create-or-update payload; ``uuid`` set means update that rule."""

    uuid: str | None = None
    title: str
    rule: str
    path: str
    source_path: str = Field(alias="sourcePath")
    severity: RuleSeverity = RuleSeverity.MEDIUM
    scope: RuleScope = RuleScope.FILE
    status: RuleStatus = RuleStatus.ACTIVE
    origin: RuleOrigin = RuleOrigin.USER
    repository_id: str = Field(alias="repositoryId")
    directory_id: str | None = Field(default=None, alias="directoryId")
    examples: list[RuleExample] = Field(default_factory=list)
    source_snippet: str | None = Field(default=None, alias="sourceSnippet")


class Rule(_CamelModel):
    uuid: str = Field(default_factory=lambda: str(uuid.uuid4()))
    organization_id: str = Field(alias="organizationId")
    repository_id: str = Field(alias="repositoryId")
    directory_id: str | None = Field(default=None, alias="directoryId")
    title: str
    rule: str
    path: str
    source_path: str = Field(alias="sourcePath")
    severity: RuleSeverity = RuleSeverity.MEDIUM
    scope: RuleScope = RuleScope.FILE
    status: RuleStatus = RuleStatus.ACTIVE
    origin: RuleOrigin = RuleOrigin.USER
    examples: list[RuleExample] = Field(default_factory=list)
    source_snippet: str | None = Field(default=None, alias="sourceSnippet")
    created_at: str = Field(default_factory=_now_iso, alias="createdAt")
    updated_at: str = Field(default_factory=_now_iso, alias="updatedAt")
    updated_by: str | None = Field(default=None, alias="updatedBy")


class RuleSet(BaseModel):
    """All rules owned by one organization."""

    uuid: str
    organization_id: str
    rules: list[Rule] = Field(default_factory=list)


class SkippedFile(BaseModel):
    file: str
    reason: str


class SyncError(BaseModel):
    file: str | None = None
    message: str


class FastSyncResult(BaseModel):
    rules: list[Rule] = Field(default_factory=list)
    skipped_files: list[SkippedFile] = Field(default_factory=list)
    errors: list[SyncError] = Field(default_factory=list)
