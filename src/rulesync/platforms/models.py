"""Pydantic models and enums for source-control platform adapters."""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel


class PlatformKind(StrEnum):
    GITHUB = "github"
    GITLAB = "gitlab"
    BITBUCKET = "bitbucket"
    BITBUCKET_SERVER = "bitbucket_server"
    AZURE_DEVOPS = "azure_devops"


class PlatformCapability(StrEnum):
    LIST_FILES = "list_files"
    READ_FILE = "read_file"
    DEFAULT_BRANCH = "default_branch"
    PULL_REQUESTS = "pull_requests"


class FileListing(BaseModel):
    path: str
    size: int | None = None
    sha: str | None = None


class FileContent(BaseModel):
    content: str
    encoding: str | None = None


class PullRequestRefs(BaseModel):
    head: str | None = None
    base: str | None = None
