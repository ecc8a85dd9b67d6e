"""Prompt and run-configuration types for LLM calls."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

from pydantic import BaseModel


class PromptRole(StrEnum):
    SYSTEM = "system"
    USER = "user"


class PromptMessage(BaseModel):
    role: PromptRole
    content: str


@dataclass(frozen=True)
class PromptRunConfig:
    """Immutable per-call settings; built fresh for every LLM call."""

    provider: str
    fallback_provider: str | None = None
    run_name: str = "prompt"
    json_mode: bool = False
    temperature: float = 0.0
    max_tokens: int = 4096


class LLMError(RuntimeError):
    """Raised when no provider produced a usable response."""
