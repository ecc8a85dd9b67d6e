"""LLM prompt runners and per-call run configuration."""

from rulesync.llm.models import LLMError, PromptMessage, PromptRole, PromptRunConfig
from rulesync.llm.runner import ChatCompletionsRunner, PromptRunner, run_raw, run_structured

__all__ = [
    "ChatCompletionsRunner",
    "LLMError",
    "PromptMessage",
    "PromptRole",
    "PromptRunConfig",
    "PromptRunner",
    "run_raw",
    "run_structured",
]
