"""Prompt runners: the contract and an OpenAI-compatible chat-completions client."""

from __future__ import annotations

import json
import logging
import os
from typing import Protocol, TypeVar

import httpx
from pydantic import BaseModel

from rulesync.config import SyncConfig
from rulesync.llm.models import LLMError, PromptMessage, PromptRunConfig
from rulesync.rule_engine.json_extract import unwrap_response

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)

_DEFAULT_TIMEOUT = 60.0


class PromptRunner(Protocol):
    async def run(self, config: PromptRunConfig, messages: list[PromptMessage]) -> str:
        """Return the raw text of the first provider that answers."""
        ...


async def run_raw(
    runner: PromptRunner, config: PromptRunConfig, messages: list[PromptMessage]
) -> str:
    return await runner.run(config, messages)


async def run_structured(
    runner: PromptRunner,
    config: PromptRunConfig,
    messages: list[PromptMessage],
    schema: type[T],
) -> T:
    """Run a JSON-mode call and validate the answer against ``schema``.

    Raises:
        LLMError: when the provider chain fails or the answer is not JSON.
        pydantic.ValidationError: when the JSON does not match ``schema``.
    """
    raw = await runner.run(config, messages)
    content = unwrap_response(raw)
    if content is None:
        raise LLMError(f"Empty response from run '{config.run_name}'")
    try:
        data = json.loads(content)
    except json.JSONDecodeError as exc:
        raise LLMError(f"Non-JSON response from run '{config.run_name}'") from exc
    return schema.model_validate(data)


class ChatCompletionsRunner:
    """Calls an OpenAI-compatible ``/v1/chat/completions`` endpoint.

    The primary provider is tried first, then the fallback provider. Holds no
    per-request state: everything call-specific arrives in ``PromptRunConfig``.
    """

    def __init__(
        self,
        base_url: str,
        *,
        api_key: str | None = None,
        timeout: float = _DEFAULT_TIMEOUT,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key if api_key is not None else os.environ.get("RULESYNC_LLM_API_KEY")
        self._timeout = timeout
        self._client = client

    @classmethod
    def from_config(
        cls,
        config: SyncConfig,
        *,
        api_key: str | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> ChatCompletionsRunner:
        """Runner pointed at ``config.llm_base_url`` with ``config.llm_timeout_seconds``."""
        return cls(
            config.llm_base_url,
            api_key=api_key,
            timeout=config.llm_timeout_seconds,
            client=client,
        )

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    def _payload(
        self, model: str, config: PromptRunConfig, messages: list[PromptMessage]
    ) -> dict:
        payload: dict = {
            "model": model,
            "messages": [{"role": str(m.role), "content": m.content} for m in messages],
            "temperature": config.temperature,
            "max_tokens": config.max_tokens,
        }
        if config.json_mode:
            payload["response_format"] = {"type": "json_object"}
        return payload

    async def _complete(
        self,
        client: httpx.AsyncClient,
        model: str,
        config: PromptRunConfig,
        messages: list[PromptMessage],
    ) -> str:
        resp = await client.post(
            f"{self._base_url}/v1/chat/completions",
            json=self._payload(model, config, messages),
            headers=self._headers(),
        )
        resp.raise_for_status()
        try:
            content = resp.json()["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError, ValueError) as exc:
            raise LLMError(f"Unexpected completion shape from {model}") from exc
        if not isinstance(content, str) or not content.strip():
            raise LLMError(f"Empty completion from {model}")
        return content

    async def run(self, config: PromptRunConfig, messages: list[PromptMessage]) -> str:
        models = [config.provider]
        if config.fallback_provider and config.fallback_provider != config.provider:
            models.append(config.fallback_provider)

        if self._client is not None:
            return await self._run_chain(self._client, models, config, messages)
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            return await self._run_chain(client, models, config, messages)

    async def _run_chain(
        self,
        client: httpx.AsyncClient,
        models: list[str],
        config: PromptRunConfig,
        messages: list[PromptMessage],
    ) -> str:
        last_error: Exception | None = None
        for model in models:
            try:
                return await self._complete(client, model, config, messages)
            except (httpx.HTTPError, LLMError) as exc:
                logger.warning("Run '%s' failed on %s: %s", config.run_name, model, exc)
                last_error = exc
        raise LLMError(f"All providers failed for run '{config.run_name}'") from last_error
