"""Rule extraction: turn rule-file or manifest content into RuleCandidates via an LLM.

Each conversion first attempts a schema-validated JSON call. Any failure there
(provider error, non-JSON answer, schema mismatch) degrades to a raw-text call
whose answer is mined with :mod:`rulesync.rule_engine.json_extract`. When both
attempts fail the conversion logs and returns an empty list.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any, Literal

from pydantic import BaseModel, Field

from rulesync.config import SyncConfig
from rulesync.llm import PromptRunConfig, PromptRunner, run_raw, run_structured
from rulesync.rule_engine import prompts
from rulesync.rule_engine.json_extract import extract_json_array, extract_rules_payload
from rulesync.rule_engine.models import (
    SEVERITY_RANK,
    FileCandidate,
    OrganizationContext,
    RuleCandidate,
    RuleExample,
    RuleScope,
    RuleSeverity,
    RuleStatus,
)

logger = logging.getLogger(__name__)


# --- Strict schemas for the structured attempt ---


class _SchemaExample(BaseModel):
    snippet: str
    isCorrect: bool


class _SchemaRule(BaseModel):
    title: str
    rule: str
    path: str
    sourcePath: str
    severity: Literal["low", "medium", "high", "critical"]
    scope: Literal["file", "pull-request"] | None = None
    status: Literal["active", "pending", "rejected", "deleted"] | None = None
    examples: list[_SchemaExample]
    sourceSnippet: str | None = None


class _SchemaManifestRule(BaseModel):
    title: str
    rule: str
    path: str
    severity: Literal["low", "medium", "high", "critical"]
    scope: Literal["file", "pull-request"] | None = None
    examples: list[_SchemaExample]


class FileRulesSchema(BaseModel):
    rules: list[_SchemaRule] = Field(default_factory=list)


class ManifestRulesSchema(BaseModel):
    rules: list[_SchemaManifestRule] = Field(default_factory=list)


# --- Normalisation ---


def _coerce_severity(value: Any) -> RuleSeverity:
    text = str(value).strip().lower() if value is not None else ""
    try:
        return RuleSeverity(text)
    except ValueError:
        return RuleSeverity.MEDIUM


def _coerce_scope(value: Any) -> RuleScope:
    text = str(value).strip().lower().replace("_", "-") if value is not None else ""
    try:
        return RuleScope(text)
    except ValueError:
        return RuleScope.FILE


def _coerce_examples(value: Any) -> list[RuleExample]:
    if not isinstance(value, list):
        return []
    examples: list[RuleExample] = []
    for item in value:
        if isinstance(item, dict):
            snippet = item.get("snippet")
            is_correct = item.get("isCorrect", item.get("is_correct"))
        else:
            snippet, is_correct = None, None
        examples.append(
            RuleExample(
                snippet=snippet if isinstance(snippet, str) else "",
                is_correct=is_correct if isinstance(is_correct, bool) else False,
            )
        )
    return examples


def _text(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def normalize_candidate(
    raw: Any,
    *,
    file_path: str = "",
    status: RuleStatus = RuleStatus.ACTIVE,
) -> RuleCandidate | None:
    """Coerce one loosely shaped LLM rule into a RuleCandidate.

    Severity is lower-cased and defaults to medium, scope defaults to file,
    path/sourcePath default to ``file_path``, malformed examples become
    ``{"snippet": "", "isCorrect": false}``. Non-object entries yield None.
    """
    if isinstance(raw, BaseModel):
        raw = raw.model_dump()
    if not isinstance(raw, dict):
        return None
    source_path = _text(raw.get("sourcePath") or raw.get("source_path")) or file_path
    snippet = raw.get("sourceSnippet") or raw.get("source_snippet")
    return RuleCandidate(
        title=_text(raw.get("title")),
        rule=_text(raw.get("rule")),
        path=_text(raw.get("path")) or file_path or source_path,
        source_path=source_path,
        severity=_coerce_severity(raw.get("severity")),
        scope=_coerce_scope(raw.get("scope")),
        status=status,
        examples=_coerce_examples(raw.get("examples")),
        source_snippet=snippet if isinstance(snippet, str) and snippet else None,
    )


def normalize_candidates(
    raw_rules: Sequence[Any],
    *,
    file_path: str = "",
    status: RuleStatus = RuleStatus.ACTIVE,
) -> list[RuleCandidate]:
    candidates = (normalize_candidate(r, file_path=file_path, status=status) for r in raw_rules)
    return [c for c in candidates if c is not None]


def rank_by_impact(candidates: list[RuleCandidate], cap: int) -> list[RuleCandidate]:
    """Keep the ``cap`` highest-severity candidates; ties keep model order."""
    ranked = sorted(candidates, key=lambda c: SEVERITY_RANK[c.severity], reverse=True)
    return ranked[: max(cap, 0)]


class RuleExtractionEngine:
    def __init__(self, runner: PromptRunner, config: SyncConfig | None = None) -> None:
        self._runner = runner
        self._config = config or SyncConfig()

    def _run_config(self, run_name: str, *, batch: bool, json_mode: bool) -> PromptRunConfig:
        provider = self._config.batch_provider if batch else self._config.main_provider
        fallback = (
            self._config.batch_fallback_provider if batch else self._config.fallback_provider
        )
        return PromptRunConfig(
            provider=provider,
            fallback_provider=fallback,
            run_name=run_name,
            json_mode=json_mode,
        )

    async def convert_file_to_rules(
        self,
        file_path: str,
        repository_id: str,
        content: str,
        organization: OrganizationContext,
        *,
        default_status: RuleStatus = RuleStatus.ACTIVE,
    ) -> list[RuleCandidate]:
        run_name = "rulesFileToRules"
        user = prompts.file_user_prompt(file_path, content)
        try:
            result = await run_structured(
                self._runner,
                self._run_config(run_name, batch=False, json_mode=True),
                prompts.messages(prompts.file_to_rules_system_prompt(), user),
                FileRulesSchema,
            )
            return normalize_candidates(result.rules, file_path=file_path, status=default_status)
        except Exception as e:
            logger.info("Structured extraction failed for %s, using raw fallback: %s", file_path, e)

        try:
            raw = await run_raw(
                self._runner,
                self._run_config(f"{run_name}Raw", batch=False, json_mode=False),
                prompts.messages(prompts.file_to_rules_fallback_prompt(), user),
            )
        except Exception:
            logger.exception(
                "LLM conversion failed for rule file %s (repository %s, organization %s)",
                file_path,
                repository_id,
                organization.organization_id,
            )
            return []

        parsed = extract_json_array(raw)
        if parsed is None:
            logger.error("No JSON array in fallback answer for rule file %s", file_path)
            return []
        return normalize_candidates(parsed, file_path=file_path, status=default_status)

    async def convert_files_to_rules_fast_batch(
        self,
        files: Sequence[FileCandidate],
        repository_id: str,
        organization: OrganizationContext,
    ) -> list[RuleCandidate]:
        cap = self._config.batch_rule_cap
        return await self._convert_batch(
            files,
            repository_id,
            organization,
            run_name="rulesFilesToRulesFastBatch",
            system=prompts.batch_system_prompt(cap),
            fallback_system=prompts.batch_fallback_prompt(cap),
            user=prompts.batch_user_prompt(repository_id, files),
            schema=FileRulesSchema,
        )

    async def convert_manifests_to_rules_fast_batch(
        self,
        files: Sequence[FileCandidate],
        repository_id: str,
        organization: OrganizationContext,
    ) -> list[RuleCandidate]:
        cap = self._config.batch_rule_cap
        return await self._convert_batch(
            files,
            repository_id,
            organization,
            run_name="rulesManifestsToRulesFastBatch",
            system=prompts.manifest_system_prompt(cap),
            fallback_system=prompts.manifest_fallback_prompt(cap),
            user=prompts.manifest_user_prompt(repository_id, files),
            schema=ManifestRulesSchema,
        )

    async def _convert_batch(
        self,
        files: Sequence[FileCandidate],
        repository_id: str,
        organization: OrganizationContext,
        *,
        run_name: str,
        system: str,
        fallback_system: str,
        user: str,
        schema: type[FileRulesSchema] | type[ManifestRulesSchema],
    ) -> list[RuleCandidate]:
        if not files:
            return []
        cap = self._config.batch_rule_cap
        # A lone file is the obvious source for rules that omit sourcePath.
        default_path = files[0].path if len(files) == 1 else ""

        try:
            result = await run_structured(
                self._runner,
                self._run_config(run_name, batch=True, json_mode=True),
                prompts.messages(system, user),
                schema,
            )
            candidates = normalize_candidates(
                result.rules, file_path=default_path, status=RuleStatus.PENDING
            )
            return rank_by_impact(candidates, cap)
        except Exception as e:
            logger.info("Structured batch run '%s' failed, using raw fallback: %s", run_name, e)

        try:
            raw = await run_raw(
                self._runner,
                self._run_config(f"{run_name}Raw", batch=True, json_mode=False),
                prompts.messages(fallback_system, user),
            )
        except Exception:
            logger.exception(
                "LLM batch conversion failed (repository %s, organization %s, %d files)",
                repository_id,
                organization.organization_id,
                len(files),
            )
            return []

        parsed = extract_rules_payload(raw)
        if parsed is None:
            logger.error("No JSON rules in fallback answer for batch run '%s'", run_name)
            return []
        candidates = normalize_candidates(parsed, file_path=default_path, status=RuleStatus.PENDING)
        return rank_by_impact(candidates, cap)
