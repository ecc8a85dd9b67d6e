"""SyncConfig dataclass and loader for rule sync settings."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

MIN_CONCURRENCY = 1
MAX_CONCURRENCY = 10


def _safe_int(value: str, default: int) -> int:
    try:
        return int(value)
    except ValueError:
        return default


@dataclass
class SyncConfig:
    # Fast onboarding caps
    max_files: int = 20
    max_file_size_bytes: int = 200_000
    max_total_bytes: int = 2_000_000
    max_concurrent: int = 5
    manifest_fallback_threshold: int = 5  # fall back to manifests at or below this many rule files

    # Content fetch retry on rate limiting
    content_fetch_attempts: int = 3
    content_fetch_backoff_seconds: float = 0.5

    # LLM providers
    main_provider: str = "gemini-2.5-flash"
    fallback_provider: str = "gemini-2.5-pro"
    batch_provider: str = "glm-4.7"
    batch_fallback_provider: str = "kimi-k2"
    llm_base_url: str = "http://localhost:8000"
    llm_timeout_seconds: float = 60.0
    batch_rule_cap: int = 3

    # Identity recorded on rule writes
    system_user_id: str = "rules-sync"
    system_user_email: str = "rules-sync@localhost"

    @property
    def effective_concurrency(self) -> int:
        return clamp_concurrency(self.max_concurrent)


def clamp_concurrency(value: int) -> int:
    return max(MIN_CONCURRENCY, min(value, MAX_CONCURRENCY))


def load_sync_config(path: Path | None = None) -> SyncConfig:
    """Load sync config from .rulesync.json with env var overrides."""
    config = SyncConfig()

    if path and path.exists():
        try:
            text = path.read_text()
            if text.strip():
                data = json.loads(text)
                section = data.get("sync", {})
                if isinstance(section, dict):
                    _apply(config, section)
        except (json.JSONDecodeError, OSError) as e:
            logger.warning("Failed to load sync config from %s: %s", path, e)

    # Env var overrides
    if env_val := os.environ.get("RULESYNC_MAX_CONCURRENT"):
        config.max_concurrent = _safe_int(env_val, config.max_concurrent)
    if env_val := os.environ.get("RULESYNC_MAX_FILES"):
        config.max_files = _safe_int(env_val, config.max_files)
    if env_val := os.environ.get("RULESYNC_LLM_BASE_URL"):
        config.llm_base_url = env_val
    if env_val := os.environ.get("RULESYNC_MAIN_PROVIDER"):
        config.main_provider = env_val
    if env_val := os.environ.get("RULESYNC_FALLBACK_PROVIDER"):
        config.fallback_provider = env_val

    return config


_INT_FIELDS = (
    "max_files",
    "max_file_size_bytes",
    "max_total_bytes",
    "max_concurrent",
    "manifest_fallback_threshold",
    "content_fetch_attempts",
    "batch_rule_cap",
)
_FLOAT_FIELDS = ("content_fetch_backoff_seconds", "llm_timeout_seconds")
_STR_FIELDS = (
    "main_provider",
    "fallback_provider",
    "batch_provider",
    "batch_fallback_provider",
    "llm_base_url",
    "system_user_id",
    "system_user_email",
)


def _apply(cfg: SyncConfig, data: dict[str, object]) -> None:
    for name in _INT_FIELDS:
        value = data.get(name)
        if isinstance(value, int) and not isinstance(value, bool):
            setattr(cfg, name, value)
    for name in _FLOAT_FIELDS:
        value = data.get(name)
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            setattr(cfg, name, float(value))
    for name in _STR_FIELDS:
        value = data.get(name)
        if isinstance(value, str) and value:
            setattr(cfg, name, value)
