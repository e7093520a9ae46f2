from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from .core.exceptions import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_INDEX_FIELDS = ["id", "region", "quarter", "status", "owner"]

_ENV_PREFIX = "CAMPAIGN_STORE_"


@dataclass(frozen=True)
class StoreSettings:
    """
    Tunables for the store, the indexes and the filter engine.

    - change_log_capacity: ring buffer size for the audit log
    - filter_warning_ms: a filter pass slower than this publishes a performance warning
    - index_fields: fields the IndexingService builds maps for
    - chunk_size: records processed per chunk during a bulk import
    - auto_index: if True, the controller filters through indexes from the start
      instead of waiting for the first performance warning
    - memo_cache_size: most derived values (e.g. filter option lists) kept by the memo cache
    - fields: field registry overrides, field name -> kind name
    """
    change_log_capacity: int = 100
    filter_warning_ms: float = 50.0
    index_fields: List[str] = field(default_factory=lambda: list(DEFAULT_INDEX_FIELDS))
    chunk_size: int = 100
    auto_index: bool = False
    memo_cache_size: int = 1000
    fields: Dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.change_log_capacity < 1:
            raise ConfigError(f"change_log_capacity must be >= 1, got {self.change_log_capacity}")
        if self.filter_warning_ms <= 0:
            raise ConfigError(f"filter_warning_ms must be > 0, got {self.filter_warning_ms}")
        if self.chunk_size < 1:
            raise ConfigError(f"chunk_size must be >= 1, got {self.chunk_size}")
        if self.memo_cache_size < 1:
            raise ConfigError(f"memo_cache_size must be >= 1, got {self.memo_cache_size}")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> StoreSettings:
        store = data.get("store", {}) or {}
        if not isinstance(store, Mapping):
            raise ConfigError("'store' section must be an object")

        fields = data.get("fields", {}) or {}
        if not isinstance(fields, Mapping):
            raise ConfigError("'fields' section must be an object")

        try:
            return cls(
                change_log_capacity=int(store.get("change_log_capacity", 100)),
                filter_warning_ms=float(store.get("filter_warning_ms", 50.0)),
                index_fields=[str(f) for f in store.get("index_fields", DEFAULT_INDEX_FIELDS)],
                chunk_size=int(store.get("chunk_size", 100)),
                auto_index=bool(store.get("auto_index", False)),
                memo_cache_size=int(store.get("memo_cache_size", 1000)),
                fields={str(k): str(v) for k, v in fields.items()},
            )
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid store settings: {e}") from e


def _apply_env_overrides(settings: StoreSettings, environ: Mapping[str, str]) -> StoreSettings:
    overrides: Dict[str, Any] = {}
    try:
        if f"{_ENV_PREFIX}CHANGE_LOG_CAPACITY" in environ:
            overrides["change_log_capacity"] = int(environ[f"{_ENV_PREFIX}CHANGE_LOG_CAPACITY"])
        if f"{_ENV_PREFIX}FILTER_WARNING_MS" in environ:
            overrides["filter_warning_ms"] = float(environ[f"{_ENV_PREFIX}FILTER_WARNING_MS"])
        if f"{_ENV_PREFIX}CHUNK_SIZE" in environ:
            overrides["chunk_size"] = int(environ[f"{_ENV_PREFIX}CHUNK_SIZE"])
        if f"{_ENV_PREFIX}MEMO_CACHE_SIZE" in environ:
            overrides["memo_cache_size"] = int(environ[f"{_ENV_PREFIX}MEMO_CACHE_SIZE"])
    except ValueError as e:
        raise ConfigError(f"Invalid environment override: {e}") from e

    if f"{_ENV_PREFIX}INDEX_FIELDS" in environ:
        raw = environ[f"{_ENV_PREFIX}INDEX_FIELDS"]
        overrides["index_fields"] = [f.strip() for f in raw.split(",") if f.strip()]
    if f"{_ENV_PREFIX}AUTO_INDEX" in environ:
        overrides["auto_index"] = environ[f"{_ENV_PREFIX}AUTO_INDEX"] == "1"

    if overrides:
        logger.info("Applying environment overrides", extra={"overrides": sorted(overrides)})
        return replace(settings, **overrides)
    return settings


def load_settings(
        config_path: Optional[str | Path] = None,
        environ: Optional[Mapping[str, str]] = None,
) -> StoreSettings:
    """
    Load store settings.

    Selection Order (later wins):
        1) defaults
        2) JSON file at config_path (or $CAMPAIGN_STORE_CONFIG) if given
        3) CAMPAIGN_STORE_* environment variables
    """
    environ = os.environ if environ is None else environ

    if config_path is None:
        config_path = environ.get(f"{_ENV_PREFIX}CONFIG")

    if config_path is None:
        settings = StoreSettings()
    else:
        config_path = Path(config_path)
        if not config_path.is_file():
            raise ConfigError(f"Settings file not found at {config_path}.")
        try:
            raw = json.loads(config_path.read_text())
        except json.JSONDecodeError as e:
            raise ConfigError(f"Settings file {config_path} is not valid JSON: {e}") from e
        if not isinstance(raw, Mapping):
            raise ConfigError(f"Settings file {config_path} must contain a JSON object")
        settings = StoreSettings.from_dict(raw)

    return _apply_env_overrides(settings, environ)
