"""Configuration loading, validation, and defaults."""

from __future__ import annotations

import json
import math
import os
from pathlib import Path
from typing import Any, Mapping

import yaml

from .core.math_utils import clamp
from .types import (
    ContextLanesConfig,
    EmbeddingConfig,
    RoutingConfig,
    SemanticRerankConfig,
    StorageConfig,
)

CONFIG_FILENAMES = [
    "context-lanes.yaml",
    "context-lanes.yml",
    "context-lanes.json",
]

ENV_PREFIX = "CONTEXT_LANES_"

# env var suffix -> (section, key)
ENV_OVERRIDES: dict[str, tuple[str, str]] = {
    "ENABLED": ("routing", "enabled"),
    "PRIMARY_THRESHOLD": ("routing", "primary_threshold"),
    "SECONDARY_THRESHOLD": ("routing", "secondary_threshold"),
    "SWITCH_MARGIN": ("routing", "switch_margin"),
    "MAX_ACTIVE": ("routing", "max_active"),
    "SUMMARY_MAX_CHARS": ("routing", "summary_max_chars"),
    "KEEP_RECENT": ("routing", "keep_recent_messages"),
    "MIN_HISTORY_TOKEN_RATIO": ("routing", "min_history_token_ratio"),
    "SEMANTIC_ENABLED": ("semantic", "enabled"),
    "SEMANTIC_WEIGHT": ("semantic", "weight"),
    "EMBEDDING_PROVIDER": ("embedding", "provider"),
    "EMBEDDING_MODEL": ("embedding", "model"),
    "EMBEDDING_BASE_URL": ("embedding", "base_url"),
    "EMBEDDING_TIMEOUT_MS": ("embedding", "timeout_ms"),
    "DB_PATH": ("storage", "db_path"),
}

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def _discover_config() -> Path | None:
    """Search CWD then parent dirs up to home for a config file."""
    cwd = Path.cwd()
    home = Path.home()
    search = cwd
    while True:
        for name in CONFIG_FILENAMES:
            candidate = search / name
            if candidate.is_file():
                return candidate
        if search == home or search == search.parent:
            break
        search = search.parent
    return None


def _number(raw: Any, fallback: float) -> float:
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return fallback
    return value if math.isfinite(value) else fallback


def _integer(raw: Any, fallback: int) -> int:
    return int(math.floor(_number(raw, fallback)))


def _boolean(raw: Any, fallback: bool) -> bool:
    if isinstance(raw, bool):
        return raw
    if raw is None:
        return fallback
    normalized = str(raw).strip().lower()
    if normalized in _TRUE:
        return True
    if normalized in _FALSE:
        return False
    return fallback


def _string(raw: Any, fallback: str) -> str:
    if raw is None or not str(raw).strip():
        return fallback
    return str(raw).strip()


def _apply_env_overrides(raw: dict[str, Any], environ: Mapping[str, str]) -> dict[str, Any]:
    merged = {k: (dict(v) if isinstance(v, dict) else v) for k, v in raw.items()}
    for suffix, (section, key) in ENV_OVERRIDES.items():
        value = environ.get(ENV_PREFIX + suffix)
        if value is None or not value.strip():
            continue
        merged.setdefault(section, {})
        if not isinstance(merged[section], dict):
            merged[section] = {}
        merged[section][key] = value.strip()
    return merged


def _build_config(raw: dict[str, Any]) -> ContextLanesConfig:
    """Build a ContextLanesConfig from a raw dict, clamping every knob."""
    d_routing = RoutingConfig()
    routing_raw = raw.get("routing", {}) or {}
    primary = clamp(
        _number(routing_raw.get("primary_threshold"), d_routing.primary_threshold), 0.05, 0.99,
    )
    routing = RoutingConfig(
        enabled=_boolean(routing_raw.get("enabled"), d_routing.enabled),
        primary_threshold=primary,
        secondary_threshold=min(
            primary,
            clamp(_number(routing_raw.get("secondary_threshold"), d_routing.secondary_threshold), 0.01, 0.99),
        ),
        switch_margin=clamp(_number(routing_raw.get("switch_margin"), d_routing.switch_margin), 0.0, 0.5),
        max_active=max(1, _integer(routing_raw.get("max_active"), d_routing.max_active)),
        summary_max_chars=max(
            200, _integer(routing_raw.get("summary_max_chars"), d_routing.summary_max_chars),
        ),
        keep_recent_messages=max(
            2, _integer(routing_raw.get("keep_recent_messages"), d_routing.keep_recent_messages),
        ),
        min_history_token_ratio=clamp(
            _number(routing_raw.get("min_history_token_ratio"), d_routing.min_history_token_ratio), 0.0, 1.0,
        ),
    )

    d_semantic = SemanticRerankConfig()
    semantic_raw = raw.get("semantic", {}) or {}
    semantic = SemanticRerankConfig(
        enabled=_boolean(semantic_raw.get("enabled"), d_semantic.enabled),
        weight=clamp(_number(semantic_raw.get("weight"), d_semantic.weight), 0.0, 1.0),
        ambiguity_top_score=clamp(
            _number(semantic_raw.get("ambiguity_top_score"), d_semantic.ambiguity_top_score), 0.0, 1.0,
        ),
        ambiguity_gap=clamp(_number(semantic_raw.get("ambiguity_gap"), d_semantic.ambiguity_gap), 0.0, 1.0),
        top_k=max(2, _integer(semantic_raw.get("top_k"), d_semantic.top_k)),
    )

    d_embedding = EmbeddingConfig()
    embedding_raw = raw.get("embedding", {}) or {}
    embedding = EmbeddingConfig(
        provider=_string(embedding_raw.get("provider"), d_embedding.provider).lower(),
        model=_string(embedding_raw.get("model"), d_embedding.model),
        base_url=_string(embedding_raw.get("base_url"), d_embedding.base_url),
        timeout_ms=max(500, _integer(embedding_raw.get("timeout_ms"), d_embedding.timeout_ms)),
        max_chars=max(1000, _integer(embedding_raw.get("max_chars"), d_embedding.max_chars)),
    )

    d_storage = StorageConfig()
    storage_raw = raw.get("storage", {}) or {}
    storage = StorageConfig(
        backend=_string(storage_raw.get("backend"), d_storage.backend).lower(),
        db_path=_string(storage_raw.get("db_path"), d_storage.db_path),
    )

    return ContextLanesConfig(
        version=str(raw.get("version", "0.1")),
        routing=routing,
        semantic=semantic,
        embedding=embedding,
        storage=storage,
    )


def validate_config(config: ContextLanesConfig) -> list[str]:
    """Validate a config. Returns list of error strings (empty = valid)."""
    errors: list[str] = []

    if config.routing.secondary_threshold > config.routing.primary_threshold:
        errors.append(
            f"secondary_threshold ({config.routing.secondary_threshold}) must be <= "
            f"primary_threshold ({config.routing.primary_threshold})"
        )

    if config.routing.keep_recent_messages < 1:
        errors.append("keep_recent_messages must be >= 1")

    if config.embedding.provider not in ("ollama", "sentence-transformers"):
        errors.append(f"Unknown embedding provider '{config.embedding.provider}'")

    if config.storage.backend not in ("sqlite", "memory"):
        errors.append(f"Unknown storage backend '{config.storage.backend}'")

    if config.semantic.enabled and config.semantic.weight <= 0:
        errors.append("semantic.weight must be > 0 when semantic rerank is enabled")

    return errors


def load_config(
    config_path: str | Path | None = None,
    config_dict: dict | None = None,
    environ: Mapping[str, str] | None = None,
) -> ContextLanesConfig:
    """Load config from dict, explicit path, or auto-discover.

    ``CONTEXT_LANES_*`` environment variables override file and dict values.
    Pass ``environ={}`` to ignore the process environment.
    """
    env = os.environ if environ is None else environ

    if config_dict is not None:
        return _build_config(_apply_env_overrides(config_dict, env))

    if config_path is not None:
        path = Path(config_path)
    else:
        path = _discover_config()

    if path is None:
        # Return defaults
        return _build_config(_apply_env_overrides({}, env))

    if not path.is_file():
        raise FileNotFoundError(f"Config file not found: {path}")

    text = path.read_text()
    if path.suffix == ".json":
        raw = json.loads(text)
    else:
        raw = yaml.safe_load(text) or {}

    return _build_config(_apply_env_overrides(raw, env))
