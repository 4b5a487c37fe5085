"""
Load config from config.yaml with optional env overrides.
Single source of truth for source priority, resilience tuning, cache backend
and validation thresholds.
"""
from __future__ import annotations

import os
from dataclasses import replace
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from .providers.resilience import CircuitBreakerConfig, RetryConfig
from .providers.validation import ValidationSettings

# Defaults if no YAML or env
_DEFAULTS: Dict[str, Any] = {
    "sources": {
        "priority": ["yahoo_finance", "alpha_vantage"],
        # Per-source max_attempts; sources not listed use retry.max_attempts.
        "retry": {"yahoo_finance": 3, "alpha_vantage": 2},
    },
    "retry": {
        "max_attempts": 3,
        "base_delay_s": 1.0,
        "max_delay_s": 30.0,
        "jitter_factor": 0.25,
    },
    "circuit_breaker": {
        "failure_threshold": 5,
        "reset_timeout_s": 60.0,
        "half_open_trial_count": 1,
    },
    "health": {
        "ttl_s": 30.0,
        "degraded_threshold_ms": 250.0,
        "refresh_interval_s": 30.0,
    },
    "cache": {
        "backend": "memory",
        "path": "market_feed_cache.sqlite",
        "source_ttl_s": 300.0,
        "latest_ttl_s": 600.0,
        "critical_error_ttl_s": 3600.0,
    },
    "validation": {
        "min_confidence": 0.7,
        "variance_threshold": 0.05,
        "max_age_s": 300.0,
        "max_change_percent": 15.0,
    },
}


def _config_yaml_path() -> Path:
    """MARKET_FEED_CONFIG if set, else config.yaml at repo root (parent of package dir)."""
    override = os.environ.get("MARKET_FEED_CONFIG")
    if override:
        return Path(override)
    return Path(__file__).resolve().parent.parent / "config.yaml"


def _load_yaml(path: Optional[Path] = None) -> dict:
    config_path = path or _config_yaml_path()
    if not config_path.exists():
        return {}
    with open(config_path, encoding="utf-8") as f:
        data = yaml.safe_load(f)
    return data if isinstance(data, dict) else {}


def _deep_merge(base: dict, override: dict) -> dict:
    out = dict(base)
    for k, v in override.items():
        if k in out and isinstance(out[k], dict) and isinstance(v, dict):
            out[k] = _deep_merge(out[k], v)
        else:
            out[k] = v
    return out


def _env_overrides() -> dict:
    overrides: dict = {}
    backend = os.environ.get("MARKET_FEED_CACHE_BACKEND")
    if backend:
        overrides.setdefault("cache", {})["backend"] = backend
    path = os.environ.get("MARKET_FEED_CACHE_PATH")
    if path:
        overrides.setdefault("cache", {})["path"] = path
    sources = os.environ.get("MARKET_FEED_SOURCES")
    if sources:
        names = [s.strip() for s in sources.split(",") if s.strip()]
        overrides.setdefault("sources", {})["priority"] = names
    return overrides


def get_config(path: Optional[Path] = None) -> dict:
    """Return merged config: defaults <- config.yaml <- env."""
    merged = _deep_merge(_DEFAULTS, _load_yaml(path))
    merged = _deep_merge(merged, _env_overrides())
    return merged


# Convenience accessors
def source_priority(cfg: Optional[dict] = None) -> List[str]:
    cfg = cfg or get_config()
    return list(cfg["sources"]["priority"])


def retry_config(cfg: Optional[dict] = None) -> RetryConfig:
    r = (cfg or get_config())["retry"]
    return RetryConfig(
        max_attempts=int(r["max_attempts"]),
        base_delay_s=float(r["base_delay_s"]),
        max_delay_s=float(r["max_delay_s"]),
        jitter_factor=float(r["jitter_factor"]),
    )


def source_retry_configs(cfg: Optional[dict] = None) -> Dict[str, RetryConfig]:
    cfg = cfg or get_config()
    base = retry_config(cfg)
    per_source = cfg["sources"].get("retry") or {}
    return {name: replace(base, max_attempts=int(n)) for name, n in per_source.items()}


def circuit_breaker_config(cfg: Optional[dict] = None) -> CircuitBreakerConfig:
    cb = (cfg or get_config())["circuit_breaker"]
    return CircuitBreakerConfig(
        failure_threshold=int(cb["failure_threshold"]),
        reset_timeout_s=float(cb["reset_timeout_s"]),
        half_open_trial_count=int(cb["half_open_trial_count"]),
    )


def cache_settings(cfg: Optional[dict] = None) -> Dict[str, Any]:
    return dict((cfg or get_config())["cache"])


def health_settings(cfg: Optional[dict] = None) -> Dict[str, Any]:
    return dict((cfg or get_config())["health"])


def validation_settings(cfg: Optional[dict] = None) -> ValidationSettings:
    v = (cfg or get_config())["validation"]
    max_age = v.get("max_age_s")
    return ValidationSettings(
        max_change_percent=float(v.get("max_change_percent", 15.0)),
        max_age_s=float(max_age) if max_age is not None else None,
        price_variance_threshold=float(v["variance_threshold"]),
    )


def alpha_vantage_api_key() -> str:
    return os.environ.get("ALPHA_VANTAGE_API_KEY", "")
