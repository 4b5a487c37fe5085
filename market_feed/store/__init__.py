"""
Cache stores for last-known quotes and critical error records.
Backend is chosen by config: "memory" (default) or "sqlite".
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from .base import CacheStore, critical_error_key, latest_key, source_key
from .memory import MemoryCacheStore
from .sqlite_store import SqliteCacheStore


def create_cache_store(settings: Optional[Dict[str, Any]] = None) -> CacheStore:
    """Build the configured backend from the `cache` config section."""
    settings = settings or {}
    backend = str(settings.get("backend", "memory")).lower()
    if backend == "memory":
        return MemoryCacheStore()
    if backend == "sqlite":
        return SqliteCacheStore(settings.get("path", "market_feed_cache.sqlite"))
    raise ValueError(f"Unknown cache backend '{backend}'. Available: ['memory', 'sqlite']")


__all__ = [
    "CacheStore",
    "MemoryCacheStore",
    "SqliteCacheStore",
    "create_cache_store",
    "critical_error_key",
    "latest_key",
    "source_key",
]
