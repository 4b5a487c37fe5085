"""
In-process TTL cache. Default backend and the one used in tests.
"""

from __future__ import annotations

import time
from typing import Callable, Dict, Optional, Tuple


class MemoryCacheStore:
    """
    Dict-backed CacheStore. Expired entries are dropped lazily on read
    or in bulk by purge_expired().
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._store: Dict[str, Tuple[str, float]] = {}

    async def get(self, key: str) -> Optional[str]:
        entry = self._store.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if self._clock() >= expires_at:
            self._store.pop(key, None)
            return None
        return value

    async def set(self, key: str, value: str, ttl_s: float) -> None:
        if ttl_s <= 0:
            raise ValueError(f"ttl_s must be positive, got {ttl_s}")
        self._store[key] = (value, self._clock() + ttl_s)

    async def delete(self, key: str) -> bool:
        return self._store.pop(key, None) is not None

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        self._store.clear()

    def purge_expired(self) -> int:
        now = self._clock()
        expired = [k for k, (_, exp) in self._store.items() if now >= exp]
        for k in expired:
            del self._store[k]
        return len(expired)

    def keys(self) -> list[str]:
        return list(self._store)

    def __len__(self) -> int:
        return len(self._store)
