"""
Cache store interface: async key/value with per-key TTL.

Values are opaque strings (JSON at the call site); each key is owned by one
symbol/source pair, so no transactions are needed.
"""

from __future__ import annotations

from typing import Optional, Protocol, runtime_checkable


def source_key(symbol: str, source: str) -> str:
    return f"stock_data:{symbol.upper()}:{source}"


def latest_key(symbol: str) -> str:
    return f"stock_latest:{symbol.upper()}"


def critical_error_key(epoch_ms: int, seq: int) -> str:
    """`seq` keeps records written in the same millisecond apart."""
    return f"critical_error:{epoch_ms}:{seq}"


@runtime_checkable
class CacheStore(Protocol):
    async def get(self, key: str) -> Optional[str]:
        """Return the stored value, or None when missing or expired."""
        ...

    async def set(self, key: str, value: str, ttl_s: float) -> None: ...

    async def delete(self, key: str) -> bool: ...

    async def ping(self) -> bool: ...

    async def close(self) -> None: ...
