"""
Fake quote sources for orchestrator and service tests: deterministic data,
fail-N-then-succeed, always-fail. No live network.
"""

from __future__ import annotations

import asyncio
from typing import Callable, Optional

from market_feed.core.errors import TransientSourceError
from market_feed.providers.base import MarketSummary, SourceRecord, utc_now_iso


class FakeSource:
    """Source that always returns the same price for any symbol."""

    def __init__(
        self,
        name: str,
        price: float = 100.0,
        *,
        priority: int = 1,
        volume: float = 1000.0,
        timestamp: Optional[str] = None,
        gate: Optional[asyncio.Event] = None,
    ):
        self._name = name
        self._priority = priority
        self.price = price
        self.volume = volume
        self.timestamp = timestamp
        self.gate = gate
        self.call_count = 0

    @property
    def name(self) -> str:
        return self._name

    @property
    def priority(self) -> int:
        return self._priority

    async def fetch(self, symbol: str) -> SourceRecord:
        self.call_count += 1
        if self.gate is not None:
            await self.gate.wait()
        return SourceRecord(
            symbol=symbol,
            price=self.price,
            volume=self.volume,
            timestamp=self.timestamp or utc_now_iso(),
            source=self._name,
            priority=self._priority,
        )


class FakeSourceFailNThenSucceed(FakeSource):
    """Raises a transient error for the first `fail_times` calls."""

    def __init__(self, name: str, fail_times: int, price: float = 100.0, **kwargs):
        super().__init__(name, price, **kwargs)
        self.fail_times = fail_times

    async def fetch(self, symbol: str) -> SourceRecord:
        if self.call_count < self.fail_times:
            self.call_count += 1
            raise TransientSourceError(f"{self.name} temporary failure", source=self.name)
        return await super().fetch(symbol)


class FakeSourceAlwaysFail(FakeSource):
    """Raises on every call; transient by default."""

    def __init__(self, name: str, *, error: Optional[Callable[[str], Exception]] = None, **kwargs):
        super().__init__(name, **kwargs)
        self._error = error or (lambda n: TransientSourceError(f"{n} is down", source=n))

    async def fetch(self, symbol: str) -> SourceRecord:
        self.call_count += 1
        raise self._error(self.name)


class FakeSummarySource(FakeSource):
    """FakeSource that can also summarize market breadth."""

    async def fetch_market_summary(self) -> MarketSummary:
        self.call_count += 1
        return MarketSummary(
            total_volume=1_000_000.0,
            total_value=0.0,
            gainers=3,
            losers=1,
            unchanged=1,
            timestamp=utc_now_iso(),
            source=self.name,
        )
