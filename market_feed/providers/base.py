"""
Provider interfaces and data contracts.

Every upstream provider implements SourceAdapter (and optionally
MarketSummarySource). Validators implement Validator.

Data is returned via frozen dataclasses for immutability and type safety.
"""

from __future__ import annotations

import enum
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Protocol, Sequence, runtime_checkable


def parse_iso(ts: str) -> datetime:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC."""
    value = datetime.fromisoformat(ts.replace("Z", "+00:00"))
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


def utc_iso(epoch_s: float) -> str:
    return datetime.fromtimestamp(epoch_s, tz=timezone.utc).isoformat(timespec="seconds")


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


class HealthStatus(enum.Enum):
    """Health classification of a dependency."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


@dataclass(frozen=True)
class SourceRecord:
    """Immutable normalized quote from one provider."""

    symbol: str
    price: float
    volume: float
    timestamp: str
    source: str
    priority: int
    change: Optional[float] = None
    change_percent: Optional[float] = None
    high: Optional[float] = None
    low: Optional[float] = None
    open: Optional[float] = None
    close: Optional[float] = None
    stale: bool = False

    def has_price(self) -> bool:
        return self.price is not None and self.price != 0

    def fetched_at(self) -> datetime:
        return parse_iso(self.timestamp)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SourceRecord":
        known = {f for f in cls.__dataclass_fields__}
        return cls(**{k: v for k, v in data.items() if k in known})


@dataclass(frozen=True)
class MarketSummary:
    """Immutable breadth summary for the whole market from one provider."""

    total_volume: float
    total_value: float
    gainers: int
    losers: int
    unchanged: int
    timestamp: str
    source: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ValidationOutcome:
    is_valid: bool
    confidence: float
    issues: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class CrossValidationOutcome:
    consensus_record: Optional[SourceRecord]
    confidence: float
    discrepancies: List[str] = field(default_factory=list)


@runtime_checkable
class SourceAdapter(Protocol):
    """Protocol for quote providers. Lower priority number = more trusted."""

    @property
    def name(self) -> str: ...

    @property
    def priority(self) -> int: ...

    async def fetch(self, symbol: str) -> SourceRecord:
        """Fetch the current quote for a symbol (e.g., 'AAPL', 'THYAO.IS')."""
        ...


@runtime_checkable
class MarketSummarySource(Protocol):
    """Optional capability: providers that can summarize market breadth."""

    @property
    def name(self) -> str: ...

    async def fetch_market_summary(self) -> MarketSummary: ...


@runtime_checkable
class Validator(Protocol):
    """Plausibility checks for one record and consistency checks across many."""

    def validate(self, record: SourceRecord) -> ValidationOutcome: ...

    def cross_validate(self, records: Sequence[SourceRecord]) -> CrossValidationOutcome: ...
