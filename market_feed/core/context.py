"""
Diagnostic context attached to every provider call and failure.
Core-only: no imports from providers, store, or cli.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds")


@dataclass(frozen=True)
class ErrorContext:
    """
    Who was calling what, and for which symbol.
    Created at the call site; never mutated. Use with_metadata() to derive.
    """

    operation: str
    source: str = ""
    symbol: Optional[str] = None
    timestamp: str = field(default_factory=utc_now_iso)
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "metadata", MappingProxyType(dict(self.metadata)))

    def with_metadata(self, **extra: Any) -> "ErrorContext":
        return replace(self, metadata={**self.metadata, **extra})

    def as_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "operation": self.operation,
            "source": self.source,
            "timestamp": self.timestamp,
        }
        if self.symbol is not None:
            out["symbol"] = self.symbol
        if self.metadata:
            out["metadata"] = dict(self.metadata)
        return out
