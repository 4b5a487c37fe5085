"""
Stable facade: error taxonomy and call context. No providers, store, or cli.
Do not add exports without updating __all__.
"""

from __future__ import annotations

from .context import ErrorContext, utc_now_iso
from .errors import (
    AllSourcesFailedError,
    CircuitOpenError,
    ErrorKind,
    FatalSourceError,
    MarketFeedError,
    SourceError,
    TransientSourceError,
    classify_error,
    http_status_for,
)

# Do not add exports without updating __all__.
__all__ = [
    "AllSourcesFailedError",
    "CircuitOpenError",
    "ErrorContext",
    "ErrorKind",
    "FatalSourceError",
    "MarketFeedError",
    "SourceError",
    "TransientSourceError",
    "classify_error",
    "http_status_for",
    "utc_now_iso",
]
