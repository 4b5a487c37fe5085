"""
Shared exception types for market_feed.

Adapters raise SourceError subclasses at the provider boundary, tagged with an
ErrorKind. Retry and circuit-breaker logic switch on the kind only; foreign
exceptions (requests, builtins) are mapped once by classify_error.
"""

from __future__ import annotations

import enum
from typing import Dict, Optional

import requests


class ErrorKind(enum.Enum):
    """Closed set of failure classes seen by the resilience layer."""

    TRANSIENT = "transient"
    FATAL = "fatal"
    CIRCUIT_OPEN = "circuit_open"


class MarketFeedError(Exception):
    """Base exception for market_feed; catch this for any package-raised error."""

    kind: ErrorKind = ErrorKind.TRANSIENT


class SourceError(MarketFeedError):
    """A provider call failed. `kind` decides whether it is worth retrying."""

    def __init__(self, message: str, *, source: str = "", kind: Optional[ErrorKind] = None) -> None:
        super().__init__(message)
        self.source = source
        if kind is not None:
            self.kind = kind


class TransientSourceError(SourceError):
    """Timeouts, connection failures, rate limits, 5xx answers."""

    kind = ErrorKind.TRANSIENT


class FatalSourceError(SourceError):
    """Client-side errors (4xx, unknown symbol, malformed payload). Never retried."""

    kind = ErrorKind.FATAL


class CircuitOpenError(MarketFeedError):
    """Raised without calling the dependency while its breaker is open."""

    kind = ErrorKind.CIRCUIT_OPEN

    def __init__(self, name: str, retry_in_s: Optional[float] = None) -> None:
        msg = f"Circuit breaker OPEN for {name}"
        if retry_in_s is not None:
            msg += f" (retry in {retry_in_s:.1f}s)"
        super().__init__(msg)
        self.name = name
        self.retry_in_s = retry_in_s


class AllSourcesFailedError(MarketFeedError):
    """Every provider failed and no cached value was available."""

    kind = ErrorKind.TRANSIENT

    def __init__(self, symbol: str, errors: Optional[Dict[str, str]] = None) -> None:
        self.symbol = symbol
        self.errors = dict(errors or {})
        detail = "; ".join(f"{k}: {v}" for k, v in self.errors.items()) or "no sources available"
        super().__init__(f"All sources failed for {symbol}: {detail}")


_TRANSIENT_HTTP = frozenset({408, 425, 429})


def kind_for_status(status_code: int) -> ErrorKind:
    """HTTP status -> ErrorKind. 5xx and throttling are transient, other 4xx fatal."""
    if status_code >= 500 or status_code in _TRANSIENT_HTTP:
        return ErrorKind.TRANSIENT
    if 400 <= status_code < 500:
        return ErrorKind.FATAL
    return ErrorKind.TRANSIENT


def classify_error(exc: BaseException) -> ErrorKind:
    """Map any exception onto ErrorKind. Unknown errors are treated as transient."""
    if isinstance(exc, MarketFeedError):
        return exc.kind
    if isinstance(exc, requests.HTTPError):
        resp = exc.response
        if resp is not None and resp.status_code is not None:
            return kind_for_status(int(resp.status_code))
        return ErrorKind.TRANSIENT
    if isinstance(exc, (requests.Timeout, requests.ConnectionError, TimeoutError, ConnectionError)):
        return ErrorKind.TRANSIENT
    if isinstance(exc, (ValueError, TypeError, KeyError)):
        return ErrorKind.FATAL
    return ErrorKind.TRANSIENT


def http_status_for(exc: BaseException) -> int:
    """Status code an API layer should answer with for this error."""
    if isinstance(exc, (AllSourcesFailedError, CircuitOpenError)):
        return 503
    if classify_error(exc) is ErrorKind.FATAL:
        return 400
    return 502


__all__ = [
    "AllSourcesFailedError",
    "CircuitOpenError",
    "ErrorKind",
    "FatalSourceError",
    "MarketFeedError",
    "SourceError",
    "TransientSourceError",
    "classify_error",
    "http_status_for",
    "kind_for_status",
]
