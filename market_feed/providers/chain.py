"""
Multi-source orchestration: fan-out with resilience wrappers, validation,
cross-validation, cache persistence and last-known-cache fallback.

All registered sources are queried concurrently. Circuit breakers skip
sources known to be failing; retries absorb transient errors. Validated
answers are ranked by source priority, and the winner is cached so a total
outage later can still be answered from the "latest" key.
"""
from __future__ import annotations

import asyncio
import itertools
import json
import logging
import time
from dataclasses import dataclass, replace
from typing import Any, Callable, Dict, List, Optional, Sequence

from ..core.context import ErrorContext
from ..core.errors import AllSourcesFailedError
from ..store.base import CacheStore, critical_error_key, latest_key, source_key
from .base import MarketSummary, MarketSummarySource, SourceAdapter, SourceRecord, Validator, utc_now_iso
from .resilience import CircuitBreakerRegistry, RetryConfig, RetryExecutor
from .stats import ErrorStatisticsRegistry
from .validation import most_trusted, relative_spread

logger = logging.getLogger(__name__)
alerts_logger = logging.getLogger("market_feed.alerts")


@dataclass(frozen=True)
class OrchestratorSettings:
    source_ttl_s: float = 300.0
    latest_ttl_s: float = 600.0
    critical_error_ttl_s: float = 3600.0
    variance_threshold: float = 0.05
    min_confidence: float = 0.7


@dataclass(frozen=True)
class _Attempt:
    source: str
    record: Optional[SourceRecord] = None
    error: Optional[str] = None


class CriticalErrorHandler:
    """
    Terminal failures: error-level log plus best-effort persistence of the
    error context to the cache store. Persistence failures go to the alerts
    channel and are never re-raised.
    """

    def __init__(
        self,
        cache: CacheStore,
        ttl_s: float = 3600.0,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._cache = cache
        self._ttl_s = ttl_s
        self._clock = clock
        self._seq = itertools.count(1)

    async def handle(self, error: BaseException, context: ErrorContext) -> None:
        logger.error(
            "Critical error in %s: %s",
            context.operation, error,
            extra={"context": context.as_dict(), "severity": "critical"},
        )
        payload = {
            "error": str(error),
            "type": type(error).__name__,
            "context": context.as_dict(),
            "timestamp": utc_now_iso(),
        }
        try:
            await self._cache.set(
                critical_error_key(int(self._clock() * 1000), next(self._seq)),
                json.dumps(payload, default=str),
                self._ttl_s,
            )
        except Exception as exc:
            alerts_logger.error("Failed to persist critical error for %s: %s", context.operation, exc)


class DataOrchestrator:
    """
    Fetches one quote from several providers and returns a single answer.

    Individual provider and validation failures are absorbed here; only
    total exhaustion with an empty cache surfaces as AllSourcesFailedError.
    """

    def __init__(
        self,
        sources: Sequence[SourceAdapter],
        *,
        cache: CacheStore,
        validator: Validator,
        retry: RetryExecutor,
        breakers: CircuitBreakerRegistry,
        stats: Optional[ErrorStatisticsRegistry] = None,
        settings: Optional[OrchestratorSettings] = None,
        retry_configs: Optional[Dict[str, RetryConfig]] = None,
    ) -> None:
        self._sources = sorted(sources, key=lambda s: (s.priority, s.name))
        self._cache = cache
        self._validator = validator
        self._retry = retry
        self._breakers = breakers
        self._stats = stats
        self.settings = settings or OrchestratorSettings()
        self._retry_configs = dict(retry_configs or {})
        self._critical = CriticalErrorHandler(cache, self.settings.critical_error_ttl_s)

    @property
    def sources(self) -> List[SourceAdapter]:
        return list(self._sources)

    async def fetch(self, symbol: str) -> SourceRecord:
        """
        Fetch a quote using every source, with circuit breaker + retry protection.
        Falls back to the cached latest value if no source yields a valid record.
        """
        symbol = (symbol or "").strip().upper()
        if not symbol:
            raise ValueError("symbol must be a non-empty string")

        attempts = await asyncio.gather(*(self._fetch_one(src, symbol) for src in self._sources))
        errors: Dict[str, str] = {}
        valid: List[SourceRecord] = []
        for attempt in attempts:
            if attempt.record is not None:
                valid.append(attempt.record)
            elif attempt.error is not None:
                errors[attempt.source] = attempt.error

        if not valid:
            return await self._fallback(symbol, errors)

        if len(valid) == 1:
            winner = valid[0]
        else:
            winner = self._resolve(symbol, valid)

        await self._cache_records(symbol, winner, valid)
        return winner

    async def _fetch_one(self, source: SourceAdapter, symbol: str) -> _Attempt:
        name = source.name
        context = ErrorContext(operation="fetch_stock_data", source=name, symbol=symbol)
        try:
            record = await self._breakers.guard(
                name,
                lambda: self._retry.execute(lambda: source.fetch(symbol), context, self._retry_configs.get(name)),
            )
        except Exception as exc:
            msg = f"{type(exc).__name__}: {exc}"
            logger.warning("Failed to fetch %s from %s: %s", symbol, name, msg, extra={"context": context.as_dict()})
            return _Attempt(name, error=msg)

        if record.source != name or record.priority != source.priority:
            record = replace(record, source=name, priority=source.priority)

        if not record.has_price():
            logger.warning("%s: discarding %s quote with zero price", name, symbol)
            return _Attempt(name, error="zero price")

        try:
            outcome = self._validator.validate(record)
        except Exception as exc:
            logger.error("Validator raised on %s record for %s: %s", name, symbol, exc)
            return _Attempt(name, error=f"validation error: {exc}")

        if not outcome.is_valid or outcome.confidence < self.settings.min_confidence:
            logger.warning(
                "Data validation failed for %s (%s): confidence=%.2f issues=%s",
                name, symbol, outcome.confidence, outcome.issues,
                extra={"context": context.with_metadata(
                    confidence=outcome.confidence, issues=list(outcome.issues)
                ).as_dict()},
            )
            return _Attempt(name, error=f"invalid data (confidence={outcome.confidence:.2f})")
        return _Attempt(name, record=record)

    def _resolve(self, symbol: str, records: List[SourceRecord]) -> SourceRecord:
        winner = most_trusted(records)
        try:
            cross = self._validator.cross_validate(records)
        except Exception as exc:
            logger.error("Cross-validation raised for %s, using %s: %s", symbol, winner.source, exc)
            cross = None
        threshold = self.settings.variance_threshold

        spread = relative_spread([r.price for r in records])
        if spread > threshold:
            discrepant = sorted(
                r.source for r in records
                if r is not winner and abs(r.price - winner.price) / winner.price > threshold
            )
            if not discrepant:
                # Spread is measured end to end; name the extremes when none is far from the winner.
                lo = min(records, key=lambda r: r.price)
                hi = max(records, key=lambda r: r.price)
                discrepant = sorted({lo.source, hi.source} - {winner.source})
            logger.warning(
                "High price variance for %s: spread=%.2f%% discrepant=%s winner=%s prices=%s",
                symbol, spread * 100, discrepant, winner.source,
                {r.source: r.price for r in records},
            )
        if cross is not None and cross.discrepancies:
            logger.info(
                "Cross-validation for %s: confidence=%.2f %s",
                symbol, cross.confidence, "; ".join(cross.discrepancies),
            )
        return winner

    async def _cache_records(self, symbol: str, winner: SourceRecord, records: List[SourceRecord]) -> None:
        writes = [(source_key(symbol, r.source), r, self.settings.source_ttl_s) for r in records]
        writes.append((latest_key(symbol), winner, self.settings.latest_ttl_s))
        for key, record, ttl in writes:
            try:
                await self._cache.set(key, json.dumps(record.to_dict()), ttl)
            except Exception as exc:
                logger.warning("Failed to cache %s under %s: %s", symbol, key, exc)

    async def _fallback(self, symbol: str, errors: Dict[str, str]) -> SourceRecord:
        cached = await self.get_cached(symbol)
        if cached is not None:
            logger.info(
                "All sources failed for %s, using cached data from %s (%s)",
                symbol, cached.source, cached.timestamp,
            )
            return replace(cached, stale=True)

        error = AllSourcesFailedError(symbol, errors)
        await self._critical.handle(
            error,
            ErrorContext(
                operation="fetch_stock_data_all_sources",
                symbol=symbol,
                metadata={"error_count": len(errors), "errors": errors},
            ),
        )
        raise error

    async def get_cached(self, symbol: str) -> Optional[SourceRecord]:
        """Last known value under the "latest" key, or None."""
        key = latest_key(symbol)
        try:
            raw = await self._cache.get(key)
        except Exception as exc:
            logger.warning("Failed to read cached data for %s: %s", symbol, exc)
            return None
        if not raw:
            return None
        try:
            return SourceRecord.from_dict(json.loads(raw))
        except (ValueError, TypeError) as exc:
            logger.warning("Discarding unreadable cache entry %s: %s", key, exc)
            return None

    async def fetch_market_summary(self) -> List[MarketSummary]:
        """One summary per capable source; failed sources are skipped."""
        capable = [s for s in self._sources if isinstance(s, MarketSummarySource)]
        results = await asyncio.gather(*(self._summary_one(s) for s in capable))
        return [r for r in results if r is not None]

    async def _summary_one(self, source: Any) -> Optional[MarketSummary]:
        name = source.name
        context = ErrorContext(operation="fetch_market_summary", source=name)
        try:
            return await self._breakers.guard(
                name,
                lambda: self._retry.execute(source.fetch_market_summary, context, self._retry_configs.get(name)),
            )
        except Exception as exc:
            logger.warning("Failed to fetch market summary from %s: %s", name, exc)
            return None

    def get_status(self) -> Dict[str, Any]:
        """Source priorities, breaker states and error statistics."""
        return {
            "sources": [
                {
                    "name": s.name,
                    "priority": s.priority,
                    "circuit_state": self._breakers.get(s.name).state.value if s.name in self._breakers else "CLOSED",
                }
                for s in self._sources
            ],
            "error_stats": self._stats.snapshot().to_dict() if self._stats is not None else None,
        }
