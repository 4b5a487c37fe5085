"""
Dependency health checks: cache store ping and provider reachability.

Results are memoized per service for a TTL window so dashboards and
health endpoints can poll freely without hammering upstream sites.
"""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional

import requests

from .base import HealthStatus, utc_now_iso

logger = logging.getLogger(__name__)

Probe = Callable[[], Awaitable[Any]]

DEFAULT_TTL_S = 30.0
DEFAULT_DEGRADED_THRESHOLD_MS = 250.0
PROBE_TIMEOUT_S = 5.0


@dataclass(frozen=True)
class HealthCheckResult:
    service: str
    status: HealthStatus
    response_time_ms: float
    checked_at: str
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "service": self.service,
            "status": self.status.value,
            "response_time_ms": round(self.response_time_ms, 2),
            "checked_at": self.checked_at,
        }
        if self.error is not None:
            out["error"] = self.error
        return out


@dataclass
class _Registration:
    probe: Probe
    degraded_threshold_ms: float


def http_probe(url: str, timeout_s: float = PROBE_TIMEOUT_S) -> Probe:
    """HEAD request probe. Any answer below 500 counts as reachable."""

    def _head() -> int:
        resp = requests.head(url, timeout=timeout_s, allow_redirects=True)
        if resp.status_code >= 500:
            raise RuntimeError(f"HTTP {resp.status_code} from {url}")
        return resp.status_code

    async def _probe() -> int:
        return await asyncio.to_thread(_head)

    return _probe


class HealthChecker:
    """
    Probes a fixed set of named dependencies on demand.

    check() returns the cached result while it is younger than `ttl_s`;
    concurrent checks of the same service share one in-flight probe.
    check_all() never raises because of an unhealthy dependency.
    """

    def __init__(
        self,
        *,
        ttl_s: float = DEFAULT_TTL_S,
        degraded_threshold_ms: float = DEFAULT_DEGRADED_THRESHOLD_MS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_s = ttl_s
        self.degraded_threshold_ms = degraded_threshold_ms
        self._clock = clock
        self._probes: Dict[str, _Registration] = {}
        self._cache: Dict[str, tuple[HealthCheckResult, float]] = {}
        self._inflight: Dict[str, "asyncio.Future[HealthCheckResult]"] = {}
        self._last_check_at: Optional[str] = None

    def register(self, service: str, probe: Probe, *, degraded_threshold_ms: Optional[float] = None) -> None:
        threshold = self.degraded_threshold_ms if degraded_threshold_ms is None else degraded_threshold_ms
        self._probes[service] = _Registration(probe=probe, degraded_threshold_ms=threshold)

    @property
    def services(self) -> List[str]:
        return list(self._probes)

    @property
    def last_check_at(self) -> Optional[str]:
        return self._last_check_at

    async def check(self, service: str, *, force: bool = False) -> HealthCheckResult:
        reg = self._probes.get(service)
        if reg is None:
            raise KeyError(f"Unknown health check service '{service}'. Available: {list(self._probes)}")
        if not force:
            cached = self._cache.get(service)
            if cached is not None and (self._clock() - cached[1]) < self.ttl_s:
                return cached[0]
        pending = self._inflight.get(service)
        if pending is None:
            pending = asyncio.ensure_future(self._run_probe(service, reg))
            self._inflight[service] = pending
            pending.add_done_callback(lambda _f: self._inflight.pop(service, None))
        return await asyncio.shield(pending)

    async def check_all(self, *, force: bool = False) -> List[HealthCheckResult]:
        return list(await asyncio.gather(*(self.check(name, force=force) for name in self._probes)))

    async def _run_probe(self, service: str, reg: _Registration) -> HealthCheckResult:
        start = time.perf_counter()
        try:
            await reg.probe()
        except Exception as exc:
            result = HealthCheckResult(
                service=service,
                status=HealthStatus.UNHEALTHY,
                response_time_ms=-1.0,
                checked_at=utc_now_iso(),
                error=f"{type(exc).__name__}: {exc}"[:500],
            )
            logger.warning("Health check %s unhealthy: %s", service, result.error)
        else:
            elapsed_ms = (time.perf_counter() - start) * 1000.0
            status = HealthStatus.DEGRADED if elapsed_ms > reg.degraded_threshold_ms else HealthStatus.HEALTHY
            result = HealthCheckResult(
                service=service,
                status=status,
                response_time_ms=elapsed_ms,
                checked_at=utc_now_iso(),
            )
            if status is HealthStatus.DEGRADED:
                logger.info("Health check %s degraded: %.0fms", service, elapsed_ms)
        self._cache[service] = (result, self._clock())
        self._last_check_at = result.checked_at
        return result

    def latest_results(self) -> List[HealthCheckResult]:
        """Cached results regardless of age. Never probes."""
        return [entry[0] for entry in list(self._cache.values())]

    def clear(self) -> None:
        for pending in list(self._inflight.values()):
            pending.cancel()
        self._inflight.clear()
        self._cache.clear()
        self._last_check_at = None
