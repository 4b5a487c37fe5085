"""
Service facade: owns the cache, breakers, retry executor, statistics,
health checker and orchestrator, plus the periodic health refresh task.

    async with build_service() as svc:
        record = await svc.orchestrator.fetch("AAPL")
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional

from . import config as config_mod
from .providers.chain import DataOrchestrator
from .providers.defaults import create_default_registry, create_orchestrator
from .providers.health import HealthChecker, http_probe
from .providers.registry import ProviderRegistry
from .providers.resilience import CircuitBreakerRegistry
from .providers.stats import ErrorStatisticsRegistry
from .store import CacheStore, create_cache_store

logger = logging.getLogger(__name__)


class MarketFeedService:
    def __init__(
        self,
        orchestrator: DataOrchestrator,
        *,
        cache: CacheStore,
        breakers: CircuitBreakerRegistry,
        stats: ErrorStatisticsRegistry,
        health: HealthChecker,
        refresh_interval_s: float = 30.0,
    ) -> None:
        self.orchestrator = orchestrator
        self.cache = cache
        self.breakers = breakers
        self.stats = stats
        self.health = health
        self.refresh_interval_s = refresh_interval_s
        self._refresh_task: Optional[asyncio.Task] = None
        self._closed = False

    @property
    def running(self) -> bool:
        return self._refresh_task is not None and not self._refresh_task.done()

    async def start(self) -> None:
        """Spawn the background health refresh loop. Idempotent."""
        if self.running:
            return
        if self._closed:
            raise RuntimeError("MarketFeedService has been shut down")
        self._refresh_task = asyncio.create_task(self._refresh_loop(), name="market-feed-health-refresh")
        logger.info("Market feed service started (health refresh every %.0fs)", self.refresh_interval_s)

    async def _refresh_loop(self) -> None:
        while True:
            try:
                await self.health.check_all(force=True)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.error("Health refresh failed: %s", exc)
            await asyncio.sleep(self.refresh_interval_s)

    async def shutdown(self) -> None:
        """Cancel the refresh loop, clear statistics and close the cache. Idempotent."""
        if self._closed:
            return
        self._closed = True
        task, self._refresh_task = self._refresh_task, None
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self.stats.graceful_shutdown()
        try:
            await self.cache.close()
        except Exception as exc:
            logger.warning("Error closing cache store: %s", exc)
        logger.info("Market feed service stopped")

    async def __aenter__(self) -> "MarketFeedService":
        await self.start()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.shutdown()

    def get_status(self) -> Dict[str, Any]:
        status = self.orchestrator.get_status()
        status["running"] = self.running
        return status


def build_service(
    cfg: Optional[Dict[str, Any]] = None,
    *,
    registry: Optional[ProviderRegistry] = None,
    cache: Optional[CacheStore] = None,
) -> MarketFeedService:
    """Assemble a service from config. Registers a cache probe and one HTTP probe per source."""
    cfg = cfg or config_mod.get_config()
    health_cfg = config_mod.health_settings(cfg)
    if cache is None:
        cache = create_cache_store(config_mod.cache_settings(cfg))
    breakers = CircuitBreakerRegistry(config_mod.circuit_breaker_config(cfg))
    health = HealthChecker(
        ttl_s=float(health_cfg["ttl_s"]),
        degraded_threshold_ms=float(health_cfg["degraded_threshold_ms"]),
    )
    stats = ErrorStatisticsRegistry(breakers, health)
    orchestrator = create_orchestrator(
        cfg,
        registry=registry or create_default_registry(config_mod.alpha_vantage_api_key() or None),
        cache=cache,
        breakers=breakers,
        stats=stats,
    )

    health.register("cache", cache.ping)
    for source in orchestrator.sources:
        url = getattr(source, "health_url", None)
        if url:
            health.register(source.name, http_probe(url))

    return MarketFeedService(
        orchestrator,
        cache=cache,
        breakers=breakers,
        stats=stats,
        health=health,
        refresh_interval_s=float(health_cfg["refresh_interval_s"]),
    )
