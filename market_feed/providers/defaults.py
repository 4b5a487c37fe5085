"""
Default wiring: built-in sources registered by name, and an orchestrator
assembled from config. To add a source, register it here and add it to
`sources.priority` in config.yaml.
"""
from __future__ import annotations

from typing import Any, Dict, Optional

from .. import config as config_mod
from ..store import CacheStore, create_cache_store
from .chain import DataOrchestrator, OrchestratorSettings
from .registry import ProviderRegistry
from .resilience import CircuitBreakerRegistry, RetryExecutor
from .sources import AlphaVantageSource, YahooFinanceSource
from .stats import ErrorStatisticsRegistry
from .validation import QuoteValidator


def create_default_registry(api_key: Optional[str] = None) -> ProviderRegistry:
    """Create a registry with all built-in sources."""
    registry = ProviderRegistry()
    registry.register("yahoo_finance", YahooFinanceSource)
    registry.register("alpha_vantage", lambda: AlphaVantageSource(api_key))
    return registry


def orchestrator_settings(cfg: Dict[str, Any]) -> OrchestratorSettings:
    cache = cfg["cache"]
    validation = cfg["validation"]
    return OrchestratorSettings(
        source_ttl_s=float(cache["source_ttl_s"]),
        latest_ttl_s=float(cache["latest_ttl_s"]),
        critical_error_ttl_s=float(cache["critical_error_ttl_s"]),
        variance_threshold=float(validation["variance_threshold"]),
        min_confidence=float(validation["min_confidence"]),
    )


def create_orchestrator(
    cfg: Optional[Dict[str, Any]] = None,
    *,
    registry: Optional[ProviderRegistry] = None,
    cache: Optional[CacheStore] = None,
    breakers: Optional[CircuitBreakerRegistry] = None,
    stats: Optional[ErrorStatisticsRegistry] = None,
) -> DataOrchestrator:
    """Build an orchestrator with resilience wrappers from config."""
    cfg = cfg or config_mod.get_config()
    reg = registry or create_default_registry()
    if breakers is None:
        breakers = CircuitBreakerRegistry(config_mod.circuit_breaker_config(cfg))
    if stats is None:
        stats = ErrorStatisticsRegistry(breakers)
    return DataOrchestrator(
        reg.build(config_mod.source_priority(cfg)),
        cache=cache if cache is not None else create_cache_store(config_mod.cache_settings(cfg)),
        validator=QuoteValidator(config_mod.validation_settings(cfg)),
        retry=RetryExecutor(config_mod.retry_config(cfg), stats=stats),
        breakers=breakers,
        stats=stats,
        settings=orchestrator_settings(cfg),
        retry_configs=config_mod.source_retry_configs(cfg),
    )
