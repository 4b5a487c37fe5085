"""
Provider registry: central catalog of available quote sources.

Sources register themselves here. A config priority list determines which
sources are built for the orchestrator.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from .base import SourceAdapter

logger = logging.getLogger(__name__)


class ProviderRegistry:
    """
    Maps source names to classes, factories or ready instances.

    Usage:
        registry = ProviderRegistry()
        registry.register("yahoo_finance", YahooFinanceSource)
        registry.register("alpha_vantage", lambda: AlphaVantageSource(api_key))

        sources = registry.build(["yahoo_finance", "alpha_vantage"])
    """

    def __init__(self) -> None:
        self._factories: Dict[str, Any] = {}
        self._instances: Dict[str, SourceAdapter] = {}

    def register(self, name: str, factory: Any) -> None:
        """Register a source class, zero-arg factory or instance by name."""
        self._factories[name] = factory
        self._instances.pop(name, None)
        logger.debug("Registered source: %s", name)

    def get(self, name: str) -> SourceAdapter:
        """Get or instantiate a source by name."""
        if name not in self._instances:
            factory = self._factories.get(name)
            if factory is None:
                raise KeyError(f"Unknown source '{name}'. Available: {list(self._factories)}")
            if isinstance(factory, type) or not isinstance(factory, SourceAdapter):
                self._instances[name] = factory()
            else:
                self._instances[name] = factory
        return self._instances[name]

    @property
    def names(self) -> List[str]:
        return list(self._factories)

    def build(self, priority: Optional[List[str]] = None) -> List[SourceAdapter]:
        """Instances for the names in `priority` that are registered; unknown names are skipped."""
        names = priority or list(self._factories)
        unknown = [n for n in names if n not in self._factories]
        if unknown:
            logger.warning("Ignoring unknown sources in priority list: %s", unknown)
        return [self.get(n) for n in names if n in self._factories]
