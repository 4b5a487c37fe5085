"""
Process-wide error statistics: failure counters per operation, circuit
breaker states and the latest health results, as one read-only snapshot.
"""
from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .health import HealthChecker, HealthCheckResult
from .resilience import CircuitBreakerRegistry, CircuitBreakerStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ErrorStatisticsSnapshot:
    error_counts: Dict[str, int] = field(default_factory=dict)
    circuit_breakers: List[CircuitBreakerStatus] = field(default_factory=list)
    health_checks: List[HealthCheckResult] = field(default_factory=list)
    last_health_check: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error_counts": dict(self.error_counts),
            "circuit_breakers": [cb.to_dict() for cb in self.circuit_breakers],
            "health_checks": [h.to_dict() for h in self.health_checks],
            "last_health_check": self.last_health_check,
        }


class ErrorStatisticsRegistry:
    """Counters are written by RetryExecutor; everything else is read live."""

    def __init__(
        self,
        breakers: Optional[CircuitBreakerRegistry] = None,
        health: Optional[HealthChecker] = None,
    ) -> None:
        self._breakers = breakers
        self._health = health
        self._counts: Counter[str] = Counter()

    def record_error(self, operation: str) -> None:
        self._counts[operation] += 1

    def error_count(self, operation: str) -> int:
        return self._counts.get(operation, 0)

    def snapshot(self) -> ErrorStatisticsSnapshot:
        return ErrorStatisticsSnapshot(
            error_counts=dict(self._counts),
            circuit_breakers=self._breakers.statuses() if self._breakers is not None else [],
            health_checks=self._health.latest_results() if self._health is not None else [],
            last_health_check=self._health.last_check_at if self._health is not None else None,
        )

    def reset(self) -> None:
        """Clear counters and circuit breaker entries."""
        self._counts.clear()
        if self._breakers is not None:
            self._breakers.clear()

    def graceful_shutdown(self) -> None:
        logger.info("Starting graceful shutdown of error statistics")
        self.reset()
        if self._health is not None:
            self._health.clear()
        logger.info("Error statistics shutdown completed")
