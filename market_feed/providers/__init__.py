"""
Provider architecture for market quote ingestion.

Sources are queried concurrently behind circuit breakers and retry/backoff,
validated, cross-checked and cached, with last-known-cache fallback when
every source fails.
"""

from __future__ import annotations

from .base import (
    CrossValidationOutcome,
    HealthStatus,
    MarketSummary,
    MarketSummarySource,
    SourceAdapter,
    SourceRecord,
    ValidationOutcome,
    Validator,
)
from .chain import CriticalErrorHandler, DataOrchestrator, OrchestratorSettings
from .health import HealthChecker, HealthCheckResult, http_probe
from .registry import ProviderRegistry
from .resilience import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitBreakerRegistry,
    CircuitBreakerStatus,
    CircuitState,
    RetryConfig,
    RetryExecutor,
)
from .stats import ErrorStatisticsRegistry, ErrorStatisticsSnapshot
from .validation import QuoteValidator, ValidationSettings

__all__ = [
    "SourceRecord",
    "MarketSummary",
    "SourceAdapter",
    "MarketSummarySource",
    "Validator",
    "ValidationOutcome",
    "CrossValidationOutcome",
    "HealthStatus",
    "DataOrchestrator",
    "OrchestratorSettings",
    "CriticalErrorHandler",
    "HealthChecker",
    "HealthCheckResult",
    "http_probe",
    "ProviderRegistry",
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitBreakerRegistry",
    "CircuitBreakerStatus",
    "CircuitState",
    "RetryConfig",
    "RetryExecutor",
    "ErrorStatisticsRegistry",
    "ErrorStatisticsSnapshot",
    "QuoteValidator",
    "ValidationSettings",
]
