"""
Resilience primitives: retry with exponential backoff + jitter, and
per-dependency circuit breakers.

These wrap provider calls to handle transient failures gracefully without
letting a failing dependency soak up every request.
"""
from __future__ import annotations

import asyncio
import enum
import logging
import random
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, List, Optional, TypeVar

from ..core.context import ErrorContext
from ..core.errors import CircuitOpenError, ErrorKind, classify_error

if TYPE_CHECKING:
    from .stats import ErrorStatisticsRegistry

logger = logging.getLogger(__name__)

T = TypeVar("T")

Clock = Callable[[], float]
Sleep = Callable[[float], Awaitable[Any]]


@dataclass(frozen=True)
class RetryConfig:
    """Configuration for retry with exponential backoff."""
    max_attempts: int = 3
    base_delay_s: float = 1.0
    max_delay_s: float = 30.0
    jitter_factor: float = 0.25

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.base_delay_s < 0 or self.max_delay_s < 0 or self.jitter_factor < 0:
            raise ValueError("delays and jitter_factor must be non-negative")

    def backoff_s(self, attempt: int) -> float:
        """Delay before the attempt following `attempt` (1-based), without jitter."""
        return min(self.base_delay_s * (2 ** (attempt - 1)), self.max_delay_s)


class RetryExecutor:
    """
    Runs one async operation with bounded attempts.

    Fatal and circuit-open errors abort at once; transient ones are retried
    after an asyncio sleep, so other tasks keep running during backoff.
    The last error is re-raised unchanged.
    """

    def __init__(
        self,
        default_config: Optional[RetryConfig] = None,
        *,
        stats: Optional["ErrorStatisticsRegistry"] = None,
        sleep: Sleep = asyncio.sleep,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.default_config = default_config or RetryConfig()
        self._stats = stats
        self._sleep = sleep
        self._rng = rng or random.Random()

    def delay_for(self, attempt: int, config: RetryConfig) -> float:
        delay = config.backoff_s(attempt)
        return delay + self._rng.uniform(0, config.jitter_factor * delay)

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        context: ErrorContext,
        config: Optional[RetryConfig] = None,
    ) -> T:
        cfg = config or self.default_config
        attempt = 0
        while True:
            attempt += 1
            try:
                result = await operation()
            except Exception as exc:
                kind = classify_error(exc)
                if kind is ErrorKind.TRANSIENT and attempt < cfg.max_attempts:
                    delay = self.delay_for(attempt, cfg)
                    logger.warning(
                        "%s attempt %d/%d failed (%s), retrying in %.2fs",
                        context.operation, attempt, cfg.max_attempts, exc, delay,
                        extra={"context": context.as_dict()},
                    )
                    await self._sleep(delay)
                    continue
                self._give_up(exc, kind, attempt, cfg, context)
                raise
            if attempt > 1:
                logger.info(
                    "%s recovered on attempt %d/%d",
                    context.operation, attempt, cfg.max_attempts,
                    extra={"context": context.with_metadata(attempt=attempt).as_dict()},
                )
            return result

    def _give_up(
        self,
        exc: Exception,
        kind: ErrorKind,
        attempt: int,
        cfg: RetryConfig,
        context: ErrorContext,
    ) -> None:
        if kind is ErrorKind.CIRCUIT_OPEN:
            # Short-circuits are reported by the breaker, not counted here.
            return
        if self._stats is not None:
            self._stats.record_error(context.operation)
        logger.error(
            "%s failed after %d attempt(s) [%s]: %s: %s",
            context.operation, attempt, kind.value, type(exc).__name__, exc,
            extra={
                "context": context.with_metadata(
                    total_attempts=attempt, max_attempts=cfg.max_attempts
                ).as_dict()
            },
        )


class CircuitState(enum.Enum):
    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"


@dataclass(frozen=True)
class CircuitBreakerConfig:
    failure_threshold: int = 5
    reset_timeout_s: float = 60.0
    half_open_trial_count: int = 1

    def __post_init__(self) -> None:
        if self.failure_threshold < 1:
            raise ValueError("failure_threshold must be >= 1")
        if self.half_open_trial_count < 1:
            raise ValueError("half_open_trial_count must be >= 1")


@dataclass(frozen=True)
class CircuitBreakerStatus:
    """Point-in-time view of one breaker, for statistics snapshots."""
    name: str
    state: CircuitState
    failure_count: int
    last_failure_time: Optional[float]
    opened_at: Optional[float]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "state": self.state.value,
            "failure_count": self.failure_count,
            "last_failure_time": self.last_failure_time,
            "opened_at": self.opened_at,
        }


@dataclass
class CircuitBreaker:
    """
    Circuit breaker preventing repeated calls to a failing dependency.

    States:
    - CLOSED: Normal operation, calls pass through.
    - OPEN: Dependency is failing, calls are short-circuited.
    - HALF_OPEN: After cooldown, `half_open_trial_count` trial calls are admitted.

    Transitions:
    - CLOSED -> OPEN: After `failure_threshold` consecutive failures.
    - OPEN -> HALF_OPEN: On the first call after `reset_timeout_s` elapsed.
    - HALF_OPEN -> CLOSED: If a trial succeeds.
    - HALF_OPEN -> OPEN: If a trial fails (cooldown restarts).

    Every transition is a compare-and-set with no await in between, so the
    state machine stays consistent under interleaved asyncio tasks. No lock is
    held while the guarded call runs.
    """
    name: str
    config: CircuitBreakerConfig = field(default_factory=CircuitBreakerConfig)
    clock: Clock = field(default=time.monotonic, repr=False)
    _state: CircuitState = field(default=CircuitState.CLOSED, init=False, repr=False)
    _failure_count: int = field(default=0, init=False, repr=False)
    _last_failure_time: Optional[float] = field(default=None, init=False, repr=False)
    _opened_at: Optional[float] = field(default=None, init=False, repr=False)
    _trials_in_flight: int = field(default=0, init=False, repr=False)
    _last_error: Optional[str] = field(default=None, init=False, repr=False)

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def failure_count(self) -> int:
        return self._failure_count

    @property
    def opened_at(self) -> Optional[float]:
        return self._opened_at

    @property
    def last_error(self) -> Optional[str]:
        return self._last_error

    @property
    def is_open(self) -> bool:
        return self._state is CircuitState.OPEN

    def _cas(self, expected: CircuitState, new: CircuitState) -> bool:
        if self._state is not expected:
            return False
        self._state = new
        return True

    def _acquire(self) -> bool:
        """Admit a call or raise CircuitOpenError. Returns True for a trial call."""
        if self._state is CircuitState.OPEN:
            elapsed = self.clock() - (self._opened_at or 0.0)
            if elapsed < self.config.reset_timeout_s:
                raise CircuitOpenError(self.name, self.config.reset_timeout_s - elapsed)
            if self._cas(CircuitState.OPEN, CircuitState.HALF_OPEN):
                self._trials_in_flight = 0
                logger.info("Circuit breaker HALF_OPEN for %s", self.name)
        if self._state is CircuitState.HALF_OPEN:
            if self._trials_in_flight >= self.config.half_open_trial_count:
                raise CircuitOpenError(self.name)
            self._trials_in_flight += 1
            return True
        return False

    def record_success(self, trial: bool = False) -> None:
        if trial:
            self._trials_in_flight = max(0, self._trials_in_flight - 1)
            if self._cas(CircuitState.HALF_OPEN, CircuitState.CLOSED):
                logger.info("Circuit breaker CLOSED for %s after successful trial", self.name)
        self._failure_count = 0
        self._last_error = None
        if self._state is CircuitState.CLOSED:
            self._opened_at = None

    def record_failure(self, error: str, trial: bool = False) -> None:
        now = self.clock()
        self._failure_count += 1
        self._last_failure_time = now
        self._last_error = error[:500]
        if trial:
            self._trials_in_flight = max(0, self._trials_in_flight - 1)
            if self._cas(CircuitState.HALF_OPEN, CircuitState.OPEN):
                self._opened_at = now
                logger.warning("Circuit breaker re-OPENED for %s: trial failed: %s", self.name, error[:200])
            return
        if self._state is CircuitState.CLOSED and self._failure_count >= self.config.failure_threshold:
            if self._cas(CircuitState.CLOSED, CircuitState.OPEN):
                self._opened_at = now
                logger.warning(
                    "Circuit breaker OPEN for %s after %d failures: %s",
                    self.name, self._failure_count, error[:200],
                )

    async def call(self, operation: Callable[[], Awaitable[T]]) -> T:
        """Run `operation` under this breaker."""
        trial = self._acquire()
        try:
            result = await operation()
        except BaseException as exc:
            kind = classify_error(exc) if isinstance(exc, Exception) else None
            if kind is ErrorKind.TRANSIENT:
                self.record_failure(f"{type(exc).__name__}: {exc}", trial=trial)
            elif trial and kind is ErrorKind.FATAL:
                # A client error still proves the dependency is answering.
                self.record_success(trial=True)
            elif trial:
                self._trials_in_flight = max(0, self._trials_in_flight - 1)
            raise
        self.record_success(trial=trial)
        return result

    def status(self) -> CircuitBreakerStatus:
        return CircuitBreakerStatus(
            name=self.name,
            state=self._state,
            failure_count=self._failure_count,
            last_failure_time=self._last_failure_time,
            opened_at=self._opened_at,
        )

    def reset(self) -> None:
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._last_failure_time = None
        self._opened_at = None
        self._trials_in_flight = 0
        self._last_error = None


class CircuitBreakerRegistry:
    """
    Breakers keyed by dependency name, created lazily as CLOSED.

    Usage:
        breakers = CircuitBreakerRegistry(CircuitBreakerConfig(failure_threshold=3))
        quote = await breakers.guard("yahoo_finance", lambda: adapter.fetch("AAPL"))
    """

    def __init__(
        self,
        default_config: Optional[CircuitBreakerConfig] = None,
        *,
        clock: Clock = time.monotonic,
    ) -> None:
        self.default_config = default_config or CircuitBreakerConfig()
        self._clock = clock
        self._breakers: Dict[str, CircuitBreaker] = {}

    def get(self, name: str, config: Optional[CircuitBreakerConfig] = None) -> CircuitBreaker:
        breaker = self._breakers.get(name)
        if breaker is None:
            breaker = CircuitBreaker(name=name, config=config or self.default_config, clock=self._clock)
            self._breakers[name] = breaker
        return breaker

    async def guard(
        self,
        name: str,
        operation: Callable[[], Awaitable[T]],
        config: Optional[CircuitBreakerConfig] = None,
    ) -> T:
        return await self.get(name, config).call(operation)

    def __contains__(self, name: object) -> bool:
        return name in self._breakers

    def __len__(self) -> int:
        return len(self._breakers)

    def statuses(self) -> List[CircuitBreakerStatus]:
        return [cb.status() for cb in list(self._breakers.values())]

    def reset(self, name: str) -> bool:
        """Manually close one breaker. Returns False for unknown names."""
        breaker = self._breakers.get(name)
        if breaker is None:
            return False
        breaker.reset()
        logger.info("Circuit breaker %s reset manually", name)
        return True

    def reset_all(self) -> None:
        for breaker in list(self._breakers.values()):
            breaker.reset()

    def clear(self) -> None:
        """Drop every breaker entry (graceful shutdown)."""
        self._breakers.clear()
