"""
Tests for CircuitBreaker and CircuitBreakerRegistry.

Verifies that:
- The breaker opens after consecutive transient failures
- Open breakers short-circuit without calling the dependency
- HALF_OPEN admits a bounded number of trial calls
- Fatal errors do not count as dependency failures
"""
from __future__ import annotations

import asyncio

import pytest

from market_feed.core.errors import CircuitOpenError, FatalSourceError, TransientSourceError
from market_feed.providers.resilience import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitBreakerRegistry,
    CircuitState,
)
from tests.fakes import FakeClock


async def _ok():
    return "ok"


async def _transient():
    raise TransientSourceError("upstream down")


async def _fatal():
    raise FatalSourceError("unknown symbol")


async def _trip(cb: CircuitBreaker, times: int) -> None:
    for _ in range(times):
        with pytest.raises(TransientSourceError):
            await cb.call(_transient)


class TestCircuitBreakerConfig:
    def test_rejects_zero_threshold(self):
        with pytest.raises(ValueError):
            CircuitBreakerConfig(failure_threshold=0)

    def test_rejects_zero_trials(self):
        with pytest.raises(ValueError):
            CircuitBreakerConfig(half_open_trial_count=0)


class TestCircuitBreaker:
    @pytest.mark.asyncio
    async def test_opens_after_threshold(self):
        clock = FakeClock()
        cb = CircuitBreaker("yahoo_finance", CircuitBreakerConfig(failure_threshold=3), clock=clock)

        await _trip(cb, 2)
        assert cb.state == CircuitState.CLOSED
        await _trip(cb, 1)
        assert cb.state == CircuitState.OPEN
        assert cb.opened_at == clock.now
        assert cb.failure_count == 3

    @pytest.mark.asyncio
    async def test_open_short_circuits_without_calling(self):
        clock = FakeClock()
        cb = CircuitBreaker("svc", CircuitBreakerConfig(failure_threshold=1, reset_timeout_s=60), clock=clock)
        await _trip(cb, 1)

        calls = []

        async def op():
            calls.append(1)
            return "ok"

        clock.advance(10)
        with pytest.raises(CircuitOpenError) as exc_info:
            await cb.call(op)
        assert calls == []
        assert exc_info.value.retry_in_s == pytest.approx(50.0)

    @pytest.mark.asyncio
    async def test_success_resets_failure_count(self):
        cb = CircuitBreaker("svc", CircuitBreakerConfig(failure_threshold=3), clock=FakeClock())
        await _trip(cb, 2)
        assert await cb.call(_ok) == "ok"
        assert cb.failure_count == 0
        await _trip(cb, 2)
        assert cb.state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_half_open_trial_success_closes(self):
        clock = FakeClock()
        cb = CircuitBreaker("svc", CircuitBreakerConfig(failure_threshold=1, reset_timeout_s=60), clock=clock)
        await _trip(cb, 1)

        clock.advance(60)
        assert await cb.call(_ok) == "ok"
        assert cb.state == CircuitState.CLOSED
        assert cb.failure_count == 0
        assert cb.opened_at is None

    @pytest.mark.asyncio
    async def test_half_open_trial_failure_reopens_with_new_timestamp(self):
        clock = FakeClock()
        cb = CircuitBreaker("svc", CircuitBreakerConfig(failure_threshold=1, reset_timeout_s=60), clock=clock)
        await _trip(cb, 1)
        first_opened = cb.opened_at

        clock.advance(61)
        await _trip(cb, 1)
        assert cb.state == CircuitState.OPEN
        assert cb.opened_at == first_opened + 61

        with pytest.raises(CircuitOpenError):
            await cb.call(_ok)

    @pytest.mark.asyncio
    async def test_half_open_admits_only_configured_trials(self):
        clock = FakeClock()
        cb = CircuitBreaker(
            "svc",
            CircuitBreakerConfig(failure_threshold=1, reset_timeout_s=5, half_open_trial_count=1),
            clock=clock,
        )
        await _trip(cb, 1)
        clock.advance(5)

        release = asyncio.Event()

        async def slow_trial():
            await release.wait()
            return "trial"

        trial = asyncio.ensure_future(cb.call(slow_trial))
        await asyncio.sleep(0)
        assert cb.state == CircuitState.HALF_OPEN

        with pytest.raises(CircuitOpenError):
            await cb.call(_ok)

        release.set()
        assert await trial == "trial"
        assert cb.state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_fatal_errors_do_not_trip(self):
        cb = CircuitBreaker("svc", CircuitBreakerConfig(failure_threshold=2), clock=FakeClock())
        for _ in range(5):
            with pytest.raises(FatalSourceError):
                await cb.call(_fatal)
        assert cb.state == CircuitState.CLOSED
        assert cb.failure_count == 0

    @pytest.mark.asyncio
    async def test_fatal_trial_closes(self):
        clock = FakeClock()
        cb = CircuitBreaker("svc", CircuitBreakerConfig(failure_threshold=1, reset_timeout_s=1), clock=clock)
        await _trip(cb, 1)
        clock.advance(1)

        with pytest.raises(FatalSourceError):
            await cb.call(_fatal)
        assert cb.state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_reset(self):
        cb = CircuitBreaker("svc", CircuitBreakerConfig(failure_threshold=1), clock=FakeClock())
        await _trip(cb, 1)
        cb.reset()
        assert cb.state == CircuitState.CLOSED
        assert cb.status().failure_count == 0
        assert await cb.call(_ok) == "ok"


class TestCircuitBreakerRegistry:
    @pytest.mark.asyncio
    async def test_guard_creates_breaker_lazily(self):
        registry = CircuitBreakerRegistry(CircuitBreakerConfig(failure_threshold=1), clock=FakeClock())
        assert "yahoo_finance" not in registry

        assert await registry.guard("yahoo_finance", _ok) == "ok"
        assert "yahoo_finance" in registry
        assert len(registry) == 1
        assert registry.get("yahoo_finance") is registry.get("yahoo_finance")

    @pytest.mark.asyncio
    async def test_breakers_are_independent(self):
        registry = CircuitBreakerRegistry(CircuitBreakerConfig(failure_threshold=1), clock=FakeClock())
        with pytest.raises(TransientSourceError):
            await registry.guard("a", _transient)

        assert registry.get("a").state == CircuitState.OPEN
        assert await registry.guard("b", _ok) == "ok"

    @pytest.mark.asyncio
    async def test_reset_and_reset_all(self):
        registry = CircuitBreakerRegistry(CircuitBreakerConfig(failure_threshold=1), clock=FakeClock())
        for name in ("a", "b"):
            with pytest.raises(TransientSourceError):
                await registry.guard(name, _transient)

        assert registry.reset("a") is True
        assert registry.reset("missing") is False
        states = {s.name: s.state for s in registry.statuses()}
        assert states == {"a": CircuitState.CLOSED, "b": CircuitState.OPEN}

        registry.reset_all()
        assert all(s.state == CircuitState.CLOSED for s in registry.statuses())

    def test_status_to_dict(self):
        registry = CircuitBreakerRegistry()
        registry.get("a")
        d = registry.statuses()[0].to_dict()
        assert d["name"] == "a"
        assert d["state"] == "CLOSED"
        assert d["failure_count"] == 0
