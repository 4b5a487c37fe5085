"""
Tests for RetryExecutor.

Verifies that:
- Transient errors are retried with exponential backoff
- Fatal and circuit-open errors are never retried
- Exhaustion re-raises the last error and is counted once
"""
from __future__ import annotations

import random

import pytest

from market_feed.core.context import ErrorContext
from market_feed.core.errors import CircuitOpenError, FatalSourceError, TransientSourceError
from market_feed.providers.resilience import RetryConfig, RetryExecutor
from market_feed.providers.stats import ErrorStatisticsRegistry


class RecordingSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def _ctx() -> ErrorContext:
    return ErrorContext(operation="fetch_stock_data", source="test", symbol="AAPL")


def _failing(errors, result="ok"):
    """Operation that raises each error in turn, then returns result."""
    calls = {"n": 0}

    async def op():
        calls["n"] += 1
        if calls["n"] <= len(errors):
            raise errors[calls["n"] - 1]
        return result

    return op, calls


class TestRetryConfig:
    def test_rejects_zero_attempts(self):
        with pytest.raises(ValueError):
            RetryConfig(max_attempts=0)

    def test_backoff_doubles_and_caps(self):
        cfg = RetryConfig(base_delay_s=1.0, max_delay_s=5.0)
        assert [cfg.backoff_s(a) for a in (1, 2, 3, 4)] == [1.0, 2.0, 4.0, 5.0]


class TestRetryExecutor:
    @pytest.mark.asyncio
    async def test_success_first_try_no_sleep(self):
        sleep = RecordingSleep()
        executor = RetryExecutor(sleep=sleep)
        op, calls = _failing([])

        assert await executor.execute(op, _ctx()) == "ok"
        assert calls["n"] == 1
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_transient_then_success(self):
        sleep = RecordingSleep()
        executor = RetryExecutor(RetryConfig(max_attempts=3, base_delay_s=1.0, jitter_factor=0.0), sleep=sleep)
        op, calls = _failing([TransientSourceError("a"), TimeoutError("b")])

        assert await executor.execute(op, _ctx()) == "ok"
        assert calls["n"] == 3
        assert sleep.delays == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_single_attempt_never_retries(self):
        stats = ErrorStatisticsRegistry()
        sleep = RecordingSleep()
        executor = RetryExecutor(RetryConfig(max_attempts=1), stats=stats, sleep=sleep)
        error = TransientSourceError("timeout")
        op, calls = _failing([error] * 3)

        with pytest.raises(TransientSourceError) as exc_info:
            await executor.execute(op, _ctx())
        assert exc_info.value is error
        assert calls["n"] == 1
        assert sleep.delays == []
        assert stats.error_count("fetch_stock_data") == 1

    @pytest.mark.asyncio
    async def test_fatal_not_retried(self):
        stats = ErrorStatisticsRegistry()
        sleep = RecordingSleep()
        executor = RetryExecutor(RetryConfig(max_attempts=5), stats=stats, sleep=sleep)
        op, calls = _failing([FatalSourceError("bad symbol")])

        with pytest.raises(FatalSourceError, match="bad symbol"):
            await executor.execute(op, _ctx())
        assert calls["n"] == 1
        assert sleep.delays == []
        assert stats.error_count("fetch_stock_data") == 1

    @pytest.mark.asyncio
    async def test_exhaustion_reraises_last_error_and_counts_once(self):
        stats = ErrorStatisticsRegistry()
        executor = RetryExecutor(RetryConfig(max_attempts=3, base_delay_s=0.0), stats=stats, sleep=RecordingSleep())
        errors = [TransientSourceError(f"fail {i}") for i in range(3)]
        op, calls = _failing(errors)

        with pytest.raises(TransientSourceError) as exc_info:
            await executor.execute(op, _ctx())
        assert exc_info.value is errors[-1]
        assert calls["n"] == 3
        assert stats.error_count("fetch_stock_data") == 1

    @pytest.mark.asyncio
    async def test_circuit_open_not_retried_or_counted(self):
        stats = ErrorStatisticsRegistry()
        executor = RetryExecutor(RetryConfig(max_attempts=3), stats=stats, sleep=RecordingSleep())
        op, calls = _failing([CircuitOpenError("yahoo_finance")])

        with pytest.raises(CircuitOpenError):
            await executor.execute(op, _ctx())
        assert calls["n"] == 1
        assert stats.error_count("fetch_stock_data") == 0

    @pytest.mark.asyncio
    async def test_per_call_config_overrides_default(self):
        executor = RetryExecutor(RetryConfig(max_attempts=5, base_delay_s=0.0), sleep=RecordingSleep())
        op, calls = _failing([TransientSourceError("x")] * 5)

        with pytest.raises(TransientSourceError):
            await executor.execute(op, _ctx(), RetryConfig(max_attempts=2, base_delay_s=0.0))
        assert calls["n"] == 2

    def test_jitter_stays_within_bounds(self):
        executor = RetryExecutor(rng=random.Random(7))
        cfg = RetryConfig(base_delay_s=2.0, jitter_factor=0.25)
        for _ in range(50):
            delay = executor.delay_for(1, cfg)
            assert 2.0 <= delay <= 2.5
