"""Fake sources and fixtures for orchestrator and service tests (no live network)."""

from .clock import FakeClock
from .sources import (
    FakeSource,
    FakeSourceAlwaysFail,
    FakeSourceFailNThenSucceed,
    FakeSummarySource,
)

__all__ = [
    "FakeClock",
    "FakeSource",
    "FakeSourceAlwaysFail",
    "FakeSourceFailNThenSucceed",
    "FakeSummarySource",
]
