"""Built-in quote sources."""

from __future__ import annotations

from .alpha_vantage import AlphaVantageSource
from .yahoo import YahooFinanceSource

__all__ = ["AlphaVantageSource", "YahooFinanceSource"]
