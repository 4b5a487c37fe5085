"""
Yahoo Finance quote source.

Uses the public chart API (no authentication required):
  GET https://query1.finance.yahoo.com/v8/finance/chart/{symbol}?interval=1d&range=1d
"""
from __future__ import annotations

from typing import Any, Dict, Sequence

from ...core.errors import FatalSourceError
from ..base import MarketSummary, SourceRecord, utc_now_iso
from ._http import get_json_async

YAHOO_BASE_URL = "https://query1.finance.yahoo.com"
DEFAULT_INDEX_BASKET = ("^GSPC", "^DJI", "^IXIC", "^RUT", "XU100.IS")


def _to_float(x: Any) -> float | None:
    if x is None:
        return None
    try:
        return float(x)
    except (TypeError, ValueError):
        return None


class YahooFinanceSource:
    """Fetch quotes and index breadth from the Yahoo Finance chart API."""

    health_url = "https://finance.yahoo.com"

    def __init__(
        self,
        *,
        priority: int = 1,
        index_basket: Sequence[str] = DEFAULT_INDEX_BASKET,
        base_url: str = YAHOO_BASE_URL,
    ) -> None:
        self._priority = priority
        self._index_basket = tuple(index_basket)
        self._base_url = base_url

    @property
    def name(self) -> str:
        return "yahoo_finance"

    @property
    def priority(self) -> int:
        return self._priority

    async def _chart_meta(self, symbol: str) -> Dict[str, Any]:
        data = await get_json_async(
            f"{self._base_url}/v8/finance/chart/{symbol}",
            source=self.name,
            params={"interval": "1d", "range": "1d"},
        )
        chart = (data or {}).get("chart") or {}
        if chart.get("error"):
            err = chart["error"]
            desc = err.get("description") if isinstance(err, dict) else err
            raise FatalSourceError(f"yahoo_finance: {desc}", source=self.name)
        results = chart.get("result") or []
        if not results or not isinstance(results[0], dict):
            raise FatalSourceError("yahoo_finance response missing chart.result", source=self.name)
        meta = results[0].get("meta")
        if not isinstance(meta, dict):
            raise FatalSourceError("yahoo_finance response missing chart.result[0].meta", source=self.name)
        return meta

    async def fetch(self, symbol: str) -> SourceRecord:
        meta = await self._chart_meta(symbol)
        price = _to_float(meta.get("regularMarketPrice"))
        if price is None:
            raise FatalSourceError("yahoo_finance response missing regularMarketPrice", source=self.name)

        prev_close = _to_float(meta.get("chartPreviousClose") or meta.get("previousClose"))
        change = price - prev_close if prev_close else None
        return SourceRecord(
            symbol=symbol.upper(),
            price=price,
            volume=_to_float(meta.get("regularMarketVolume")) or 0.0,
            # Fetch time; regularMarketTime lags by hours while the market is closed.
            timestamp=utc_now_iso(),
            source=self.name,
            priority=self._priority,
            change=change,
            change_percent=(change / prev_close * 100.0) if change is not None and prev_close else None,
            high=_to_float(meta.get("regularMarketDayHigh")),
            low=_to_float(meta.get("regularMarketDayLow")),
            close=prev_close,
        )

    async def fetch_market_summary(self) -> MarketSummary:
        gainers = losers = unchanged = 0
        total_volume = 0.0
        for index in self._index_basket:
            meta = await self._chart_meta(index)
            price = _to_float(meta.get("regularMarketPrice"))
            prev = _to_float(meta.get("chartPreviousClose"))
            total_volume += _to_float(meta.get("regularMarketVolume")) or 0.0
            if price is None or prev is None or price == prev:
                unchanged += 1
            elif price > prev:
                gainers += 1
            else:
                losers += 1
        return MarketSummary(
            total_volume=total_volume,
            total_value=0.0,
            gainers=gainers,
            losers=losers,
            unchanged=unchanged,
            timestamp=utc_now_iso(),
            source=self.name,
        )
