"""
Alpha Vantage quote source.

  GET https://www.alphavantage.co/query?function=GLOBAL_QUOTE&symbol=...&apikey=...

Free tier allows ~5 requests/minute; throttling notes come back as HTTP 200
with a "Note"/"Information" field and are treated as transient.
"""
from __future__ import annotations

import os
from typing import Any, Dict, Optional

from ...core.errors import FatalSourceError, TransientSourceError
from ..base import SourceRecord, utc_now_iso
from ._http import get_json_async

ALPHA_VANTAGE_URL = "https://www.alphavantage.co/query"


def _num(quote: Dict[str, Any], key: str) -> Optional[float]:
    raw = quote.get(key)
    if raw in (None, ""):
        return None
    try:
        return float(str(raw).rstrip("%"))
    except ValueError:
        return None


class AlphaVantageSource:
    """Fetch quotes from the Alpha Vantage GLOBAL_QUOTE endpoint."""

    health_url = "https://www.alphavantage.co"

    def __init__(self, api_key: Optional[str] = None, *, priority: int = 2, url: str = ALPHA_VANTAGE_URL) -> None:
        self._api_key = api_key if api_key is not None else os.environ.get("ALPHA_VANTAGE_API_KEY", "")
        self._priority = priority
        self._url = url

    @property
    def name(self) -> str:
        return "alpha_vantage"

    @property
    def priority(self) -> int:
        return self._priority

    async def fetch(self, symbol: str) -> SourceRecord:
        if not self._api_key:
            raise FatalSourceError("alpha_vantage: ALPHA_VANTAGE_API_KEY is not set", source=self.name)
        data = await get_json_async(
            self._url,
            source=self.name,
            params={"function": "GLOBAL_QUOTE", "symbol": symbol, "apikey": self._api_key},
        )
        data = data or {}
        if "Note" in data or "Information" in data:
            raise TransientSourceError(
                f"alpha_vantage rate limit: {data.get('Note') or data.get('Information')}",
                source=self.name,
            )
        if "Error Message" in data:
            raise FatalSourceError(f"alpha_vantage: {data['Error Message']}", source=self.name)

        quote = data.get("Global Quote") or {}
        price = _num(quote, "05. price")
        if price is None:
            raise FatalSourceError(f"alpha_vantage returned no quote for {symbol}", source=self.name)

        return SourceRecord(
            symbol=(quote.get("01. symbol") or symbol).upper(),
            price=price,
            volume=_num(quote, "06. volume") or 0.0,
            timestamp=utc_now_iso(),
            source=self.name,
            priority=self._priority,
            change=_num(quote, "09. change"),
            change_percent=_num(quote, "10. change percent"),
            high=_num(quote, "03. high"),
            low=_num(quote, "04. low"),
            open=_num(quote, "02. open"),
            close=_num(quote, "08. previous close"),
        )
