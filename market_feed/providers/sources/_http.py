"""
Shared HTTP helper for source adapters: one GET, errors mapped onto the
ErrorKind taxonomy at the boundary.
"""
from __future__ import annotations

import asyncio
from typing import Any, Dict, Optional

import requests

from ...core.errors import ErrorKind, FatalSourceError, TransientSourceError, kind_for_status

HTTP_TIMEOUT_S = 10.0
USER_AGENT = "Mozilla/5.0 (compatible; market-feed/0.1)"


def get_json(
    url: str,
    *,
    source: str,
    params: Optional[Dict[str, Any]] = None,
    timeout_s: float = HTTP_TIMEOUT_S,
) -> Any:
    try:
        resp = requests.get(
            url,
            params=params,
            timeout=timeout_s,
            headers={"User-Agent": USER_AGENT, "Accept": "application/json"},
        )
    except (requests.Timeout, requests.ConnectionError) as exc:
        raise TransientSourceError(f"{source} unreachable: {exc}", source=source) from exc

    if resp.status_code >= 400:
        msg = f"{source} HTTP {resp.status_code}"
        if kind_for_status(resp.status_code) is ErrorKind.TRANSIENT:
            raise TransientSourceError(msg, source=source)
        raise FatalSourceError(msg, source=source)

    try:
        return resp.json()
    except ValueError as exc:
        raise FatalSourceError(f"{source} returned non-JSON payload", source=source) from exc


async def get_json_async(url: str, **kwargs: Any) -> Any:
    """get_json on a worker thread so the event loop keeps running."""
    return await asyncio.to_thread(get_json, url, **kwargs)
