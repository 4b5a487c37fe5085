"""
Resilient multi-source market quote feed.
Canonical entrypoint: market_feed.service.build_service(); lower layers live
in market_feed.core, market_feed.providers and market_feed.store.
Does not import cli.
"""

from __future__ import annotations

from ._version import __version__

__all__ = ["__version__"]
