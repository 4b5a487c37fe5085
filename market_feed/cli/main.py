"""
Top-level CLI dispatcher: market-feed <command> [args...].
Every command prints JSON to stdout and returns a process exit code.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import Any, List, Optional

from .. import __version__
from ..core.errors import AllSourcesFailedError
from ..service import MarketFeedService, build_service

logger = logging.getLogger(__name__)


def _emit(payload: Any) -> None:
    print(json.dumps(payload, indent=2, default=str))


async def _quote(svc: MarketFeedService, args: argparse.Namespace) -> int:
    rc = 0
    out = []
    for symbol in args.symbols:
        try:
            out.append((await svc.orchestrator.fetch(symbol)).to_dict())
        except AllSourcesFailedError as exc:
            out.append({"symbol": exc.symbol, "error": str(exc), "errors": exc.errors})
            rc = 1
    _emit(out[0] if len(out) == 1 else out)
    return rc


async def _summary(svc: MarketFeedService, args: argparse.Namespace) -> int:
    summaries = await svc.orchestrator.fetch_market_summary()
    _emit([s.to_dict() for s in summaries])
    return 0 if summaries else 1


async def _health(svc: MarketFeedService, args: argparse.Namespace) -> int:
    results = await svc.health.check_all(force=True)
    _emit([r.to_dict() for r in results])
    return 0 if all(r.status.value != "unhealthy" for r in results) else 1


async def _stats(svc: MarketFeedService, args: argparse.Namespace) -> int:
    _emit(svc.get_status())
    return 0


_COMMANDS = {
    "quote": _quote,
    "summary": _summary,
    "health": _health,
    "stats": _stats,
}


async def _run(args: argparse.Namespace) -> int:
    svc = build_service()
    try:
        return await _COMMANDS[args.command](svc, args)
    finally:
        await svc.shutdown()


def main(argv: Optional[List[str]] = None) -> int:
    if argv is None:
        argv = sys.argv[1:]
    parser = argparse.ArgumentParser(
        prog="market-feed",
        description="Resilient multi-source market quote feed",
    )
    parser.add_argument("--version", action="version", version=f"market-feed {__version__}")
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    subparsers = parser.add_subparsers(dest="command", help="command")
    quote = subparsers.add_parser("quote", help="fetch quotes for one or more symbols")
    quote.add_argument("symbols", nargs="+", metavar="SYMBOL")
    subparsers.add_parser("summary", help="market breadth from capable sources")
    subparsers.add_parser("health", help="probe cache and source reachability")
    subparsers.add_parser("stats", help="source priorities, breaker states and error counts")

    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return 0

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    try:
        return asyncio.run(_run(args))
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    raise SystemExit(main())
