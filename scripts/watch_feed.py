#!/usr/bin/env python3
"""Live feed watcher.

Connects to one CityBikes network and prints every delivery until
interrupted (or until ``--duration`` seconds have passed).

Configuration is read from ``STATIONFEED_*`` environment variables;
command-line flags take precedence.

Examples::

    python scripts/watch_feed.py velib --interval 60 --pacing
    python scripts/watch_feed.py https://api.citybik.es/v2/networks/bikemi --watch 112
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Any

_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from stationfeed import (  # noqa: E402
    CityBikesSource,
    ConnectionState,
    EntityRecord,
    FeedConfig,
    FeedError,
    ReconcileResult,
    StationFeed,
    network_url,
)


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Watch a CityBikes network for availability changes.")
    parser.add_argument("network", help="CityBikes network id (e.g. 'velib') or full network URL")
    parser.add_argument("--interval", type=float, default=None, help="Poll interval in seconds")
    parser.add_argument("--pacing", action="store_true", default=None, help="Spread deliveries over the interval")
    parser.add_argument("--baseline", action="store_true", help="Do not print first sightings")
    parser.add_argument("--watch", action="append", default=[], metavar="ID", help="Station id to mark as watched")
    parser.add_argument("--duration", type=float, default=None, help="Stop after this many seconds")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    return parser.parse_args(argv)


def _format_record(record: EntityRecord) -> str:
    name = record.attributes.get("name", "")
    sign = "+" if record.change_magnitude > 0 else ""
    star = "*" if record.watched else " "
    return f"{star} {record.id:>10} {sign}{record.change_magnitude:<4} {name}"


async def _run(args: argparse.Namespace) -> int:
    overrides: dict[str, Any] = {}
    if args.interval is not None:
        overrides["poll_interval"] = args.interval
    if args.pacing:
        overrides["pacing_enabled"] = True
    if args.baseline:
        overrides["first_sighting"] = "baseline"
    config = FeedConfig.from_env(**overrides)

    url = args.network if "://" in args.network else network_url(args.network)
    source = CityBikesSource(url, config=config)

    def on_cycle(result: ReconcileResult) -> None:
        print(
            f"-- cycle: {len(result.new_entities)} new, {len(result.changes)} changed, "
            f"{result.unchanged} unchanged, total change {result.total_change:+d}"
        )

    def on_state(state: ConnectionState) -> None:
        print(f"-- {state.value} ({url})")

    feed = StationFeed(
        source,
        config,
        on_change=lambda record: print(_format_record(record)),
        on_new_entity=lambda record: print(f"  {record.id:>10} seen  {record.attributes.get('name', '')}"),
        on_connection_state=on_state,
        on_cycle=on_cycle,
        watched=args.watch,
    )

    try:
        async with feed:
            if args.duration is None:
                await asyncio.Event().wait()
            else:
                await asyncio.sleep(args.duration)
            inventory = feed.inventory
            print(
                f"-- inventory: {inventory.available}/{inventory.total_capacity} available "
                f"({inventory.percent_available:.0%}), {inventory.out} out"
            )
    except FeedError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    return 0


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        return asyncio.run(_run(args))
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    raise SystemExit(main())
