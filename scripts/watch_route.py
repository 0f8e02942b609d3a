#!/usr/bin/env python3
"""Print live bus positions for one or more routes.

Subscribes to each route through :class:`busfeed.BusFeed` and prints every
update until interrupted with Ctrl+C.

Usage
-----
Set environment variables and run::

    export BUSFEED_SERVICE_KEY="your-api-key"
    export BUSFEED_CITY_CODE="25"
    export BUSFEED_ROUTE_MAP_URL="https://example.com/route-ids.json"
    python scripts/watch_route.py 101 202

Options::

    --interval SECONDS   Poll interval (default: BUSFEED_POLL_INTERVAL or 10)
    --json               Print one JSON object per update
    --verbose            Enable DEBUG logging
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import json
import logging
import sys
from pathlib import Path
from typing import Any

# Allow running from the repo root without installing the package.
_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from busfeed import BusFeed, BusFeedConfig, BusFeedError, RouteUpdate  # noqa: E402


def _format_update(update: RouteUpdate) -> str:
    if update.error is not None:
        if update.error.is_cleared:
            return f"[{update.route_id}] ok"
        return f"[{update.route_id}] ERROR ({update.error.kind.value}): {update.error.message}"
    lines = [f"[{update.route_id}] {len(update.records)} buses"]
    for record in update.records:
        lines.append(
            f"    {record.vehicle_no:<20} {record.latitude:>10.6f} {record.longitude:>11.6f}  "
            f"{record.node_name} ({record.node_id})"
        )
    return "\n".join(lines)


async def _consume(feed: BusFeed, route_id: str, *, json_mode: bool) -> None:
    async for update in feed.watch(route_id):
        if json_mode:
            print(json.dumps(update.model_dump(mode="json"), ensure_ascii=False), flush=True)
        else:
            print(_format_update(update), flush=True)


async def main() -> int:
    parser = argparse.ArgumentParser(description="Watch live bus positions per route")
    parser.add_argument("routes", nargs="+", help="Route ids to watch")
    parser.add_argument("--interval", type=float, default=None, help="Poll interval in seconds")
    parser.add_argument("--json", dest="json_mode", action="store_true", help="JSON output")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable DEBUG logging")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    overrides: dict[str, Any] = {}
    if args.interval is not None:
        overrides["poll_interval"] = args.interval

    try:
        config = BusFeedConfig.from_env(**overrides)
        async with BusFeed(config) as feed:
            await asyncio.gather(*(_consume(feed, route_id, json_mode=args.json_mode) for route_id in args.routes))
    except BusFeedError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    with contextlib.suppress(KeyboardInterrupt):
        sys.exit(asyncio.run(main()))
