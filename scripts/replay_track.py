#!/usr/bin/env python3
"""Replay a recorded GPS track through the location reporter.

Feeds fixes from a CSV file into :class:`LocationReporter` so the
throttled ``vehicle_locations`` writes can be observed against a real
row store.

Usage
-----
::

    export FLEET_STORE_URL="https://fleet.example.com"
    export FLEET_STORE_API_KEY="..."
    python scripts/replay_track.py TRUCK-01 track.csv

The CSV needs ``lat`` and ``lng`` columns; ``speed`` and ``heading`` are
optional.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

import aiohttp

# Allow running from repo root without installing the package.
_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from pyfleet import FleetConfig, LocationReporter, ReporterState, ReporterStatus  # noqa: E402
from pyfleet._rowstore import RestRowStore  # noqa: E402
from pyfleet.exceptions import FleetConfigError  # noqa: E402
from pyfleet.positioning import ReplayPositioningService, load_fixes_csv  # noqa: E402


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Replay a GPS track as a tracking device.")
    parser.add_argument("vehicle_id", help="Vehicle the device reports for.")
    parser.add_argument("track", type=Path, help="CSV file with lat,lng[,speed,heading] rows.")
    parser.add_argument(
        "--fix-interval",
        type=float,
        default=1.0,
        help="Seconds between replayed fixes (default: 1).",
    )
    parser.add_argument(
        "--loop",
        action="store_true",
        help="Restart the track when it runs out instead of stopping.",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logs.")
    return parser.parse_args()


def _print_status(status: ReporterStatus) -> None:
    print(f"[replay] {status.state.value:<10} {status.message}  sent={status.writes_sent} failed={status.writes_failed}")


async def _run(args: argparse.Namespace) -> int:
    config = FleetConfig.from_env()
    fixes = load_fixes_csv(args.track)
    positioning = ReplayPositioningService(fixes, interval=args.fix_interval, loop_track=args.loop)

    async with aiohttp.ClientSession() as session:
        reporter = LocationReporter(
            RestRowStore(config, session),
            positioning,
            interval_ms=config.report_interval_ms,
            options=config.watch_options(),
            on_status=_print_status,
        )
        reporter.start(args.vehicle_id)
        try:
            while reporter.status.is_tracking:
                await asyncio.sleep(0.5)
            final = reporter.status
        finally:
            reporter.stop()
            await reporter.drain()

    if final.state == ReporterState.FAILED and final.error is not None and final.error.code != "exhausted":
        return 1
    return 0


def main() -> int:
    args = _parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )
    try:
        return asyncio.run(_run(args))
    except FleetConfigError as exc:
        print(f"[replay] {exc}", file=sys.stderr)
        return 2
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    raise SystemExit(main())
