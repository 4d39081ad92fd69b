#!/usr/bin/env python3
"""Live fleet view in the terminal.

Signs in as a user profile, loads the snapshot and keeps printing the
filtered vehicle list as change notifications arrive.

Usage
-----
::

    export FLEET_STORE_URL="https://fleet.example.com"
    export FLEET_STORE_API_KEY="..."
    export FLEET_MQTT_HOST="broker.example.com"
    python scripts/watch_fleet.py --user-id 7f1c... --company c1

Options::

    --user-id ID        Profile to sign in as (required)
    --company ID        Only show vehicles of this company
    --duration SECS     Stop after this many seconds (0 = until Ctrl+C)
    --verbose / -v      Enable debug logging
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
import time
from pathlib import Path

# Allow running from repo root without installing the package.
_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from pyfleet import FleetConfig, FleetDashboard, FleetState, UserProfile  # noqa: E402
from pyfleet.exceptions import FleetError  # noqa: E402
from pyfleet.state.actions import Action, ActionType  # noqa: E402


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Print the live fleet view.")
    parser.add_argument("--user-id", required=True, help="Profile id to sign in as.")
    parser.add_argument("--company", default=None, help="Company id filter.")
    parser.add_argument(
        "--duration",
        type=int,
        default=0,
        help="Maximum runtime in seconds (0 = run until Ctrl+C).",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logs.")
    return parser.parse_args()


def _print_view(state: FleetState) -> None:
    print(f"[fleet] {time.strftime('%H:%M:%S')}  vehicles={len(state.filtered_vehicles)}  alerts={len(state.active_alerts)}")
    for vehicle in state.filtered_vehicles:
        where = f"{vehicle.location.lat:.5f},{vehicle.location.lng:.5f}" if vehicle.location else "-"
        print(f"[fleet]   {vehicle.id:<12} {vehicle.status.value:<12} {where:<24} {vehicle.speed:>6.1f} km/h")
    for alert in state.active_alerts:
        print(f"[fleet]   ! {alert.severity.value:<8} {alert.type.value:<9} vehicle={alert.vehicle_id}")


async def _run(args: argparse.Namespace) -> int:
    config = FleetConfig.from_env()
    async with FleetDashboard(config) as dashboard:

        def _on_change(state: FleetState, action: Action) -> None:
            if action.type != ActionType.SET_LOADING:
                _print_view(state)

        unsubscribe = dashboard.state_store.subscribe(_on_change)
        try:
            if args.company:
                await dashboard.set_selected_company_id(args.company)
            await dashboard.set_user(UserProfile(id=args.user_id))
            if args.duration > 0:
                await asyncio.sleep(args.duration)
            else:
                await asyncio.Event().wait()
        finally:
            unsubscribe()
    return 0


def main() -> int:
    args = _parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )
    try:
        return asyncio.run(_run(args))
    except FleetError as exc:
        print(f"[fleet] {exc}", file=sys.stderr)
        return 2
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    raise SystemExit(main())
