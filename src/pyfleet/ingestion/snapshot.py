"""One-shot snapshot fetches."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any, TypeVar

from pydantic import ValidationError

from pyfleet._constants import TABLE_COMPANIES, TABLE_SECURITY_EVENTS, TABLE_VEHICLES
from pyfleet._rowstore import RowStore
from pyfleet.exceptions import MalformedNotificationError
from pyfleet.ingestion.rows import parse_security_event
from pyfleet.models.company import Company
from pyfleet.models.security import SecurityEvent
from pyfleet.models.vehicle import Vehicle

_logger = logging.getLogger(__name__)

T = TypeVar("T")


def _parse_rows(table: str, rows: list[dict[str, Any]], parse: Callable[[dict[str, Any]], T | None]) -> list[T]:
    parsed: list[T] = []
    for row in rows:
        try:
            item = parse(row)
        except (MalformedNotificationError, ValidationError) as exc:
            _logger.warning("Skipping malformed %s row: %s", table, exc)
            continue
        if item is not None:
            parsed.append(item)
    return parsed


async def fetch_vehicles(store: RowStore) -> list[Vehicle]:
    """Fetch and map every visible vehicle.

    Raises
    ------
    StoreFetchError
        The select failed.
    """
    rows = await store.select(TABLE_VEHICLES)
    return _parse_rows(TABLE_VEHICLES, rows, Vehicle.from_row)


async def fetch_companies(store: RowStore) -> list[Company]:
    rows = await store.select(TABLE_COMPANIES)
    return _parse_rows(TABLE_COMPANIES, rows, Company.from_row)


async def fetch_security_events(store: RowStore, *, limit: int) -> list[SecurityEvent]:
    """Most recent security events first."""
    rows = await store.select(TABLE_SECURITY_EVENTS, order="timestamp.desc", limit=limit)
    return _parse_rows(TABLE_SECURITY_EVENTS, rows, parse_security_event)
