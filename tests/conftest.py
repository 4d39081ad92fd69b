from __future__ import annotations

# pylint: disable=redefined-outer-name

import itertools
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

import pytest

from pyfleet._realtime import ChangeCallback, ChangeKind, SubscriptionHandle
from pyfleet.exceptions import PositioningError, StoreFetchError, StoreWriteError
from pyfleet.models.location import PositionFix, WatchOptions
from pyfleet.positioning import ErrorCallback, FixCallback


@dataclass
class FakeRowStore:
    """In-memory row store recording every call."""

    tables: dict[str, list[dict[str, Any]]] = field(default_factory=dict)
    inserted: list[tuple[str, dict[str, Any]]] = field(default_factory=list)
    selects: list[tuple[str, dict[str, Any]]] = field(default_factory=list)
    select_errors: dict[str, StoreFetchError] = field(default_factory=dict)
    insert_errors: list[StoreWriteError] = field(default_factory=list)

    async def insert(self, table: str, row: Mapping[str, Any]) -> None:
        if self.insert_errors:
            raise self.insert_errors.pop(0)
        self.inserted.append((table, dict(row)))

    async def select(
        self,
        table: str,
        filters: Mapping[str, Any] | None = None,
        *,
        order: str | None = None,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        self.selects.append((table, {"filters": filters, "order": order, "limit": limit}))
        if table in self.select_errors:
            raise self.select_errors[table]
        rows = list(self.tables.get(table, []))
        return rows[:limit] if limit is not None else rows


class FakeChangeFeed:
    """Change feed whose notifications are emitted by the test."""

    def __init__(self) -> None:
        self._ids = itertools.count(1)
        self.handles: list[SubscriptionHandle] = []
        self.close_calls = 0

    def subscribe(self, table: str, kind: ChangeKind, callback: ChangeCallback) -> SubscriptionHandle:
        handle = SubscriptionHandle(id=next(self._ids), table=table, kind=kind, callback=callback)
        self.handles.append(handle)
        return handle

    def close(self, handle: SubscriptionHandle) -> None:
        self.close_calls += 1
        handle.closed = True

    @property
    def open_handles(self) -> list[SubscriptionHandle]:
        return [h for h in self.handles if not h.closed]

    def emit(self, table: str, kind: ChangeKind, row: dict[str, Any]) -> int:
        delivered = 0
        for handle in self.open_handles:
            if handle.table == table and handle.kind == kind:
                handle.callback(row)
                delivered += 1
        return delivered


class FakePositioning:
    """Positioning service driven by the test."""

    def __init__(self, *, deny: PositioningError | None = None) -> None:
        self.deny = deny
        self._ids = itertools.count(1)
        self.watches: dict[int, tuple[WatchOptions, FixCallback, ErrorCallback]] = {}
        self.cancelled: list[int] = []

    def watch(self, options: WatchOptions, on_fix: FixCallback, on_error: ErrorCallback) -> int:
        if self.deny is not None:
            raise self.deny
        handle = next(self._ids)
        self.watches[handle] = (options, on_fix, on_error)
        return handle

    def cancel(self, handle: int) -> None:
        self.cancelled.append(handle)
        self.watches.pop(handle, None)

    @property
    def active(self) -> bool:
        return bool(self.watches)

    def emit_fix(self, fix: PositionFix) -> None:
        for _options, on_fix, _on_error in list(self.watches.values()):
            on_fix(fix)

    def emit_error(self, error: PositioningError) -> None:
        for _options, _on_fix, on_error in list(self.watches.values()):
            on_error(error)


class FakeClock:
    def __init__(self, start: float = 1_767_225_600.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def vehicle_row(vehicle_id: str, **overrides: Any) -> dict[str, Any]:
    row: dict[str, Any] = {
        "id": vehicle_id,
        "plate": f"PL-{vehicle_id}",
        "status": "active",
        "lat": -33.45,
        "lng": -70.66,
        "speed": 42.5,
        "heading": 180,
        "last_update": "2026-01-01T12:00:00.000Z",
        "battery_level": 88,
        "fatigue_level": 12,
        "company_id": "company-1",
    }
    row.update(overrides)
    return row


@pytest.fixture
def row_store() -> FakeRowStore:
    return FakeRowStore()


@pytest.fixture
def change_feed() -> FakeChangeFeed:
    return FakeChangeFeed()


@pytest.fixture
def positioning() -> FakePositioning:
    return FakePositioning()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
