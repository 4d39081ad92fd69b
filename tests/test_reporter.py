from __future__ import annotations

import asyncio

import pytest
from conftest import FakeClock, FakePositioning, FakeRowStore

from pyfleet.exceptions import PositioningError, StoreWriteError
from pyfleet.models.location import PositionFix, WatchOptions
from pyfleet.reporter import LocationReporter, ReporterState, ReporterStatus


def _fix(lat: float = -33.45, lng: float = -70.66, speed: float | None = 12.0) -> PositionFix:
    return PositionFix(latitude=lat, longitude=lng, speed=speed)


def _reporter(
    row_store: FakeRowStore,
    positioning: FakePositioning,
    clock: FakeClock,
    statuses: list[ReporterStatus] | None = None,
) -> LocationReporter:
    return LocationReporter(
        row_store,
        positioning,
        clock=clock,
        on_status=statuses.append if statuses is not None else None,
    )


def test_start_requests_high_accuracy_uncached_watch(
    row_store: FakeRowStore, positioning: FakePositioning, clock: FakeClock
) -> None:
    statuses: list[ReporterStatus] = []
    reporter = _reporter(row_store, positioning, clock, statuses)
    reporter.start("  truck-01 ")

    (options, _on_fix, _on_error), = positioning.watches.values()
    assert options == WatchOptions(high_accuracy=True, timeout_ms=10_000, max_age_ms=0)
    assert reporter.vehicle_id == "TRUCK-01"
    assert [s.state for s in statuses] == [ReporterState.REQUESTING, ReporterState.TRACKING]


def test_empty_vehicle_id_rejected(row_store: FakeRowStore, positioning: FakePositioning, clock: FakeClock) -> None:
    with pytest.raises(ValueError):
        _reporter(row_store, positioning, clock).start("   ")
    assert not positioning.active


@pytest.mark.asyncio
async def test_throttle_writes_every_ten_seconds(
    row_store: FakeRowStore, positioning: FakePositioning, clock: FakeClock
) -> None:
    reporter = _reporter(row_store, positioning, clock)
    reporter.start("TRUCK-01")

    write_times: list[float] = []
    start = clock.now
    for _second in range(25):
        if await reporter.process_fix(_fix()):
            write_times.append(clock.now - start)
        clock.advance(1.0)

    assert write_times == [0.0, 10.0, 20.0]
    assert len(row_store.inserted) == 3
    table, row = row_store.inserted[0]
    assert table == "vehicle_locations"
    assert row == {"vehicle_id": "TRUCK-01", "lat": -33.45, "lng": -70.66, "speed": 12.0}
    assert reporter.status.writes_sent == 3


@pytest.mark.asyncio
async def test_missing_speed_writes_zero(row_store: FakeRowStore, positioning: FakePositioning, clock: FakeClock) -> None:
    reporter = _reporter(row_store, positioning, clock)
    reporter.start("TRUCK-01")

    assert await reporter.process_fix(_fix(speed=None)) is True
    assert row_store.inserted[0][1]["speed"] == 0.0


@pytest.mark.asyncio
async def test_success_sets_sent_status(row_store: FakeRowStore, positioning: FakePositioning, clock: FakeClock) -> None:
    reporter = _reporter(row_store, positioning, clock)
    reporter.start("TRUCK-01")
    await reporter.process_fix(_fix())

    status = reporter.status
    assert status.state == ReporterState.TRACKING
    assert status.message.startswith("Sent ✓ ")
    assert status.last_sent_at == pytest.approx(clock.now)
    assert status.error is None


@pytest.mark.asyncio
async def test_write_failure_surfaces_error_and_retries_next_fix(
    row_store: FakeRowStore, positioning: FakePositioning, clock: FakeClock
) -> None:
    reporter = _reporter(row_store, positioning, clock)
    reporter.start("TRUCK-01")
    await reporter.process_fix(_fix())
    assert len(row_store.inserted) == 1

    clock.advance(10.0)
    row_store.insert_errors.append(StoreWriteError("permission denied for table", code="42501", table="vehicle_locations"))
    assert await reporter.process_fix(_fix()) is False

    status = reporter.status
    assert status.state == ReporterState.TRACKING
    assert isinstance(status.error, StoreWriteError)
    assert status.error.code == "42501"
    assert "permission denied" in status.message
    assert status.writes_failed == 1

    # The failure did not move the interval: the very next fix retries.
    clock.advance(1.0)
    assert await reporter.process_fix(_fix()) is True
    assert len(row_store.inserted) == 2
    assert reporter.status.error is None


def test_positioning_denied_on_start_fails(row_store: FakeRowStore, clock: FakeClock) -> None:
    positioning = FakePositioning(deny=PositioningError("User denied Geolocation", code="1"))
    reporter = _reporter(row_store, positioning, clock)
    reporter.start("TRUCK-01")

    status = reporter.status
    assert status.state == ReporterState.FAILED
    assert status.message == "GPS error: User denied Geolocation"
    assert isinstance(status.error, PositioningError)
    assert status.error.code == "1"


@pytest.mark.asyncio
async def test_positioning_error_while_tracking_stops_reporting(
    row_store: FakeRowStore, positioning: FakePositioning, clock: FakeClock
) -> None:
    reporter = _reporter(row_store, positioning, clock)
    reporter.start("TRUCK-01")
    positioning.emit_error(PositioningError("Timeout expired", code="3"))

    assert reporter.status.state == ReporterState.FAILED
    assert not positioning.active
    assert await reporter.process_fix(_fix()) is False
    assert row_store.inserted == []

    # start() again re-enters Requesting.
    reporter.start("TRUCK-01")
    assert reporter.status.state == ReporterState.TRACKING
    assert reporter.status.error is None


@pytest.mark.asyncio
async def test_fix_callback_schedules_write(
    row_store: FakeRowStore, positioning: FakePositioning, clock: FakeClock
) -> None:
    reporter = _reporter(row_store, positioning, clock)
    reporter.start("TRUCK-01")

    positioning.emit_fix(_fix())
    await reporter.drain()

    assert len(row_store.inserted) == 1


@pytest.mark.asyncio
async def test_fixes_during_in_flight_write_are_skipped(positioning: FakePositioning, clock: FakeClock) -> None:
    release = asyncio.Event()

    class SlowStore(FakeRowStore):
        async def insert(self, table: str, row: dict[str, object]) -> None:  # type: ignore[override]
            await release.wait()
            await super().insert(table, row)

    store = SlowStore()
    reporter = _reporter(store, positioning, clock)
    reporter.start("TRUCK-01")

    first = asyncio.create_task(reporter.process_fix(_fix()))
    await asyncio.sleep(0)
    assert reporter.status.state == ReporterState.SENDING
    assert await reporter.process_fix(_fix()) is False

    release.set()
    assert await first is True
    assert len(store.inserted) == 1


def test_stop_is_idempotent_and_safe_when_never_started(
    row_store: FakeRowStore, positioning: FakePositioning, clock: FakeClock
) -> None:
    reporter = _reporter(row_store, positioning, clock)
    reporter.stop()
    reporter.stop()
    assert reporter.status.state == ReporterState.IDLE
    assert reporter.status.message == "Tracking stopped"
    assert positioning.cancelled == []


def test_stop_cancels_watch_and_clears_failure(row_store: FakeRowStore, positioning: FakePositioning, clock: FakeClock) -> None:
    reporter = _reporter(row_store, positioning, clock)
    reporter.start("TRUCK-01")
    positioning.emit_error(PositioningError("Position unavailable", code="2"))
    reporter.stop()

    assert reporter.status.state == ReporterState.IDLE
    assert reporter.status.error is None

    reporter.start("TRUCK-01")
    reporter.stop()
    assert not positioning.active


@pytest.mark.asyncio
async def test_write_completing_after_stop_keeps_stopped_status(positioning: FakePositioning, clock: FakeClock) -> None:
    release = asyncio.Event()

    class SlowStore(FakeRowStore):
        async def insert(self, table: str, row: dict[str, object]) -> None:  # type: ignore[override]
            await release.wait()
            await super().insert(table, row)

    reporter = _reporter(SlowStore(), positioning, clock)
    reporter.start("TRUCK-01")
    pending = asyncio.create_task(reporter.process_fix(_fix()))
    await asyncio.sleep(0)

    reporter.stop()
    release.set()
    await pending

    assert reporter.status.state == ReporterState.IDLE
    assert reporter.status.message == "Tracking stopped"


@pytest.mark.asyncio
async def test_suspend_and_resume_keep_vehicle_and_interval(
    row_store: FakeRowStore, positioning: FakePositioning, clock: FakeClock
) -> None:
    reporter = _reporter(row_store, positioning, clock)
    reporter.start("TRUCK-01")
    await reporter.process_fix(_fix())

    reporter.suspend()
    assert reporter.status.state == ReporterState.IDLE
    assert not positioning.active

    clock.advance(3.0)
    reporter.resume()
    assert reporter.status.state == ReporterState.TRACKING
    assert reporter.vehicle_id == "TRUCK-01"
    assert await reporter.process_fix(_fix()) is False

    clock.advance(7.0)
    assert await reporter.process_fix(_fix()) is True


@pytest.mark.asyncio
async def test_unexpected_store_error_keeps_tracking(positioning: FakePositioning, clock: FakeClock) -> None:
    class ClosedSessionStore(FakeRowStore):
        failures = 1

        async def insert(self, table: str, row: dict[str, object]) -> None:  # type: ignore[override]
            if self.failures:
                self.failures -= 1
                raise RuntimeError("Session is closed")
            await super().insert(table, row)

    store = ClosedSessionStore()
    reporter = _reporter(store, positioning, clock)
    reporter.start("TRUCK-01")

    assert await reporter.process_fix(_fix()) is False
    status = reporter.status
    assert status.state == ReporterState.TRACKING
    assert status.message == "Connection error: Session is closed"
    assert status.error is not None and status.error.code == "unexpected"
    assert status.writes_failed == 1

    clock.advance(1)
    assert await reporter.process_fix(_fix()) is True
    assert len(store.inserted) == 1


@pytest.mark.asyncio
async def test_write_from_previous_vehicle_does_not_move_throttle(
    positioning: FakePositioning, clock: FakeClock
) -> None:
    release = asyncio.Event()

    class SlowStore(FakeRowStore):
        async def insert(self, table: str, row: dict[str, object]) -> None:  # type: ignore[override]
            if row["vehicle_id"] == "TRUCK-01":
                await release.wait()
            await super().insert(table, row)

    store = SlowStore()
    reporter = _reporter(store, positioning, clock)
    reporter.start("TRUCK-01")
    pending = asyncio.create_task(reporter.process_fix(_fix()))
    await asyncio.sleep(0)

    reporter.start("TRUCK-02")
    release.set()
    assert await pending is True

    assert await reporter.process_fix(_fix()) is True
    assert [row["vehicle_id"] for _table, row in store.inserted] == ["TRUCK-01", "TRUCK-02"]
