"""Throttled location reporter for the tracking device.

Turns the continuous fix stream of a :class:`PositioningService` into
rate-limited ``vehicle_locations`` inserts::

    Idle -> Requesting -> Tracking <-> Sending
    Requesting/Tracking -> Failed   (positioning error; start() again)
    any -> Idle                     (stop())

The interval is measured from the last *successful* write. A failed write
does not move it, so the next fix after a failure retries immediately.
Only one write per tracking session is in flight. A write that completes
after its session ended neither updates the status nor moves the interval.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict

from pyfleet._constants import MIN_REPORT_INTERVAL_MS, TABLE_VEHICLE_LOCATIONS
from pyfleet._rowstore import RowStore
from pyfleet.exceptions import PositioningError, StoreWriteError
from pyfleet.models.location import LocationSample, PositionFix, WatchOptions, normalize_vehicle_id
from pyfleet.positioning import PositioningService

_logger = logging.getLogger(__name__)


class ReporterState(StrEnum):
    IDLE = "idle"
    REQUESTING = "requesting"
    TRACKING = "tracking"
    SENDING = "sending"
    FAILED = "failed"


class ReporterStatus(BaseModel):
    """What the operator sees.

    ``error`` holds the positioning error while ``FAILED``, or the last
    write error while tracking continues.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    state: ReporterState = ReporterState.IDLE
    message: str = "Ready"
    vehicle_id: str | None = None
    error: PositioningError | StoreWriteError | None = None
    last_sent_at: float | None = None
    writes_sent: int = 0
    writes_failed: int = 0

    @property
    def is_tracking(self) -> bool:
        return self.state in (ReporterState.REQUESTING, ReporterState.TRACKING, ReporterState.SENDING)


class LocationReporter:
    """Samples a position stream and writes at most one sample per interval.

    Parameters
    ----------
    store
        Destination for ``vehicle_locations`` rows.
    positioning
        Source of fixes.
    interval_ms
        Minimum spacing between successful writes.
    options
        Watch options; high accuracy, 10 s first-fix timeout, no cached fixes.
    clock
        Wall-clock seconds; injectable for tests.
    on_status
        Called with the new :class:`ReporterStatus` on every change.
    """

    def __init__(
        self,
        store: RowStore,
        positioning: PositioningService,
        *,
        interval_ms: int = MIN_REPORT_INTERVAL_MS,
        options: WatchOptions | None = None,
        clock: Callable[[], float] = time.time,
        on_status: Callable[[ReporterStatus], None] | None = None,
    ) -> None:
        self._store = store
        self._positioning = positioning
        self._interval_ms = interval_ms
        self._options = options or WatchOptions()
        self._clock = clock
        self._on_status = on_status
        self._status = ReporterStatus()
        self._watch_handle: int | None = None
        self._vehicle_id: str | None = None
        self._last_success_ms: float | None = None
        self._session = 0
        self._tasks: set[asyncio.Task[bool]] = set()

    @property
    def status(self) -> ReporterStatus:
        return self._status

    @property
    def vehicle_id(self) -> str | None:
        return self._vehicle_id

    def _set_status(self, **changes: object) -> None:
        self._status = self._status.model_copy(update=changes)
        if self._on_status is not None:
            try:
                self._on_status(self._status)
            except Exception:
                _logger.exception("Reporter status callback failed")

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self, vehicle_id: str) -> None:
        """Begin watching positions for *vehicle_id*.

        A watch that is already running is cancelled first.
        """
        normalized = normalize_vehicle_id(vehicle_id)
        if not normalized:
            raise ValueError("vehicle_id must be non-empty")
        self._cancel_watch()
        if normalized != self._vehicle_id:
            self._last_success_ms = None
        self._vehicle_id = normalized
        self._session += 1
        session = self._session
        self._set_status(
            state=ReporterState.REQUESTING,
            message="Requesting GPS...",
            vehicle_id=normalized,
            error=None,
        )

        def on_fix(fix: PositionFix) -> None:
            if session == self._session:
                self._schedule(fix)

        def on_error(error: PositioningError) -> None:
            if session == self._session:
                self._fail(error)

        try:
            self._watch_handle = self._positioning.watch(self._options, on_fix, on_error)
        except PositioningError as exc:
            self._fail(exc)
            return
        if self._status.state == ReporterState.REQUESTING:
            self._set_status(state=ReporterState.TRACKING, message="Tracking...")
        _logger.info("Location reporting started for %s", normalized)

    def stop(self) -> None:
        """Cancel the watch and return to ``IDLE``. Safe to call at any time."""
        self._cancel_watch()
        self._session += 1
        self._set_status(state=ReporterState.IDLE, message="Tracking stopped", error=None)

    def suspend(self) -> None:
        """Release the position watch but remember the vehicle and last write."""
        if not self._status.is_tracking:
            return
        self._cancel_watch()
        self._session += 1
        self._set_status(state=ReporterState.IDLE, message="Tracking suspended")

    def resume(self) -> None:
        """Restart tracking for the remembered vehicle after :meth:`suspend`."""
        if self._vehicle_id is None or self._status.is_tracking:
            return
        self.start(self._vehicle_id)

    async def drain(self) -> None:
        """Wait for in-flight writes to finish."""
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    def _cancel_watch(self) -> None:
        handle = self._watch_handle
        self._watch_handle = None
        if handle is not None:
            self._positioning.cancel(handle)

    def _fail(self, error: PositioningError) -> None:
        self._cancel_watch()
        self._session += 1
        _logger.error("Positioning failed: code=%s message=%s", error.code, error.message)
        self._set_status(state=ReporterState.FAILED, message=f"GPS error: {error.message}", error=error)

    # ------------------------------------------------------------------
    # Fix handling
    # ------------------------------------------------------------------

    def _schedule(self, fix: PositionFix) -> None:
        task = asyncio.get_running_loop().create_task(self.process_fix(fix))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _due(self, now_ms: float) -> bool:
        if self._last_success_ms is None:
            return True
        return now_ms - self._last_success_ms >= self._interval_ms

    async def process_fix(self, fix: PositionFix) -> bool:
        """Write *fix* if the interval has elapsed. Returns whether a write succeeded."""
        state = self._status.state
        if self._vehicle_id is None or state not in (ReporterState.REQUESTING, ReporterState.TRACKING):
            return False
        now_ms = self._clock() * 1000
        if not self._due(now_ms):
            return False

        session = self._session
        sample = LocationSample.from_fix(self._vehicle_id, fix)
        self._set_status(state=ReporterState.SENDING)
        try:
            await self._store.insert(TABLE_VEHICLE_LOCATIONS, sample.to_row())
        except StoreWriteError as exc:
            _logger.error("Location write failed: code=%s message=%s", exc.code, exc.message)
            self._write_failed(session, exc)
            return False
        except Exception as exc:
            _logger.exception("Location write failed unexpectedly")
            error = StoreWriteError(str(exc) or type(exc).__name__, code="unexpected", table=TABLE_VEHICLE_LOCATIONS)
            self._write_failed(session, error)
            return False

        if session == self._session:
            self._last_success_ms = now_ms
            sent_at = now_ms / 1000
            self._set_status(
                state=ReporterState.TRACKING,
                message=f"Sent ✓ {datetime.fromtimestamp(sent_at).strftime('%H:%M:%S')}",
                error=None,
                last_sent_at=sent_at,
                writes_sent=self._status.writes_sent + 1,
            )
        return True

    def _write_failed(self, session: int, error: StoreWriteError) -> None:
        if session != self._session:
            return
        self._set_status(
            state=ReporterState.TRACKING,
            message=f"Connection error: {error.message}",
            error=error,
            writes_failed=self._status.writes_failed + 1,
        )
