"""Positioning service interface and a replay implementation."""

from __future__ import annotations

import asyncio
import csv
import itertools
import logging
from collections.abc import Callable, Iterable
from datetime import UTC, datetime
from pathlib import Path
from typing import Protocol

from pyfleet.exceptions import PositioningError
from pyfleet.models.location import PositionFix, WatchOptions

_logger = logging.getLogger(__name__)

FixCallback = Callable[[PositionFix], None]
ErrorCallback = Callable[[PositioningError], None]


class PositioningService(Protocol):
    """Continuous position source.

    ``watch`` may raise :class:`PositioningError` when access is denied
    outright; later failures are reported through *on_error*.
    """

    def watch(self, options: WatchOptions, on_fix: FixCallback, on_error: ErrorCallback) -> int:
        ...

    def cancel(self, handle: int) -> None:
        ...


def load_fixes_csv(path: str | Path) -> list[PositionFix]:
    """Read fixes from a CSV with ``lat``, ``lng`` and optional ``speed``/``heading`` columns."""
    fixes: list[PositionFix] = []
    with open(path, newline="", encoding="utf-8") as fh:
        for line_no, row in enumerate(csv.DictReader(fh), start=2):
            try:
                fixes.append(
                    PositionFix(
                        latitude=float(row["lat"]),
                        longitude=float(row["lng"]),
                        speed=row.get("speed"),
                        heading=row.get("heading"),
                    )
                )
            except (KeyError, TypeError, ValueError) as exc:
                raise ValueError(f"{path}:{line_no}: invalid fix row: {exc}") from exc
    return fixes


class ReplayPositioningService:
    """Replays recorded fixes at a fixed interval on the running loop.

    When the recording runs out, the watch fails with code ``"exhausted"``
    unless ``loop_track`` is set.
    """

    def __init__(self, fixes: Iterable[PositionFix], *, interval: float = 1.0, loop_track: bool = False) -> None:
        self._fixes = list(fixes)
        self._interval = interval
        self._loop_track = loop_track
        self._ids = itertools.count(1)
        self._tasks: dict[int, asyncio.Task[None]] = {}

    def watch(self, options: WatchOptions, on_fix: FixCallback, on_error: ErrorCallback) -> int:
        if not self._fixes:
            raise PositioningError("No recorded fixes to replay", code="unavailable")
        handle = next(self._ids)
        _logger.debug("Replay watch %s started high_accuracy=%s", handle, options.high_accuracy)
        self._tasks[handle] = asyncio.get_running_loop().create_task(self._run(on_fix, on_error))
        return handle

    def cancel(self, handle: int) -> None:
        task = self._tasks.pop(handle, None)
        if task is not None:
            task.cancel()

    async def _run(self, on_fix: FixCallback, on_error: ErrorCallback) -> None:
        source = itertools.cycle(self._fixes) if self._loop_track else iter(self._fixes)
        for fix in source:
            on_fix(fix.model_copy(update={"timestamp": datetime.now(UTC)}))
            await asyncio.sleep(self._interval)
        on_error(PositioningError("Recorded track exhausted", code="exhausted"))
