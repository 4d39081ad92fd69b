"""Single-consumer action channel.

Change-feed callbacks run on the network thread; they never touch the store
directly. They push actions here and one consumer task on the event loop
applies them in arrival order.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging

from pyfleet.state.actions import Action
from pyfleet.state.store import StateStore

_logger = logging.getLogger(__name__)


class ActionChannel:
    def __init__(self, store: StateStore) -> None:
        self._store = store
        self._queue: asyncio.Queue[Action] = asyncio.Queue()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._consumer: asyncio.Task[None] | None = None

    @property
    def is_running(self) -> bool:
        return self._consumer is not None and not self._consumer.done()

    def start(self) -> None:
        """Start the consumer task on the running loop. Idempotent."""
        if self.is_running:
            return
        self._loop = asyncio.get_running_loop()
        self._consumer = self._loop.create_task(self._consume(), name="pyfleet-action-channel")

    async def stop(self) -> None:
        """Apply whatever is queued, then stop the consumer."""
        consumer = self._consumer
        self._consumer = None
        if consumer is None:
            return
        await self._queue.join()
        consumer.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await consumer

    def send(self, action: Action) -> None:
        """Queue *action*. Safe to call from any thread."""
        loop = self._loop
        if loop is None:
            raise RuntimeError("ActionChannel.start() has not been called")
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is loop:
            self._queue.put_nowait(action)
        else:
            loop.call_soon_threadsafe(self._queue.put_nowait, action)

    async def drain(self) -> None:
        """Wait until every queued action has been applied."""
        await self._queue.join()

    async def _consume(self) -> None:
        while True:
            action = await self._queue.get()
            try:
                self._store.dispatch(action)
            except Exception:
                _logger.exception("Failed to apply %s", action.type)
            finally:
                self._queue.task_done()
