"""Keeps the state store bound to the change feed for the current identity.

For a signed-in user the orchestrator opens exactly three subscriptions
(vehicle updates, location inserts, security-event inserts) and loads the
snapshot. Subscriptions are opened before the snapshot resolves; updates for
vehicles that are not loaded yet are no-ops in the reducer. Any identity
change closes every subscription of the previous identity first.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any

from pyfleet._constants import TABLE_SECURITY_EVENTS, TABLE_VEHICLE_LOCATIONS, TABLE_VEHICLES
from pyfleet._realtime import ChangeFeed, ChangeKind, SubscriptionHandle
from pyfleet._rowstore import RowStore
from pyfleet.exceptions import StoreFetchError
from pyfleet.ingestion.rows import location_insert_action, security_event_action, vehicle_update_action
from pyfleet.ingestion.snapshot import fetch_companies, fetch_security_events, fetch_vehicles
from pyfleet.models.user import UserProfile
from pyfleet.state.actions import (
    Action,
    SetCompanies,
    SetCurrentUser,
    SetLoading,
    SetSecurityEvents,
    SetVehicles,
)

_logger = logging.getLogger(__name__)

Dispatch = Callable[[Action], Any]
RowToAction = Callable[[dict[str, Any]], Action | None]

_STREAMS: tuple[tuple[str, ChangeKind, RowToAction], ...] = (
    (TABLE_VEHICLES, ChangeKind.UPDATE, vehicle_update_action),
    (TABLE_VEHICLE_LOCATIONS, ChangeKind.INSERT, location_insert_action),
    (TABLE_SECURITY_EVENTS, ChangeKind.INSERT, security_event_action),
)


class SubscriptionOrchestrator:
    """Binds a dispatch function to a row store and a change feed.

    Parameters
    ----------
    dispatch
        Where actions go; :meth:`StateStore.dispatch` or :meth:`ActionChannel.send`.
    store
        Row store used for the snapshot.
    feed
        Change-notification feed.
    security_event_history_limit
        Number of recent security events loaded with the snapshot; ``0`` skips it.
    """

    def __init__(
        self,
        dispatch: Dispatch,
        store: RowStore,
        feed: ChangeFeed,
        *,
        security_event_history_limit: int = 50,
    ) -> None:
        self._dispatch = dispatch
        self._store = store
        self._feed = feed
        self._history_limit = security_event_history_limit
        self._handles: list[SubscriptionHandle] = []
        self._user: UserProfile | None = None
        self._generation = 0

    @property
    def user(self) -> UserProfile | None:
        return self._user

    @property
    def open_subscriptions(self) -> tuple[SubscriptionHandle, ...]:
        return tuple(h for h in self._handles if not h.closed)

    async def set_identity(self, user: UserProfile | None) -> None:
        """Rebind to *user*, tearing down everything opened for the previous one."""
        if user is not None and self._user is not None and user.id == self._user.id and self.open_subscriptions:
            self._user = user
            self._dispatch(SetCurrentUser(user=user))
            return

        self.teardown()
        self._user = user
        self._dispatch(SetCurrentUser(user=user))

        if user is None:
            self._dispatch(SetVehicles(vehicles=()))
            self._dispatch(SetCompanies(companies=()))
            return

        generation = self._generation
        self._open_subscriptions(generation)
        await self._load_snapshot(generation)

    async def refresh(self) -> None:
        """Reload the snapshot for the current identity."""
        if self._user is None:
            return
        await self._load_snapshot(self._generation)

    def teardown(self) -> None:
        """Close every open subscription. Idempotent."""
        self._generation += 1
        handles = self._handles
        self._handles = []
        for handle in handles:
            try:
                self._feed.close(handle)
            except Exception:
                _logger.exception("Failed to close %s subscription", handle.table)

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def _open_subscriptions(self, generation: int) -> None:
        for table, kind, to_action in _STREAMS:
            handle = self._feed.subscribe(table, kind, self._make_callback(generation, to_action))
            self._handles.append(handle)
        _logger.debug("Opened %d change subscriptions", len(self._handles))

    def _make_callback(self, generation: int, to_action: RowToAction) -> Callable[[dict[str, Any]], None]:
        def _callback(row: dict[str, Any]) -> None:
            if generation != self._generation:
                return
            action = to_action(row)
            if action is not None:
                self._dispatch(action)

        return _callback

    # ------------------------------------------------------------------
    # Snapshot
    # ------------------------------------------------------------------

    async def _load_snapshot(self, generation: int) -> None:
        await asyncio.gather(
            self._load_companies(generation),
            self._load_vehicles(generation),
            self._load_security_events(generation),
        )

    def _dispatch_if_current(self, generation: int, action: Action) -> None:
        if generation == self._generation:
            self._dispatch(action)

    async def _load_companies(self, generation: int) -> None:
        try:
            companies = await fetch_companies(self._store)
        except StoreFetchError as exc:
            _logger.error("Error fetching companies: %s", exc)
            return
        self._dispatch_if_current(generation, SetCompanies(companies=tuple(companies)))

    async def _load_vehicles(self, generation: int) -> None:
        self._dispatch_if_current(generation, SetLoading(is_loading=True))
        try:
            vehicles = await fetch_vehicles(self._store)
        except StoreFetchError as exc:
            _logger.error("Error fetching vehicles: %s", exc)
            self._dispatch_if_current(generation, SetLoading(is_loading=False))
            return
        self._dispatch_if_current(generation, SetVehicles(vehicles=tuple(vehicles)))

    async def _load_security_events(self, generation: int) -> None:
        if self._history_limit <= 0:
            return
        try:
            events = await fetch_security_events(self._store, limit=self._history_limit)
        except StoreFetchError as exc:
            _logger.error("Error fetching security events: %s", exc)
            return
        self._dispatch_if_current(generation, SetSecurityEvents(events=tuple(events)))
