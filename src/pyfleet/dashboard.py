"""High-level async facade for the fleet dashboard."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

import aiohttp

from pyfleet._constants import TABLE_SECURITY_EVENTS
from pyfleet._crypto.hashing import build_event_payload, generate_legal_hash
from pyfleet._realtime import ChangeFeed, MqttChangeFeed
from pyfleet._rowstore import RestRowStore, RowStore
from pyfleet.config import FleetConfig
from pyfleet.exceptions import FleetError, IdentityMissingError, StoreWriteError
from pyfleet.models._base import to_iso_timestamp
from pyfleet.models.security import Alert, SecurityEventType, Severity
from pyfleet.models.user import UserProfile
from pyfleet.models.vehicle import Vehicle
from pyfleet.orchestrator import SubscriptionOrchestrator
from pyfleet.state.actions import ResolveAlert, SetSelectedCompany
from pyfleet.state.channel import ActionChannel
from pyfleet.state.store import FleetState, StateStore

_logger = logging.getLogger(__name__)


class FleetDashboard:
    """Live view over vehicles, alerts, security events and companies.

    Usage::

        async with FleetDashboard(config) as dashboard:
            await dashboard.set_user(user)
            for vehicle in dashboard.filtered_vehicles:
                ...

    ``store`` and ``feed`` may be supplied for tests or alternative
    transports; otherwise a :class:`RestRowStore` and an
    :class:`MqttChangeFeed` are created from *config*.
    """

    def __init__(
        self,
        config: FleetConfig,
        *,
        session: aiohttp.ClientSession | None = None,
        store: RowStore | None = None,
        feed: ChangeFeed | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._config = config
        self._external_session = session is not None
        self._http_session = session
        self._row_store = store
        self._feed = feed
        self._owned_feed: MqttChangeFeed | None = None
        self._clock = clock or (lambda: datetime.now(UTC))
        self._state_store = StateStore()
        self._channel = ActionChannel(self._state_store)
        self._orchestrator: SubscriptionOrchestrator | None = None

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> FleetDashboard:
        loop = asyncio.get_running_loop()
        if self._row_store is None:
            if self._http_session is None:
                self._http_session = aiohttp.ClientSession()
            self._row_store = RestRowStore(self._config, self._http_session)
        if self._feed is None:
            self._owned_feed = MqttChangeFeed(self._config, loop=loop, logger=_logger)
            self._feed = self._owned_feed
            if self._config.mqtt_host:
                self._owned_feed.start()
            else:
                _logger.warning("mqtt_host not configured; realtime updates disabled")
        self._channel.start()
        self._orchestrator = SubscriptionOrchestrator(
            self._channel.send,
            self._row_store,
            self._feed,
            security_event_history_limit=self._config.security_event_history_limit,
        )
        return self

    async def __aexit__(self, *exc: Any) -> None:
        if self._orchestrator is not None:
            self._orchestrator.teardown()
            self._orchestrator = None
        await self._channel.stop()
        self._state_store.reset()
        if self._owned_feed is not None:
            self._owned_feed.stop()
            self._owned_feed = None
            self._feed = None
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None

    # ------------------------------------------------------------------
    # Read model
    # ------------------------------------------------------------------

    @property
    def state(self) -> FleetState:
        return self._state_store.state

    @property
    def state_store(self) -> StateStore:
        return self._state_store

    @property
    def filtered_vehicles(self) -> tuple[Vehicle, ...]:
        return self._state_store.filtered_vehicles

    @property
    def active_alerts(self) -> tuple[Alert, ...]:
        return self._state_store.active_alerts

    async def settle(self) -> None:
        """Wait until every queued action has reached the state."""
        await self._channel.drain()

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def _require_orchestrator(self) -> SubscriptionOrchestrator:
        if self._orchestrator is None:
            raise FleetError("Dashboard not initialized. Use 'async with FleetDashboard(...) as dashboard:'")
        return self._orchestrator

    def _require_user(self) -> UserProfile:
        user = self._require_orchestrator().user
        if user is None:
            raise IdentityMissingError("No signed-in user")
        return user

    async def set_user(self, user: UserProfile | None) -> None:
        """Switch identity; ``None`` signs out and clears the view."""
        await self._require_orchestrator().set_identity(user)
        await self.settle()

    async def refresh(self) -> None:
        await self._require_orchestrator().refresh()
        await self.settle()

    async def set_selected_company_id(self, company_id: str | None) -> None:
        self._channel.send(SetSelectedCompany(company_id=company_id))
        await self.settle()

    async def resolve_alert(self, alert_id: str) -> None:
        self._channel.send(ResolveAlert(alert_id=alert_id))
        await self.settle()

    async def log_security_event(
        self,
        event_type: SecurityEventType | str,
        severity: Severity | str,
        details: dict[str, Any] | None = None,
        vehicle_id: str | None = None,
    ) -> str | None:
        """Hash and persist a security event for the current user.

        The event reaches the state through the change feed, not directly.

        Returns
        -------
        str or None
            The legal hash written, or ``None`` when nobody is signed in.

        Raises
        ------
        LegalHashError
            The payload could not be hashed; nothing was written.
        StoreWriteError
            The insert failed.
        """
        try:
            user = self._require_user()
        except IdentityMissingError:
            _logger.debug("Skipping security event %s: no signed-in user", event_type)
            return None

        event_type = SecurityEventType(event_type)
        severity = Severity(severity)
        details = dict(details or {})
        timestamp = self._clock()
        payload = build_event_payload(
            event_type=event_type.value,
            severity=severity.value,
            user_id=user.id,
            timestamp=timestamp,
            details=details,
            vehicle_id=vehicle_id,
        )
        legal_hash = generate_legal_hash(payload)

        row = {
            "user_id": user.id,
            "vehicle_id": vehicle_id,
            "type": event_type.value,
            "severity": severity.value,
            "location": details.get("location"),
            "timestamp": to_iso_timestamp(timestamp),
            "legal_hash": legal_hash,
            "details": details,
        }
        assert self._row_store is not None  # noqa: S101
        try:
            await self._row_store.insert(TABLE_SECURITY_EVENTS, row)
        except StoreWriteError as exc:
            _logger.error("Error logging security event: code=%s message=%s", exc.code, exc.message)
            raise
        return legal_hash
