"""Deterministic in-memory state store.

This is the only component allowed to change dashboard state. Given the
same sequence of actions it always produces the same :class:`FleetState`.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence

from pydantic import BaseModel, ConfigDict

from pyfleet.models.company import Company
from pyfleet.models.security import Alert, SecurityEvent
from pyfleet.models.user import UserProfile
from pyfleet.models.vehicle import Vehicle
from pyfleet.state.actions import (
    Action,
    AddAlert,
    AddSecurityEvent,
    ResolveAlert,
    SetCompanies,
    SetCurrentUser,
    SetLoading,
    SetSecurityEvents,
    SetSelectedCompany,
    SetVehicles,
    UpdateVehicle,
    UpdateVehicleLocation,
)

_logger = logging.getLogger(__name__)

StateListener = Callable[["FleetState", Action], None]


def filter_by_company(vehicles: Sequence[Vehicle], company_id: str | None) -> tuple[Vehicle, ...]:
    """Vehicles owned by *company_id*, in their original order; all of them for ``None``."""
    if company_id is None:
        return tuple(vehicles)
    return tuple(v for v in vehicles if v.company_id == company_id)


class FleetState(BaseModel):
    """Immutable snapshot of everything the dashboard shows.

    Alerts and security events are ordered most recent first.
    """

    model_config = ConfigDict(frozen=True)

    vehicles: tuple[Vehicle, ...] = ()
    alerts: tuple[Alert, ...] = ()
    security_events: tuple[SecurityEvent, ...] = ()
    companies: tuple[Company, ...] = ()
    selected_company_id: str | None = None
    current_user: UserProfile | None = None
    is_loading: bool = True

    @property
    def filtered_vehicles(self) -> tuple[Vehicle, ...]:
        return filter_by_company(self.vehicles, self.selected_company_id)

    @property
    def active_alerts(self) -> tuple[Alert, ...]:
        return tuple(a for a in self.alerts if not a.resolved)

    def vehicle(self, vehicle_id: str) -> Vehicle | None:
        for vehicle in self.vehicles:
            if vehicle.id == vehicle_id:
                return vehicle
        return None


def _prepend_alert(alerts: tuple[Alert, ...], alert: Alert) -> tuple[Alert, ...]:
    # Re-delivered notifications must not duplicate an alert.
    if any(a.id == alert.id for a in alerts):
        return alerts
    return (alert, *alerts)


def reduce(state: FleetState, action: Action) -> FleetState:
    """Apply one action and return the next state.

    Never mutates *state* and never raises. Updates addressed to a vehicle id
    that is not (yet) loaded are no-ops.
    """
    if isinstance(action, SetVehicles):
        return state.model_copy(update={"vehicles": tuple(action.vehicles), "is_loading": False})

    if isinstance(action, UpdateVehicle):
        if state.vehicle(action.vehicle.id) is None:
            return state
        vehicles = tuple(action.vehicle if v.id == action.vehicle.id else v for v in state.vehicles)
        return state.model_copy(update={"vehicles": vehicles})

    if isinstance(action, UpdateVehicleLocation):
        if state.vehicle(action.id) is None:
            return state
        vehicles = tuple(v.with_location(action.lat, action.lng) if v.id == action.id else v for v in state.vehicles)
        return state.model_copy(update={"vehicles": vehicles})

    if isinstance(action, AddAlert):
        alerts = _prepend_alert(state.alerts, action.alert)
        if alerts is state.alerts:
            return state
        return state.model_copy(update={"alerts": alerts})

    if isinstance(action, ResolveAlert):
        if not any(a.id == action.alert_id and not a.resolved for a in state.alerts):
            return state
        alerts = tuple(
            a.model_copy(update={"resolved": True}) if a.id == action.alert_id else a for a in state.alerts
        )
        return state.model_copy(update={"alerts": alerts})

    if isinstance(action, AddSecurityEvent):
        event = action.event
        if any(e.id == event.id for e in state.security_events):
            return state
        update: dict[str, object] = {"security_events": (event, *state.security_events)}
        alert = Alert.from_security_event(event)
        if alert is not None:
            update["alerts"] = _prepend_alert(state.alerts, alert)
        return state.model_copy(update=update)

    if isinstance(action, SetSecurityEvents):
        return state.model_copy(update={"security_events": tuple(action.events)})

    if isinstance(action, SetCompanies):
        return state.model_copy(update={"companies": tuple(action.companies)})

    if isinstance(action, SetSelectedCompany):
        return state.model_copy(update={"selected_company_id": action.company_id})

    if isinstance(action, SetCurrentUser):
        return state.model_copy(update={"current_user": action.user})

    if isinstance(action, SetLoading):
        return state.model_copy(update={"is_loading": action.is_loading})

    return state


class StateStore:
    """Holds the current :class:`FleetState` and applies actions in dispatch order.

    Listeners are called after every dispatch with the new state and the
    action that produced it.
    """

    def __init__(self, initial: FleetState | None = None) -> None:
        self._state = initial if initial is not None else FleetState()
        self._listeners: list[StateListener] = []

    @property
    def state(self) -> FleetState:
        return self._state

    @property
    def filtered_vehicles(self) -> tuple[Vehicle, ...]:
        return self._state.filtered_vehicles

    @property
    def active_alerts(self) -> tuple[Alert, ...]:
        return self._state.active_alerts

    def dispatch(self, action: Action) -> FleetState:
        """Apply *action* and notify listeners."""
        _logger.debug("dispatch %s", action.type)
        previous = self._state
        self._state = reduce(previous, action)
        if self._state is previous:
            return self._state
        for listener in list(self._listeners):
            try:
                listener(self._state, action)
            except Exception:
                _logger.exception("State listener failed for %s", action.type)
        return self._state

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Register *listener*; returns a callable that removes it."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def reset(self) -> None:
        """Drop all state (session end)."""
        self._state = FleetState()
