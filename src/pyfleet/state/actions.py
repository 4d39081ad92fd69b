"""The closed set of state transitions.

Every ingestion path (snapshot fetch, change notifications, local user
input) converts its input into one of these actions. Only the store applies
them.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from pyfleet.models.company import Company
from pyfleet.models.security import Alert, SecurityEvent
from pyfleet.models.user import UserProfile
from pyfleet.models.vehicle import Vehicle


class ActionType(StrEnum):
    SET_VEHICLES = "SET_VEHICLES"
    UPDATE_VEHICLE = "UPDATE_VEHICLE"
    UPDATE_VEHICLE_LOCATION = "UPDATE_VEHICLE_LOCATION"
    ADD_ALERT = "ADD_ALERT"
    RESOLVE_ALERT = "RESOLVE_ALERT"
    ADD_SECURITY_EVENT = "ADD_SECURITY_EVENT"
    SET_SECURITY_EVENTS = "SET_SECURITY_EVENTS"
    SET_COMPANIES = "SET_COMPANIES"
    SET_SELECTED_COMPANY = "SET_SELECTED_COMPANY"
    SET_CURRENT_USER = "SET_CURRENT_USER"
    SET_LOADING = "SET_LOADING"


class _Action(BaseModel):
    model_config = ConfigDict(frozen=True)


class SetVehicles(_Action):
    type: Literal[ActionType.SET_VEHICLES] = ActionType.SET_VEHICLES
    vehicles: tuple[Vehicle, ...] = ()


class UpdateVehicle(_Action):
    type: Literal[ActionType.UPDATE_VEHICLE] = ActionType.UPDATE_VEHICLE
    vehicle: Vehicle


class UpdateVehicleLocation(_Action):
    type: Literal[ActionType.UPDATE_VEHICLE_LOCATION] = ActionType.UPDATE_VEHICLE_LOCATION
    id: str
    lat: float
    lng: float


class AddAlert(_Action):
    type: Literal[ActionType.ADD_ALERT] = ActionType.ADD_ALERT
    alert: Alert


class ResolveAlert(_Action):
    type: Literal[ActionType.RESOLVE_ALERT] = ActionType.RESOLVE_ALERT
    alert_id: str


class AddSecurityEvent(_Action):
    type: Literal[ActionType.ADD_SECURITY_EVENT] = ActionType.ADD_SECURITY_EVENT
    event: SecurityEvent


class SetSecurityEvents(_Action):
    type: Literal[ActionType.SET_SECURITY_EVENTS] = ActionType.SET_SECURITY_EVENTS
    events: tuple[SecurityEvent, ...] = ()


class SetCompanies(_Action):
    type: Literal[ActionType.SET_COMPANIES] = ActionType.SET_COMPANIES
    companies: tuple[Company, ...] = ()


class SetSelectedCompany(_Action):
    type: Literal[ActionType.SET_SELECTED_COMPANY] = ActionType.SET_SELECTED_COMPANY
    company_id: str | None = None


class SetCurrentUser(_Action):
    type: Literal[ActionType.SET_CURRENT_USER] = ActionType.SET_CURRENT_USER
    user: UserProfile | None = None


class SetLoading(_Action):
    type: Literal[ActionType.SET_LOADING] = ActionType.SET_LOADING
    is_loading: bool


Action = Annotated[
    SetVehicles
    | UpdateVehicle
    | UpdateVehicleLocation
    | AddAlert
    | ResolveAlert
    | AddSecurityEvent
    | SetSecurityEvents
    | SetCompanies
    | SetSelectedCompany
    | SetCurrentUser
    | SetLoading,
    Field(discriminator="type"),
]

ACTION_ADAPTER: TypeAdapter[Action] = TypeAdapter(Action)
"""Parses logged/replayed actions back into their typed form."""
