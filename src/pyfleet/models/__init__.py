"""Typed records for the fleet row store."""

from pyfleet.models._base import FleetBaseModel, FleetEnum, UtcDatetime, ensure_utc, to_iso_timestamp
from pyfleet.models.company import Company
from pyfleet.models.location import Location, LocationSample, PositionFix, WatchOptions, normalize_vehicle_id
from pyfleet.models.security import Alert, AlertType, SecurityEvent, SecurityEventType, Severity
from pyfleet.models.user import UserProfile
from pyfleet.models.vehicle import Vehicle, VehicleStatus

__all__ = [
    "Alert",
    "AlertType",
    "Company",
    "FleetBaseModel",
    "FleetEnum",
    "Location",
    "LocationSample",
    "PositionFix",
    "SecurityEvent",
    "SecurityEventType",
    "Severity",
    "UserProfile",
    "UtcDatetime",
    "Vehicle",
    "VehicleStatus",
    "WatchOptions",
    "ensure_utc",
    "normalize_vehicle_id",
    "to_iso_timestamp",
]
