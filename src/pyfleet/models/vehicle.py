"""Vehicle model."""

from __future__ import annotations

from typing import Any

from pydantic import field_validator, model_validator

from pyfleet._constants import TABLE_VEHICLES
from pyfleet.exceptions import MalformedNotificationError
from pyfleet.ingestion.normalize import clamp_percent, float_or_zero, safe_str
from pyfleet.models._base import FleetBaseModel, FleetEnum, UtcDatetime, require_fields
from pyfleet.models.location import Location


class VehicleStatus(FleetEnum):
    """Operational status reported for a vehicle."""

    UNKNOWN = "unknown"
    ACTIVE = "active"
    IDLE = "idle"
    MOVING = "moving"
    MAINTENANCE = "maintenance"
    OFFLINE = "offline"
    ALERT = "alert"


class Vehicle(FleetBaseModel):
    """A row of the ``vehicles`` table.

    ``location`` is assembled from the independent ``lat`` and ``lng``
    columns; ``speed`` and ``heading`` default to ``0``.
    """

    id: str
    plate: str = ""
    status: VehicleStatus = VehicleStatus.UNKNOWN
    location: Location | None = None
    speed: float = 0.0
    heading: float = 0.0
    last_update: UtcDatetime | None = None
    battery_level: float | None = None
    fatigue_level: float | None = None
    company_id: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _assemble_location(cls, values: Any) -> Any:
        if not isinstance(values, dict) or "location" in values:
            return values
        lat = values.get("lat")
        lng = values.get("lng")
        if lat is None and lng is None:
            return values
        if lat is None or lng is None:
            raise MalformedNotificationError(TABLE_VEHICLES, ("lat",) if lat is None else ("lng",))
        merged = dict(values)
        merged["location"] = {"lat": lat, "lng": lng}
        return merged

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> str:
        text = safe_str(value)
        if text is None:
            raise ValueError("id must be non-empty")
        return text

    @field_validator("company_id", mode="before")
    @classmethod
    def _coerce_company_id(cls, value: Any) -> str | None:
        return safe_str(value)

    @field_validator("speed", "heading", mode="before")
    @classmethod
    def _coerce_motion(cls, value: Any) -> float:
        return float_or_zero(value)

    @field_validator("battery_level", "fatigue_level", mode="before")
    @classmethod
    def _coerce_levels(cls, value: Any) -> float | None:
        return clamp_percent(value)

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> Vehicle:
        """Map a ``vehicles`` row (snapshot or update notification) to a vehicle.

        Raises
        ------
        MalformedNotificationError
            ``id`` is missing, or only one of ``lat``/``lng`` is present.
        pydantic.ValidationError
            A column holds a value of the wrong type.
        """
        require_fields(TABLE_VEHICLES, row, ("id",))
        return cls.model_validate(row)

    def with_location(self, lat: float, lng: float) -> Vehicle:
        """Copy of this vehicle with only ``location`` replaced."""
        return self.model_copy(update={"location": Location(lat=lat, lng=lng)})
