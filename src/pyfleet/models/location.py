"""Position models: fixes from the device and samples written to the store."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from pyfleet._constants import GPS_MAX_AGE_MS, GPS_TIMEOUT_MS, TABLE_VEHICLE_LOCATIONS
from pyfleet.ingestion.normalize import safe_float
from pyfleet.models._base import FleetBaseModel, require_fields


def normalize_vehicle_id(value: str) -> str:
    """Canonical form of an operator-typed vehicle identifier (trimmed, upper case)."""
    return value.strip().upper()


class Location(BaseModel):
    """A WGS84 coordinate pair. Both halves are always present."""

    model_config = ConfigDict(frozen=True)

    lat: float
    lng: float


class WatchOptions(BaseModel):
    """Options passed to :meth:`PositioningService.watch`."""

    model_config = ConfigDict(frozen=True)

    high_accuracy: bool = True
    timeout_ms: int = GPS_TIMEOUT_MS
    max_age_ms: int = GPS_MAX_AGE_MS


class PositionFix(BaseModel):
    """One reading from the positioning service.

    ``speed`` is ``None`` when the device cannot measure it.
    """

    model_config = ConfigDict(frozen=True)

    latitude: float
    longitude: float
    speed: float | None = None
    heading: float | None = None
    accuracy: float | None = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @field_validator("speed", "heading", "accuracy", mode="before")
    @classmethod
    def _coerce_optional(cls, value: Any) -> float | None:
        return safe_float(value)


class LocationSample(FleetBaseModel):
    """A row of the ``vehicle_locations`` table.

    The server assigns the insert timestamp; the sample is never kept
    client-side beyond patching the owning vehicle's location.
    """

    vehicle_id: str
    lat: float
    lng: float
    speed: float = 0.0

    @field_validator("vehicle_id")
    @classmethod
    def _strip_vehicle_id(cls, value: str) -> str:
        vehicle_id = value.strip()
        if not vehicle_id:
            raise ValueError("vehicle_id must be non-empty")
        return vehicle_id

    @field_validator("speed", mode="before")
    @classmethod
    def _speed_or_zero(cls, value: Any) -> float:
        return safe_float(value) or 0.0

    @classmethod
    def from_fix(cls, vehicle_id: str, fix: PositionFix) -> LocationSample:
        return cls(vehicle_id=normalize_vehicle_id(vehicle_id), lat=fix.latitude, lng=fix.longitude, speed=fix.speed or 0.0)

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> LocationSample:
        """Parse a ``vehicle_locations`` insert notification.

        Raises
        ------
        MalformedNotificationError
            ``vehicle_id``, ``lat`` or ``lng`` is missing.
        """
        require_fields(TABLE_VEHICLE_LOCATIONS, row, ("vehicle_id", "lat", "lng"))
        return cls.model_validate(row)

    def to_row(self) -> dict[str, Any]:
        return {"vehicle_id": self.vehicle_id, "lat": self.lat, "lng": self.lng, "speed": self.speed}
