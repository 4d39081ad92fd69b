"""Security events and the alerts derived from them."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import Field, field_validator

from pyfleet._constants import ALERT_ID_PREFIX, TABLE_SECURITY_EVENTS, UNKNOWN_VEHICLE_ID
from pyfleet.ingestion.normalize import safe_str
from pyfleet.models._base import FleetBaseModel, FleetEnum, UtcDatetime, require_fields


class Severity(FleetEnum):
    UNKNOWN = "unknown"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class SecurityEventType(FleetEnum):
    """Kinds of security events.

    Values are the exact strings stored in ``security_events.type``.
    """

    UNKNOWN = "UNKNOWN"
    SOS = "SOS"
    GEOFENCE_BREACH = "GEOFENCE_BREACH"
    UNAUTHORIZED_ACCESS = "UNAUTHORIZED_ACCESS"
    TAMPERING = "TAMPERING"
    LOGIN = "LOGIN"
    LOGOUT = "LOGOUT"
    DATA_EXPORT = "DATA_EXPORT"


class AlertType(FleetEnum):
    UNKNOWN = "unknown"
    SOS = "sos"
    GEOFENCE = "geofence"


class SecurityEvent(FleetBaseModel):
    """A row of the ``security_events`` table. Immutable once created.

    ``verified`` is set by the reader once ``legal_hash`` has been
    recomputed and found to match.
    """

    id: str
    user_id: str
    vehicle_id: str | None = None
    type: SecurityEventType = SecurityEventType.UNKNOWN
    severity: Severity = Severity.UNKNOWN
    location: dict[str, Any] | None = None
    timestamp: UtcDatetime
    legal_hash: str = ""
    details: dict[str, Any] = Field(default_factory=dict)
    verified: bool = False

    @field_validator("id", "user_id", mode="before")
    @classmethod
    def _coerce_ids(cls, value: Any) -> str:
        text = safe_str(value)
        if text is None:
            raise ValueError("must be non-empty")
        return text

    @field_validator("vehicle_id", mode="before")
    @classmethod
    def _coerce_vehicle_id(cls, value: Any) -> str | None:
        return safe_str(value)

    @classmethod
    def from_row(cls, row: dict[str, Any], *, verified: bool = False) -> SecurityEvent:
        require_fields(TABLE_SECURITY_EVENTS, row, ("id", "user_id", "timestamp"))
        return cls.model_validate({**row, "verified": verified})

    @property
    def raises_alert(self) -> bool:
        return self.severity in (Severity.HIGH, Severity.CRITICAL)


class Alert(FleetBaseModel):
    """Ephemeral alert shown on the dashboard.

    Never persisted as its own row; always derived from a security event.
    """

    id: str
    vehicle_id: str
    type: AlertType
    severity: Severity
    timestamp: datetime
    resolved: bool = False

    @classmethod
    def from_security_event(cls, event: SecurityEvent) -> Alert | None:
        """Derive the alert for *event*, or ``None`` below high severity."""
        if not event.raises_alert:
            return None
        return cls(
            id=f"{ALERT_ID_PREFIX}{event.id}",
            vehicle_id=event.vehicle_id or UNKNOWN_VEHICLE_ID,
            type=AlertType.SOS if event.type == SecurityEventType.SOS else AlertType.GEOFENCE,
            severity=event.severity,
            timestamp=event.timestamp,
        )
