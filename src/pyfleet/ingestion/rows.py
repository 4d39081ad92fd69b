"""Change-notification ingestion.

Translates rows delivered by the change feed into state-store actions.
Malformed rows yield ``None``: they are expected while the server is still
assembling a row, so they are dropped and logged at DEBUG only.
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import ValidationError

from pyfleet._crypto.hashing import verify_legal_hash
from pyfleet.exceptions import MalformedNotificationError
from pyfleet.models.location import LocationSample
from pyfleet.models.security import SecurityEvent
from pyfleet.models.vehicle import Vehicle
from pyfleet.state.actions import AddSecurityEvent, UpdateVehicle, UpdateVehicleLocation

_logger = logging.getLogger(__name__)

_DROPPABLE = (MalformedNotificationError, ValidationError)


def vehicle_update_action(row: dict[str, Any]) -> UpdateVehicle | None:
    try:
        vehicle = Vehicle.from_row(row)
    except _DROPPABLE as exc:
        _logger.debug("Dropping vehicles update: %s", exc)
        return None
    return UpdateVehicle(vehicle=vehicle)


def location_insert_action(row: dict[str, Any]) -> UpdateVehicleLocation | None:
    try:
        sample = LocationSample.from_row(row)
    except _DROPPABLE as exc:
        _logger.debug("Dropping vehicle_locations insert: %s", exc)
        return None
    return UpdateVehicleLocation(id=sample.vehicle_id, lat=sample.lat, lng=sample.lng)


def parse_security_event(row: dict[str, Any]) -> SecurityEvent | None:
    """Parse a ``security_events`` row and mark it verified when its hash matches."""
    try:
        event = SecurityEvent.from_row(row)
    except _DROPPABLE as exc:
        _logger.debug("Dropping security_events row: %s", exc)
        return None
    if verify_legal_hash(event):
        return event.model_copy(update={"verified": True})
    _logger.warning("Security event %s failed legal hash verification", event.id)
    return event


def security_event_action(row: dict[str, Any]) -> AddSecurityEvent | None:
    event = parse_security_event(row)
    if event is None:
        return None
    return AddSecurityEvent(event=event)
