"""Tamper-evident digests for security events.

The digest is computed client-side over client-asserted fields, including
the client clock. It proves a stored row was not altered after it left the
client; it proves nothing about a client that lies.
"""

from __future__ import annotations

import hashlib
import hmac
import json
from datetime import datetime
from typing import TYPE_CHECKING, Any

from pyfleet.exceptions import LegalHashError
from pyfleet.models._base import to_iso_timestamp

if TYPE_CHECKING:
    from pyfleet.models.security import SecurityEvent

LEGAL_HASH_ALGORITHM = "sha256"


def _drop_none(value: Any) -> Any:
    if isinstance(value, dict):
        return {str(k): _drop_none(v) for k, v in value.items() if v is not None}
    if isinstance(value, (list, tuple)):
        return [_drop_none(v) for v in value]
    return value


def _json_default(value: Any) -> Any:
    if isinstance(value, datetime):
        return to_iso_timestamp(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def canonical_json(payload: dict[str, Any]) -> str:
    """Serialise *payload* deterministically.

    Keys are sorted at every level, separators are compact and keys whose
    value is ``None`` are omitted.
    """
    return json.dumps(
        _drop_none(payload),
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        allow_nan=False,
        default=_json_default,
    )


def build_event_payload(
    *,
    event_type: str,
    severity: str,
    user_id: str,
    timestamp: datetime,
    details: dict[str, Any] | None = None,
    vehicle_id: str | None = None,
) -> dict[str, Any]:
    """Assemble the fields covered by the legal hash."""
    return {
        "type": str(event_type),
        "severity": str(severity),
        "vehicleId": vehicle_id,
        "details": details or {},
        "userId": user_id,
        "timestamp": to_iso_timestamp(timestamp),
    }


def generate_legal_hash(event_data: dict[str, Any]) -> str:
    """Return the 64-character hex SHA-256 digest of *event_data*.

    Raises
    ------
    LegalHashError
        The payload cannot be serialised or the digest is unavailable.
    """
    try:
        encoded = canonical_json(event_data).encode("utf-8")
        digest = hashlib.new(LEGAL_HASH_ALGORITHM, encoded)
    except (TypeError, ValueError) as exc:
        raise LegalHashError(f"Cannot hash security event: {exc}") from exc
    return digest.hexdigest()


def verify_legal_hash(event: SecurityEvent) -> bool:
    """Recompute the digest of a stored event and compare it with ``legal_hash``."""
    if not event.legal_hash:
        return False
    payload = build_event_payload(
        event_type=event.type.value,
        severity=event.severity.value,
        user_id=event.user_id,
        timestamp=event.timestamp,
        details=event.details,
        vehicle_id=event.vehicle_id,
    )
    try:
        expected = generate_legal_hash(payload)
    except LegalHashError:
        return False
    return hmac.compare_digest(expected, event.legal_hash.lower())
