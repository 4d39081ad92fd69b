"""Base model and enum for row-store records.

Every record model inherits from :class:`FleetBaseModel` which provides:

* ``alias_generator=to_camel`` plus ``populate_by_name`` so both the
  snake_case wire names and camelCase keys are accepted.
* A ``model_validator(mode="before")`` that drops ``None`` values so the
  field default is used, and stashes the original row in ``raw``.

Enums inherit from :class:`FleetEnum` which adds an ``UNKNOWN`` member and a
``_missing_`` hook that matches case-insensitively and falls back to
``UNKNOWN`` for anything else.
"""

from __future__ import annotations

import enum
from collections.abc import Iterable, Mapping
from datetime import UTC, datetime
from typing import Annotated, Any

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from pyfleet.exceptions import MalformedNotificationError


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


UtcDatetime = Annotated[datetime, AfterValidator(ensure_utc)]
"""Datetime parsed from ISO-8601 (or epoch) and normalised to UTC."""


def to_iso_timestamp(value: datetime) -> str:
    """Render *value* as ``YYYY-MM-DDTHH:MM:SS.mmmZ``."""
    return ensure_utc(value).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def require_fields(table: str, row: Mapping[str, Any], names: Iterable[str]) -> None:
    """Raise :class:`MalformedNotificationError` unless every name is present and non-null."""
    missing = tuple(name for name in names if row.get(name) is None)
    if missing:
        raise MalformedNotificationError(table, missing)


class FleetEnum(enum.StrEnum):
    """Base for string enums stored in rows.

    Every subclass **must** define ``UNKNOWN``.
    """

    @classmethod
    def _missing_(cls, value: object) -> FleetEnum:
        if isinstance(value, str):
            lowered = value.strip().lower()
            for member in cls:
                if member.value.lower() == lowered:
                    return member
        unknown: FleetEnum = cls["UNKNOWN"]
        return unknown


class FleetBaseModel(BaseModel):
    """Base for records read from or written to the row store."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    raw: dict[str, Any] = Field(default_factory=dict, repr=False, exclude=True)
    """Original row as received."""

    @model_validator(mode="before")
    @classmethod
    def _drop_nulls(cls, values: Any) -> Any:
        """Drop null columns and stash the raw row."""
        if not isinstance(values, dict):
            return values
        cleaned = {key: value for key, value in values.items() if value is not None}
        if "raw" not in values:
            cleaned["raw"] = dict(values)
        return cleaned
