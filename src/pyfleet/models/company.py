"""Company model. Companies only partition vehicles."""

from __future__ import annotations

from typing import Any

from pydantic import field_validator

from pyfleet._constants import TABLE_COMPANIES
from pyfleet.ingestion.normalize import safe_str
from pyfleet.models._base import FleetBaseModel, require_fields


class Company(FleetBaseModel):
    id: str
    name: str = ""
    tax_id: str | None = None
    contact_email: str | None = None

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> str:
        text = safe_str(value)
        if text is None:
            raise ValueError("id must be non-empty")
        return text

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> Company:
        require_fields(TABLE_COMPANIES, row, ("id",))
        return cls.model_validate(row)
