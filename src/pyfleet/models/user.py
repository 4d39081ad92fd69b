"""Signed-in identity, supplied by the surrounding authentication layer."""

from __future__ import annotations

from pydantic import ConfigDict

from pyfleet.models._base import FleetBaseModel


class UserProfile(FleetBaseModel):
    """The current user.

    Parameters
    ----------
    id : str
        Stable user id; recorded as ``user_id`` on security events.
    email : str or None
        Contact address.
    full_name : str or None
        Display name shown on the dashboard.
    role : str or None
        Free-form role label (``"admin"``, ``"operator"``, ...).
    company_id : str or None
        Home company of the user, if any.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    id: str
    email: str | None = None
    full_name: str | None = None
    role: str | None = None
    company_id: str | None = None
