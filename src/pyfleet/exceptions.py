"""Custom exception hierarchy for pyfleet."""

from __future__ import annotations


class FleetError(Exception):
    """Base exception for all pyfleet errors."""


class FleetConfigError(FleetError):
    """Invalid or missing configuration."""


class LegalHashError(FleetError):
    """The tamper-evident digest for a security event could not be computed."""


class PositioningError(FleetError):
    """The positioning service denied access or failed to deliver a fix.

    Fatal to the current tracking session; tracking has to be started
    again explicitly.
    """

    def __init__(self, message: str, *, code: str = "") -> None:
        self.code = code
        self.message = message
        super().__init__(message)


class StoreError(FleetError):
    """Row-store request failed."""

    def __init__(
        self,
        message: str,
        *,
        code: str = "",
        table: str = "",
    ) -> None:
        self.code = code
        self.table = table
        self.message = message
        super().__init__(message)

    def __str__(self) -> str:
        if self.code:
            return f"{self.code}: {self.message}"
        return self.message


class StoreWriteError(StoreError):
    """An insert was rejected or never reached the store.

    Recoverable: the location reporter retries on its next eligible fix.
    """


class StoreFetchError(StoreError):
    """A snapshot select failed."""


class MalformedNotificationError(FleetError):
    """A change notification or row is missing required fields."""

    def __init__(self, table: str, missing: tuple[str, ...]) -> None:
        self.table = table
        self.missing = missing
        super().__init__(f"{table} row missing required field(s): {', '.join(missing)}")


class IdentityMissingError(FleetError):
    """An operation required a signed-in user but none is present."""
