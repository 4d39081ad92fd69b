"""pyfleet - Async Python client for live fleet tracking."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pyfleet")
except PackageNotFoundError:
    __version__ = "0+local"
from pyfleet.config import FleetConfig
from pyfleet.dashboard import FleetDashboard
from pyfleet.exceptions import (
    FleetConfigError,
    FleetError,
    IdentityMissingError,
    LegalHashError,
    MalformedNotificationError,
    PositioningError,
    StoreError,
    StoreFetchError,
    StoreWriteError,
)
from pyfleet.models import (
    Alert,
    AlertType,
    Company,
    Location,
    LocationSample,
    PositionFix,
    SecurityEvent,
    SecurityEventType,
    Severity,
    UserProfile,
    Vehicle,
    VehicleStatus,
    WatchOptions,
)
from pyfleet.orchestrator import SubscriptionOrchestrator
from pyfleet.reporter import LocationReporter, ReporterState, ReporterStatus
from pyfleet.state.store import FleetState, StateStore

__all__ = [
    "__version__",
    "Alert",
    "AlertType",
    "Company",
    "FleetConfig",
    "FleetConfigError",
    "FleetDashboard",
    "FleetError",
    "FleetState",
    "IdentityMissingError",
    "LegalHashError",
    "Location",
    "LocationReporter",
    "LocationSample",
    "MalformedNotificationError",
    "PositionFix",
    "PositioningError",
    "ReporterState",
    "ReporterStatus",
    "SecurityEvent",
    "SecurityEventType",
    "Severity",
    "StateStore",
    "StoreError",
    "StoreFetchError",
    "StoreWriteError",
    "SubscriptionOrchestrator",
    "UserProfile",
    "Vehicle",
    "VehicleStatus",
    "WatchOptions",
]
