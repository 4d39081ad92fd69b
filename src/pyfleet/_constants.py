"""Internal constants shared across the library."""

# ------------------------------------------------------------------
# Row-store tables
# ------------------------------------------------------------------

TABLE_VEHICLES = "vehicles"
TABLE_VEHICLE_LOCATIONS = "vehicle_locations"
TABLE_SECURITY_EVENTS = "security_events"
TABLE_COMPANIES = "companies"

DEFAULT_SCHEMA = "public"

# ------------------------------------------------------------------
# Location reporting
# ------------------------------------------------------------------

#: Minimum spacing between two successful location writes for one vehicle.
MIN_REPORT_INTERVAL_MS = 10_000
GPS_TIMEOUT_MS = 10_000
GPS_MAX_AGE_MS = 0

# ------------------------------------------------------------------
# Alerts
# ------------------------------------------------------------------

ALERT_ID_PREFIX = "alert-"
UNKNOWN_VEHICLE_ID = "unknown"
