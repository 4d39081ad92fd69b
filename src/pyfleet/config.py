"""Client configuration for pyfleet."""

from __future__ import annotations

import dataclasses
import os
from typing import Any

from pyfleet._constants import DEFAULT_SCHEMA, GPS_MAX_AGE_MS, GPS_TIMEOUT_MS, MIN_REPORT_INTERVAL_MS
from pyfleet.exceptions import FleetConfigError
from pyfleet.models.location import WatchOptions


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


@dataclasses.dataclass(frozen=True)
class FleetConfig:
    """Client configuration.

    Parameters
    ----------
    store_url : str
        Base URL of the row store (e.g. ``"https://fleet.example.com"``).
    store_api_key : str
        Key sent as ``apikey`` and bearer token with every store request.
    store_schema : str
        Database schema the tables live in; also part of change topics.
    request_timeout : float
        Total timeout in seconds for a single store request.
    mqtt_host : str
        Broker carrying row-change notifications. Empty disables the feed.
    mqtt_port : int
        Broker port.
    mqtt_tls : bool
        Whether to connect to the broker over TLS.
    mqtt_keepalive : int
        MQTT keepalive in seconds.
    mqtt_username, mqtt_password : str or None
        Optional broker credentials.
    mqtt_topic_prefix : str
        Topic prefix for change notifications. Topics look like
        ``<prefix>/<schema>/<table>/<insert|update>``.
    report_interval_ms : int
        Minimum spacing between two successful location writes.
    gps_high_accuracy : bool
        Ask the positioning service for its high-accuracy mode.
    gps_timeout_ms : int
        How long to wait for a fix before the positioning service errors.
    gps_max_age_ms : int
        Maximum age of a cached fix the service may deliver (0 = never cached).
    security_event_history_limit : int
        How many recent security events to load with the snapshot.
        ``0`` skips the history fetch.
    """

    store_url: str
    store_api_key: str
    store_schema: str = DEFAULT_SCHEMA
    request_timeout: float = 15.0
    mqtt_host: str = ""
    mqtt_port: int = 8883
    mqtt_tls: bool = True
    mqtt_keepalive: int = 120
    mqtt_username: str | None = None
    mqtt_password: str | None = None
    mqtt_topic_prefix: str = "fleet/changes"
    report_interval_ms: int = MIN_REPORT_INTERVAL_MS
    gps_high_accuracy: bool = True
    gps_timeout_ms: int = GPS_TIMEOUT_MS
    gps_max_age_ms: int = GPS_MAX_AGE_MS
    security_event_history_limit: int = 50

    def __post_init__(self) -> None:
        if not self.store_url.strip():
            raise FleetConfigError("store_url must be non-empty")
        if self.report_interval_ms < 0:
            raise FleetConfigError("report_interval_ms must be >= 0")
        if self.security_event_history_limit < 0:
            raise FleetConfigError("security_event_history_limit must be >= 0")

    def watch_options(self) -> WatchOptions:
        """Positioning options derived from this configuration."""
        return WatchOptions(
            high_accuracy=self.gps_high_accuracy,
            timeout_ms=self.gps_timeout_ms,
            max_age_ms=self.gps_max_age_ms,
        )

    @classmethod
    def from_env(cls, **overrides: Any) -> FleetConfig:
        """Create configuration from environment variables.

        Reads ``FLEET_STORE_URL``, ``FLEET_STORE_API_KEY`` and optional
        ``FLEET_*`` variables. Explicit keyword arguments override
        environment values.

        Raises
        ------
        FleetConfigError
            A required value is missing or a numeric variable is not a number.
        """
        env = os.environ

        _ENV_STR_MAP = {
            "FLEET_STORE_URL": "store_url",
            "FLEET_STORE_API_KEY": "store_api_key",
            "FLEET_STORE_SCHEMA": "store_schema",
            "FLEET_MQTT_HOST": "mqtt_host",
            "FLEET_MQTT_USERNAME": "mqtt_username",
            "FLEET_MQTT_PASSWORD": "mqtt_password",
            "FLEET_MQTT_TOPIC_PREFIX": "mqtt_topic_prefix",
        }
        _ENV_NUMERIC_MAP: dict[str, tuple[str, type]] = {
            "FLEET_REQUEST_TIMEOUT": ("request_timeout", float),
            "FLEET_MQTT_PORT": ("mqtt_port", int),
            "FLEET_MQTT_KEEPALIVE": ("mqtt_keepalive", int),
            "FLEET_REPORT_INTERVAL_MS": ("report_interval_ms", int),
            "FLEET_GPS_TIMEOUT_MS": ("gps_timeout_ms", int),
            "FLEET_GPS_MAX_AGE_MS": ("gps_max_age_ms", int),
            "FLEET_SECURITY_EVENT_HISTORY_LIMIT": ("security_event_history_limit", int),
        }
        _ENV_BOOL_MAP = {
            "FLEET_MQTT_TLS": ("mqtt_tls", True),
            "FLEET_GPS_HIGH_ACCURACY": ("gps_high_accuracy", True),
        }

        config_kwargs: dict[str, Any] = {}
        for env_key, field_name in _ENV_STR_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val

        for env_key, (field_name, kind) in _ENV_NUMERIC_MAP.items():
            val = env.get(env_key)
            if val is None or field_name in overrides:
                continue
            try:
                config_kwargs[field_name] = kind(val)
            except ValueError as exc:
                raise FleetConfigError(f"{env_key} must be a number, got {val!r}") from exc

        for env_key, (field_name, default) in _ENV_BOOL_MAP.items():
            if field_name not in overrides:
                config_kwargs[field_name] = _env_bool(env.get(env_key), default)

        config_kwargs.update(overrides)

        for required in ("store_url", "store_api_key"):
            if not config_kwargs.get(required):
                raise FleetConfigError(f"missing required setting {required!r} (FLEET_{required.upper()})")

        return cls(**config_kwargs)
