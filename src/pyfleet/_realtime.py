"""Row-change notification feed over MQTT."""

from __future__ import annotations

import asyncio
import itertools
import json
import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Protocol, cast

import paho.mqtt.client as mqtt

from pyfleet._redact import redact_for_log
from pyfleet.config import FleetConfig
from pyfleet.exceptions import FleetError

_logger = logging.getLogger(__name__)


class ChangeKind(StrEnum):
    INSERT = "insert"
    UPDATE = "update"


@dataclass(frozen=True)
class ChangeEvent:
    """A decoded row-change notification."""

    table: str
    kind: ChangeKind
    record: dict[str, Any]
    topic: str = ""


ChangeCallback = Callable[[dict[str, Any]], None]


@dataclass(eq=False)
class SubscriptionHandle:
    """Returned by :meth:`ChangeFeed.subscribe`; pass it back to ``close``."""

    id: int
    table: str
    kind: ChangeKind
    callback: ChangeCallback = field(repr=False)
    closed: bool = False


class ChangeFeed(Protocol):
    def subscribe(self, table: str, kind: ChangeKind, callback: ChangeCallback) -> SubscriptionHandle:
        ...

    def close(self, handle: SubscriptionHandle) -> None:
        ...


def build_topic(prefix: str, schema: str, table: str, kind: ChangeKind) -> str:
    return f"{prefix.strip('/')}/{schema}/{table}/{kind.value}"


def decode_change_payload(topic: str, payload: bytes) -> ChangeEvent:
    """Decode an MQTT payload published for a row change.

    The topic identifies table and kind; the JSON body carries the row under
    ``record`` (or ``new``).

    Raises
    ------
    FleetError
        The topic or payload does not describe a row change.
    """
    parts = topic.split("/")
    if len(parts) < 3:
        raise FleetError(f"Unexpected change topic {topic!r}")
    table, kind_text = parts[-2], parts[-1]
    try:
        kind = ChangeKind(kind_text.lower())
    except ValueError as exc:
        raise FleetError(f"Unsupported change kind {kind_text!r}") from exc

    try:
        parsed = json.loads(payload.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise FleetError(f"Change payload on {topic} is not JSON") from exc
    if not isinstance(parsed, dict):
        raise FleetError("Change payload decoded to non-object JSON")

    record = parsed.get("record", parsed.get("new"))
    if not isinstance(record, dict):
        raise FleetError("Change payload carries no record")
    return ChangeEvent(table=table, kind=kind, record=record, topic=topic)


class MqttChangeFeed:
    """Threaded paho-mqtt runtime that delivers row changes onto an asyncio loop.

    Callbacks always run on the loop, never on the network thread.
    """

    def __init__(
        self,
        config: FleetConfig,
        *,
        loop: asyncio.AbstractEventLoop,
        logger: logging.Logger | None = None,
    ) -> None:
        self._config = config
        self._loop = loop
        self._logger = logger or _logger
        self._client: mqtt.Client | None = None
        self._running = False
        self._ids = itertools.count(1)
        self._lock = threading.Lock()
        self._handles: dict[str, list[SubscriptionHandle]] = {}

    @property
    def is_running(self) -> bool:
        return self._running

    def _topic(self, table: str, kind: ChangeKind) -> str:
        return build_topic(self._config.mqtt_topic_prefix, self._config.store_schema, table, kind)

    def subscribe(self, table: str, kind: ChangeKind, callback: ChangeCallback) -> SubscriptionHandle:
        """Deliver every *kind* change of *table* to *callback*."""
        topic = self._topic(table, kind)
        handle = SubscriptionHandle(id=next(self._ids), table=table, kind=kind, callback=callback)
        with self._lock:
            handles = self._handles.setdefault(topic, [])
            first = not handles
            handles.append(handle)
        client = self._client
        if first and client is not None and self._running:
            self._logger.debug("MQTT subscribing topic=%s", topic)
            client.subscribe(topic, qos=1)
        return handle

    def close(self, handle: SubscriptionHandle) -> None:
        """Stop delivering to *handle*. Safe to call more than once."""
        if handle.closed:
            return
        handle.closed = True
        topic = self._topic(handle.table, handle.kind)
        with self._lock:
            handles = self._handles.get(topic, [])
            if handle in handles:
                handles.remove(handle)
            last = not handles
            if last:
                self._handles.pop(topic, None)
        client = self._client
        if last and client is not None and self._running:
            self._logger.debug("MQTT unsubscribing topic=%s", topic)
            client.unsubscribe(topic)

    def _deliver(self, event: ChangeEvent) -> None:
        """Run on the loop: fan *event* out to the open handles for its topic."""
        with self._lock:
            handles = list(self._handles.get(event.topic, ()))
        for handle in handles:
            if handle.closed:
                continue
            try:
                handle.callback(event.record)
            except Exception:
                self._logger.exception("Change callback failed table=%s kind=%s", event.table, event.kind)

    def handle_message(self, topic: str, payload: bytes) -> None:
        """Decode a raw message and schedule delivery. Called from the network thread."""
        try:
            event = decode_change_payload(topic, payload)
        except FleetError:
            self._logger.debug("MQTT change payload parse failure topic=%s", topic, exc_info=True)
            return
        self._logger.debug("Change received topic=%s record=%s", topic, redact_for_log(event.record))
        self._loop.call_soon_threadsafe(self._deliver, event)

    def start(self) -> None:
        """Connect to the broker and subscribe every registered topic."""
        if self._running:
            return
        config = self._config
        if not config.mqtt_host:
            raise FleetError("mqtt_host is not configured")
        self._logger.debug("MQTT change feed start host=%s port=%s", config.mqtt_host, config.mqtt_port)

        client = mqtt.Client(
            callback_api_version=cast(Any, mqtt).CallbackAPIVersion.VERSION2,
            protocol=mqtt.MQTTv5,
        )
        client.enable_logger(self._logger)
        if config.mqtt_username:
            client.username_pw_set(config.mqtt_username, config.mqtt_password)
        if config.mqtt_tls:
            client.tls_set()

        def on_connect(
            c: mqtt.Client,
            _userdata: Any,
            _flags: Any,
            reason_code: Any,
            _properties: Any,
        ) -> None:
            if reason_code.value != 0:
                self._logger.warning("MQTT connect failed: %s", reason_code)
                return
            with self._lock:
                topics = list(self._handles)
            for topic in topics:
                self._logger.debug("MQTT subscribing topic=%s", topic)
                c.subscribe(topic, qos=1)

        def on_message(_c: mqtt.Client, _userdata: Any, msg: mqtt.MQTTMessage) -> None:
            self.handle_message(msg.topic, msg.payload)

        def on_disconnect(
            _client: mqtt.Client,
            _userdata: Any,
            _disconnect_flags: Any,
            reason_code: Any,
            _properties: Any,
        ) -> None:
            if self._running:
                self._logger.warning("MQTT disconnected: %s", reason_code)

        client.on_connect = on_connect
        client.on_message = on_message
        client.on_disconnect = on_disconnect

        client.connect(config.mqtt_host, config.mqtt_port, keepalive=config.mqtt_keepalive)
        client.loop_start()

        self._client = client
        self._running = True

    def stop(self) -> None:
        """Disconnect. Registered handles stay registered for the next ``start``."""
        client = self._client
        self._client = None
        was_running = self._running
        self._running = False

        if client is None:
            return
        try:
            if was_running:
                client.disconnect()
        finally:
            client.loop_stop()
            self._logger.debug("MQTT network loop stopped")
