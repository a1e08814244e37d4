"""MQTT transport for meetwatch: JSON documents under a single topic base.

Every topic the daemon uses lives below ``MqttConfig.topic_base``; callers pass
the suffix only (``overlay/alert``, ``preferences/set``). Inbound handlers are
registered by suffix, survive reconnects, and may be added before the broker is
reachable. A retained ``status`` topic reports ``online``/``offline`` (the
latter also as the last will) so the overlay can tell a dead daemon from an
idle one.
"""

from __future__ import annotations

import json
import logging
import ssl
import threading
from collections.abc import Callable
from typing import Any

import paho.mqtt.client as mqtt

from .config import MqttConfig

LOGGER = logging.getLogger("meetwatch.mqtt")

STATUS_TOPIC = "status"

JsonHandler = Callable[[dict[str, Any]], None]


class AlertMqtt:
    """Publish and receive JSON objects for one meetwatch instance.

    Handlers run on paho's network thread; hop to the event loop before
    touching the scheduler.
    """

    def __init__(self, config: MqttConfig, logger: logging.Logger | None = None) -> None:
        self.config = config
        self._logger = logger or LOGGER
        self._client: mqtt.Client | None = None
        self._handlers: dict[str, JsonHandler] = {}
        self._lock = threading.Lock()

    @property
    def client_id(self) -> str:
        return "meetwatch-" + self.config.topic_base.replace("/", "-")

    def topic(self, suffix: str) -> str:
        return f"{self.config.topic_base}/{suffix.strip('/')}"

    # ------------------------------------------------------------------
    # Connection
    # ------------------------------------------------------------------

    def connect(self) -> bool:
        """Open the broker connection. Returns False when MQTT is unconfigured or unreachable."""
        if not self.config.host:
            self._logger.warning("MQTT host not configured; overlay commands will not be delivered")
            return False
        with self._lock:
            if self._client is not None:
                return True
            client = self._build_client()
            try:
                client.connect(self.config.host, self.config.port, keepalive=30)
            except Exception as exc:  # pylint: disable=broad-except
                self._logger.warning(
                    "Failed to connect to MQTT broker %s:%s: %s", self.config.host, self.config.port, exc
                )
                return False
            client.loop_start()
            self._client = client
        return True

    def disconnect(self) -> None:
        with self._lock:
            client = self._client
            self._client = None
        if client is None:
            return
        client.publish(self.topic(STATUS_TOPIC), "offline", retain=True)
        client.disconnect()
        client.loop_stop()

    def is_connected(self) -> bool:
        client = self._client
        try:
            return bool(client and client.is_connected())
        except Exception:  # pylint: disable=broad-except
            return False

    def _build_client(self) -> mqtt.Client:
        client = mqtt.Client(
            callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
            client_id=self.client_id,
            clean_session=True,
        )
        if self.config.username:
            client.username_pw_set(self.config.username, self.config.password or "")
        if self.config.tls_enabled:
            client.tls_set(
                ca_certs=self.config.ca_cert,
                certfile=self.config.cert,
                keyfile=self.config.key,
                tls_version=ssl.PROTOCOL_TLS_CLIENT,
            )
        client.will_set(self.topic(STATUS_TOPIC), "offline", retain=True)
        client.on_connect = self._on_connect
        client.on_message = self._on_message
        return client

    def _on_connect(self, client, _userdata, _flags, reason_code, _properties=None):  # type: ignore[no-untyped-def]
        if reason_code.is_failure:
            self._logger.warning("MQTT broker refused connection: %s", reason_code)
            return
        client.publish(self.topic(STATUS_TOPIC), "online", retain=True)
        with self._lock:
            topics = list(self._handlers)
        for topic in topics:
            self._subscribe(client, topic)
        self._logger.info("Connected to MQTT broker %s (%d subscription(s))", self.config.host, len(topics))

    # ------------------------------------------------------------------
    # JSON publish/subscribe
    # ------------------------------------------------------------------

    def publish_json(self, suffix: str, payload: dict[str, Any], *, retain: bool = False) -> bool:
        topic = self.topic(suffix)
        client = self._client
        if client is None:
            self._logger.debug("Dropping publish to %s: not connected", topic)
            return False
        try:
            info = client.publish(topic, payload=json.dumps(payload), qos=0, retain=retain)
        except Exception as exc:  # pylint: disable=broad-except
            self._logger.warning("Failed to publish to %s: %s", topic, exc)
            return False
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            self._logger.warning("Publish to %s was not queued (rc=%s)", topic, info.rc)
            return False
        return True

    def subscribe_json(self, suffix: str, handler: JsonHandler) -> None:
        """Call ``handler`` with every JSON object published to ``suffix``; other payloads are dropped."""
        topic = self.topic(suffix)
        with self._lock:
            self._handlers[topic] = handler
            client = self._client
        if client is not None:
            self._subscribe(client, topic)

    def _subscribe(self, client: mqtt.Client, topic: str) -> None:
        result, _mid = client.subscribe(topic)
        if result != mqtt.MQTT_ERR_SUCCESS:
            self._logger.warning("Failed to subscribe to %s (rc=%s)", topic, result)

    def _on_message(self, _client, _userdata, message) -> None:  # type: ignore[no-untyped-def]
        handler = self._handlers.get(message.topic)
        if handler is None:
            return
        try:
            data = json.loads(message.payload.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError):
            self._logger.debug("Ignoring malformed payload on %s", message.topic)
            return
        if not isinstance(data, dict):
            self._logger.debug("Ignoring non-object payload on %s", message.topic)
            return
        try:
            handler(data)
        except Exception:  # pylint: disable=broad-except
            self._logger.exception("MQTT handler failed for %s", message.topic)
