"""MQTT-backed presentation gateway driving the kiosk overlay."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any

from .models import CalendarEvent
from .mqtt import AlertMqtt

LOGGER = logging.getLogger("meetwatch.overlay_gateway")

ALERT_TOPIC = "overlay/alert"
SOUND_TOPIC = "overlay/sound"
JOIN_TOPIC = "overlay/join"
COMMAND_TOPIC = "overlay/command"
QUEUE_TOPIC = "alerts/state"

CommandHandler = Callable[[dict[str, Any]], Any]


def bind_json_command(
    mqtt: AlertMqtt,
    suffix: str,
    handler: CommandHandler,
    loop: asyncio.AbstractEventLoop,
) -> None:
    """Run ``handler(payload)`` on ``loop`` for every JSON command published to ``suffix``.

    paho delivers on its network thread; the handler always runs on the event
    loop thread so it may touch the scheduler directly.
    """

    def _forward(data: dict[str, Any]) -> None:
        loop.call_soon_threadsafe(handler, data)

    mqtt.subscribe_json(suffix, _forward)


class MqttOverlayGateway:
    """Publish overlay show/hide/sound/join commands; one visible alert at a time."""

    def __init__(self, mqtt: AlertMqtt, *, logger: logging.Logger | None = None) -> None:
        self._mqtt = mqtt
        self._logger = logger or LOGGER
        self._visible: CalendarEvent | None = None

    @property
    def visible_event(self) -> CalendarEvent | None:
        return self._visible

    def show_alert(self, event: CalendarEvent, from_snooze: bool = False) -> None:
        if self._visible is not None and self._visible.event_id == event.event_id:
            self._logger.debug("Overlay already showing '%s'", event.title)
            return
        if self._visible is not None:
            self._logger.info("Replacing overlay for '%s' with '%s'", self._visible.title, event.title)
        self._visible = event
        self._mqtt.publish_json(
            ALERT_TOPIC,
            {"state": "show", "event": event.to_public_dict(), "from_snooze": from_snooze},
            retain=True,
        )

    def hide_alert(self) -> None:
        if self._visible is None:
            return
        event = self._visible
        self._visible = None
        self._mqtt.publish_json(ALERT_TOPIC, {"state": "hidden", "event": event.to_public_dict()}, retain=True)

    def play_sound(self, event: CalendarEvent) -> None:
        self._mqtt.publish_json(SOUND_TOPIC, {"event": event.to_public_dict()})

    def open_meeting_link(self, event: CalendarEvent, url: str) -> None:
        self._mqtt.publish_json(JOIN_TOPIC, {"event": event.to_public_dict(), "url": url})
        if self._visible is not None and self._visible.event_id == event.event_id:
            self.hide_alert()

    def publish_queue(self, snapshot: list[dict[str, Any]]) -> None:
        self._mqtt.publish_json(QUEUE_TOPIC, {"alerts": snapshot}, retain=True)

    def listen(self, handler: CommandHandler, loop: asyncio.AbstractEventLoop) -> None:
        """Forward overlay commands (snooze/dismiss) to ``handler`` on ``loop``."""
        bind_json_command(self._mqtt, COMMAND_TOPIC, handler, loop)
