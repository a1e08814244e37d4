"""meetwatch alert daemon: wires the calendar feed, scheduler and overlay together."""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import signal
from typing import Any

from meetwatch.alerts.calendar_feed import CalendarFeedSource
from meetwatch.alerts.config import TimingPreferences, WatchConfig
from meetwatch.alerts.models import CalendarEvent
from meetwatch.alerts.mqtt import AlertMqtt
from meetwatch.alerts.overlay_gateway import MqttOverlayGateway, bind_json_command
from meetwatch.alerts.preferences import PreferenceStore
from meetwatch.alerts.scheduler import AlertScheduler
from meetwatch.alerts.snooze import SnoozeController

LOGGER = logging.getLogger("meetwatch")

PREFERENCES_TOPIC = "preferences/set"


class AlertDaemon:
    """Application assembly. Owns every component; none of them own each other."""

    def __init__(self, config: WatchConfig) -> None:
        self.config = config
        self.mqtt = AlertMqtt(config.mqtt, logger=logging.getLogger("meetwatch.mqtt"))
        self.gateway = MqttOverlayGateway(self.mqtt)
        self.preferences = PreferenceStore(config.preferences, storage_path=config.preferences_path)
        self.scheduler = AlertScheduler(
            self.preferences.current,
            on_queue_changed=self.gateway.publish_queue,
        )
        self.snooze = SnoozeController(self.scheduler, self.gateway)
        self.preferences.add_listener(self.scheduler.update_preferences)
        self.calendar: CalendarFeedSource | None = None
        if config.calendar.enabled:
            self.calendar = CalendarFeedSource(config=config.calendar, on_events=self._handle_events)
            LOGGER.info("Calendar feed initialized with %d feed(s)", len(config.calendar.feeds))
        else:
            LOGGER.warning("Calendar feed disabled (MEETWATCH_CALENDAR_ICS_URLS not set)")

    async def run(self) -> None:
        loop = asyncio.get_running_loop()
        self.preferences.load()
        self.scheduler.update_preferences(self.preferences.current)
        self.gateway.listen(self._handle_overlay_command, loop)
        bind_json_command(self.mqtt, PREFERENCES_TOPIC, self._handle_preferences_command, loop)
        self.mqtt.connect()
        self.scheduler.start([], self.gateway)
        if self.calendar:
            await self.calendar.start()
        LOGGER.info("meetwatch ready (topic base %s)", self.config.mqtt.topic_base)

    async def shutdown(self) -> None:
        if self.calendar:
            await self.calendar.stop()
        await self.scheduler.shutdown()
        self.gateway.hide_alert()
        self.mqtt.disconnect()

    def handle_wake(self) -> None:
        """Host resumed from sleep: re-evaluate deadlines against the wall clock."""
        self.scheduler.refresh()

    def _handle_events(self, events: list[CalendarEvent]) -> None:
        self.scheduler.start(events, self.gateway)

    def _handle_overlay_command(self, payload: dict[str, Any]) -> None:
        self.snooze.handle_command(payload)

    def _handle_preferences_command(self, payload: dict[str, Any]) -> TimingPreferences:
        return self.preferences.handle_command(payload)


async def main() -> None:
    parser = argparse.ArgumentParser(description="Full-screen meeting alert daemon")
    parser.add_argument("--log-level", default="INFO")
    args = parser.parse_args()
    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )

    config = WatchConfig.from_env()
    daemon = AlertDaemon(config)

    loop = asyncio.get_running_loop()
    stop_event = asyncio.Event()

    def _handle_signal(signum: int) -> None:
        LOGGER.info("Received signal %s, shutting down", signum)
        stop_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, _handle_signal, sig)
    # SIGUSR1 is sent by the resume hook after suspend.
    loop.add_signal_handler(signal.SIGUSR1, daemon.handle_wake)

    run_task = asyncio.create_task(daemon.run())
    await stop_event.wait()
    await daemon.shutdown()
    run_task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await run_task


def run() -> None:
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass
