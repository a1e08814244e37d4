"""Snooze handling: turn "snooze N minutes" into a new alert in the live queue."""

from __future__ import annotations

import logging
from typing import Any

from .gateway import PresentationGateway
from .models import CalendarEvent
from .scheduler import AlertScheduler

LOGGER = logging.getLogger("meetwatch.snooze")

DEFAULT_SNOOZE_MINUTES = 5


class SnoozeController:
    """Ask the scheduler for a snooze alert, then hide the current overlay.

    The originating event is always passed in explicitly; it does not have to be
    the event the overlay is currently showing.
    """

    def __init__(
        self,
        scheduler: AlertScheduler,
        gateway: PresentationGateway | None = None,
        *,
        logger: logging.Logger | None = None,
    ) -> None:
        self._scheduler = scheduler
        self._gateway = gateway
        self._logger = logger or LOGGER

    def attach_gateway(self, gateway: PresentationGateway) -> None:
        self._gateway = gateway

    def snooze(self, event: CalendarEvent | None, minutes: int) -> bool:
        if minutes <= 0:
            self._logger.warning("Snooze rejected: %s is not a positive number of minutes", minutes)
            return False
        if event is None:
            self._logger.warning("Snooze rejected: no event supplied")
            return False
        if self._scheduler.schedule_snooze(event, minutes) is None:
            return False
        # Only hide once the snooze is queued; a rejected request leaves the alert up.
        if self._gateway is not None:
            try:
                self._gateway.hide_alert()
            except Exception:  # pylint: disable=broad-except
                self._logger.exception("Failed to hide overlay after snoozing '%s'", event.title)
        return True

    def dismiss(self) -> None:
        if self._gateway is None:
            return
        try:
            self._gateway.hide_alert()
        except Exception:  # pylint: disable=broad-except
            self._logger.exception("Failed to hide overlay on dismiss")

    def handle_command(self, payload: dict[str, Any]) -> bool:
        """Apply an overlay command such as ``{"action": "snooze", "event_id": "e1", "minutes": 10}``."""
        if not isinstance(payload, dict):
            self._logger.debug("Ignoring non-object overlay command: %r", payload)
            return False
        action = str(payload.get("action") or "").strip().lower()
        if action == "dismiss":
            self.dismiss()
            return True
        if action != "snooze":
            self._logger.debug("Ignoring unknown overlay action: %s", action or "<missing>")
            return False
        event_id = str(payload.get("event_id") or "").strip()
        event = self._scheduler.find_event(event_id) if event_id else None
        if event is None:
            self._logger.warning("Snooze rejected: unknown event %r", event_id)
            return False
        minutes = payload.get("minutes", DEFAULT_SNOOZE_MINUTES)
        if isinstance(minutes, bool) or not isinstance(minutes, (int, float)):
            self._logger.warning("Snooze rejected: invalid minutes %r", minutes)
            return False
        return self.snooze(event, int(minutes))
