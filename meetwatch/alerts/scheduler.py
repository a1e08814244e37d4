"""
Alert scheduling with a single cooperative wait loop

Owns the live, time-ordered queue of alerts for the current event set and the
asyncio task that sleeps until the next alert is due.

Features:
- Full recompute on every start() or preference change, preserving unfired snoozes
- Reminders that already fired (or were snoozed away) are not re-created on resync
- An event whose alert times cannot be computed is logged and skipped
- Exact-deadline sleeps (no polling tick); refresh on snooze or host wake
- Overdue alerts after a suspend/resume gap fire back-to-back, oldest first
- Loop errors are logged and retried after a short pause; scheduling never dies

All public methods are synchronous and must be called from the event loop
thread. Producers on other threads hop over with ``loop.call_soon_threadsafe``.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from bisect import insort
from collections.abc import Awaitable, Callable, Iterable
from datetime import datetime, timedelta
from enum import StrEnum
from typing import Any

from meetwatch.datetime_utils import local_now

from .config import TimingPreferences
from .gateway import PresentationGateway
from .models import Alert, CalendarEvent, MeetingStart, Reminder, Snooze
from .timing import compute_fire_times

LOGGER = logging.getLogger("meetwatch.scheduler")

IDLE_INTERVAL_SECONDS = 3600.0
ERROR_BACKOFF_SECONDS = 5.0

Clock = Callable[[], datetime]
Sleep = Callable[[float], Awaitable[None]]
QueueCallback = Callable[[list[dict[str, Any]]], None]


def _sort_key(alert: Alert) -> tuple[datetime, int]:
    return alert.sort_key


def _timing_key(alert: Alert) -> tuple[str, datetime, str] | None:
    """Identity of a timing-derived alert across recomputes; snoozes have none."""
    kind = alert.kind
    if isinstance(kind, Reminder):
        tag = "sound" if kind.sound_only else "reminder"
    elif isinstance(kind, MeetingStart):
        tag = "meeting_start"
    else:
        return None
    return (alert.event.event_id, alert.event.start, tag)


def _superseded_by_snooze(alert: Alert, event_id: str) -> bool:
    """A snooze replaces the event's reminders; auto-join at meeting start still happens."""
    return alert.event.event_id == event_id and not isinstance(alert.kind, MeetingStart)


class SchedulerState(StrEnum):
    IDLE = "idle"
    SCHEDULED = "scheduled"
    STOPPED = "stopped"


class AlertScheduler:
    """Keep the alert queue consistent with the event set and fire alerts on time."""

    def __init__(
        self,
        preferences: TimingPreferences | None = None,
        *,
        clock: Clock | None = None,
        sleep: Sleep | None = None,
        logger: logging.Logger | None = None,
        idle_interval: float = IDLE_INTERVAL_SECONDS,
        error_backoff: float = ERROR_BACKOFF_SECONDS,
        on_queue_changed: QueueCallback | None = None,
    ) -> None:
        self._preferences = preferences or TimingPreferences()
        self._clock = clock or local_now
        self._sleep = sleep or asyncio.sleep
        self._logger = logger or LOGGER
        self._idle_interval = max(1.0, idle_interval)
        self._error_backoff = max(0.0, error_backoff)
        self._queue_cb = on_queue_changed
        self._events: list[CalendarEvent] = []
        self._gateway: PresentationGateway | None = None
        self._queue: list[Alert] = []
        self._task: asyncio.Task | None = None
        self._retired: set[asyncio.Task] = set()
        # Timing alerts already fired or superseded by a snooze, mapped to the event end.
        self._handled: dict[tuple[str, datetime, str], datetime] = {}
        self._state = SchedulerState.IDLE

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def preferences(self) -> TimingPreferences:
        return self._preferences

    @property
    def events(self) -> tuple[CalendarEvent, ...]:
        return tuple(self._events)

    @property
    def alerts(self) -> tuple[Alert, ...]:
        return tuple(self._queue)

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def find_event(self, event_id: str) -> CalendarEvent | None:
        for event in self._events:
            if event.event_id == event_id:
                return event
        for alert in self._queue:
            if alert.event.event_id == event_id:
                return alert.event
        return None

    def snapshot(self) -> list[dict[str, Any]]:
        return [alert.to_public_dict() for alert in self._queue]

    # ------------------------------------------------------------------
    # Inbound API
    # ------------------------------------------------------------------

    def start(self, events: Iterable[CalendarEvent], gateway: PresentationGateway) -> None:
        """(Re)initialize scheduling for a full event set. Safe to call repeatedly."""
        self._events = list(events)
        self._gateway = gateway
        self._logger.info("Starting alert scheduling for %d event(s)", len(self._events))
        for index, event in enumerate(self._events[:3], start=1):
            self._logger.debug("  Event %d: '%s' at %s", index, event.title, event.start.isoformat())
        self._reschedule()

    def update_preferences(self, preferences: TimingPreferences) -> None:
        """Recompute the queue for the last event set using new timing preferences."""
        self._preferences = preferences
        if self._gateway is None:
            self._logger.debug("Preferences updated with no active schedule")
            return
        self._logger.info("Alert preferences changed, rescheduling %d event(s)", len(self._events))
        self._reschedule()

    def stop(self) -> None:
        """Halt all scheduling activity. Idempotent."""
        self._cancel_loop()
        had_work = bool(self._queue or self._events)
        self._queue.clear()
        self._handled.clear()
        self._events = []
        self._gateway = None
        self._state = SchedulerState.STOPPED
        if had_work:
            self._logger.info("Alert scheduling stopped")
            self._publish_queue()

    async def shutdown(self) -> None:
        """Stop and wait for the cancelled wait loop(s) to unwind."""
        self.stop()
        retired = list(self._retired)
        for task in retired:
            with contextlib.suppress(asyncio.CancelledError):
                await task

    def refresh(self) -> None:
        """Restart the wait so the next deadline is recomputed from the current clock.

        Call after host wake; the pending alerts stay in the queue, so nothing is lost.
        """
        if self._gateway is None:
            return
        self._logger.debug("Refreshing alert monitor")
        self._launch_loop()

    def schedule_snooze(self, event: CalendarEvent | None, minutes: int) -> Alert | None:
        """Insert a snooze alert ``minutes`` from now; returns None when the request is rejected.

        The snooze replaces the event's pending reminders (a pending auto-join
        stays queued) and is not bounded by the meeting's start or end.
        """
        if minutes <= 0:
            self._logger.warning("Rejected snooze of %s minute(s): must be positive", minutes)
            return None
        if event is None or not event.event_id:
            self._logger.warning("Rejected snooze for unknown event")
            return None
        if self._gateway is None:
            self._logger.warning("Rejected snooze for '%s': scheduler is not running", event.title)
            return None

        now = self._clock()
        try:
            started = event.start < now
        except TypeError:
            self._logger.warning("Rejected snooze for '%s': start %r has no timezone", event.title, event.start)
            return None
        until = now + timedelta(minutes=minutes)
        superseded = [alert for alert in self._queue if _superseded_by_snooze(alert, event.event_id)]
        if superseded:
            self._queue = [alert for alert in self._queue if not _superseded_by_snooze(alert, event.event_id)]
            for alert in superseded:
                self._mark_handled(alert)
            self._logger.debug("Snooze supersedes %d pending alert(s) for '%s'", len(superseded), event.title)
        alert = Alert(event=event, trigger_at=until, kind=Snooze(until=until))
        insort(self._queue, alert, key=_sort_key)
        if started:
            self._logger.info(
                "Snoozed '%s' for %d minute(s) (meeting already started); fires at %s",
                event.title,
                minutes,
                until.isoformat(),
            )
        else:
            self._logger.info("Snoozed '%s' for %d minute(s); fires at %s", event.title, minutes, until.isoformat())
        self._state = SchedulerState.SCHEDULED
        self._publish_queue()
        if self._queue[0] is alert or not self.is_running:
            self.refresh()
        return alert

    # ------------------------------------------------------------------
    # Queue management
    # ------------------------------------------------------------------

    def _reschedule(self) -> None:
        now = self._clock()
        preserved = [alert for alert in self._queue if alert.is_snooze and alert.trigger_at > now]
        try:
            self._queue = self._build_queue(now, preserved)
        finally:
            self._state = SchedulerState.SCHEDULED if (self._events or self._queue) else SchedulerState.IDLE
            self._publish_queue()
            self._launch_loop()

    def _build_queue(self, now: datetime, preserved: list[Alert]) -> list[Alert]:
        self._handled = {key: end for key, end in self._handled.items() if end >= now}
        snoozed_ids = {alert.event.event_id for alert in preserved}
        alerts: list[Alert] = []
        for event in self._events:
            try:
                candidates = compute_fire_times(event, self._preferences, now)
            except Exception:  # pylint: disable=broad-except
                self._logger.exception(
                    "Skipping event '%s' (%s): cannot compute alert times", event.title, event.event_id
                )
                continue
            for alert in candidates:
                if event.event_id in snoozed_ids and _superseded_by_snooze(alert, event.event_id):
                    continue
                if _timing_key(alert) in self._handled:
                    continue
                alerts.append(alert)
        queue = sorted(alerts + preserved, key=_sort_key)
        self._logger.info(
            "Scheduled %d alert(s) (including %d preserved snooze alert(s))",
            len(queue),
            len(preserved),
        )
        return queue

    def _mark_handled(self, alert: Alert) -> None:
        key = _timing_key(alert)
        if key is not None:
            self._handled[key] = alert.event.end

    def _publish_queue(self) -> None:
        if not self._queue_cb:
            return
        try:
            self._queue_cb(self.snapshot())
        except Exception:  # pylint: disable=broad-except
            self._logger.exception("Alert queue observer failed")

    # ------------------------------------------------------------------
    # Wait loop
    # ------------------------------------------------------------------

    def _launch_loop(self) -> None:
        self._cancel_loop()
        self._task = asyncio.create_task(self._run(), name="meetwatch-alert-loop")

    def _cancel_loop(self) -> None:
        task = self._task
        self._task = None
        if task is None or task.done():
            return
        task.cancel()
        self._retired.add(task)
        task.add_done_callback(self._retired.discard)

    async def _run(self) -> None:
        self._logger.debug("Alert monitoring started")
        while True:
            try:
                await self._wait_for_next_alert()
                self._dispatch_due()
            except asyncio.CancelledError:
                self._logger.debug("Alert monitoring cancelled")
                return
            except Exception:  # pylint: disable=broad-except
                self._logger.exception("Alert monitoring loop failed; resuming in %.0fs", self._error_backoff)
                try:
                    await self._sleep(self._error_backoff)
                except asyncio.CancelledError:
                    return

    async def _wait_for_next_alert(self) -> None:
        if not self._queue:
            self._logger.debug("No alerts scheduled, waiting for updates")
            await self._sleep(self._idle_interval)
            return
        head = self._queue[0]
        # Clock skew can make this negative; treat that as due now.
        delay = max(0.0, head.remaining(self._clock()).total_seconds())
        if delay > 0:
            self._logger.debug("Sleeping %.2fs until next alert for '%s'", delay, head.event.title)
            await self._sleep(min(delay, self._idle_interval))

    def _dispatch_due(self) -> None:
        now = self._clock()
        due: list[Alert] = []
        while self._queue and self._queue[0].is_due(now):
            due.append(self._queue.pop(0))
        if not due:
            return
        self._logger.info("Found %d triggered alert(s) at %s", len(due), now.isoformat())
        for alert in due:
            self._mark_handled(alert)
            self._handle_alert(alert)
        self._publish_queue()
        self._logger.info("Processed %d alert(s), %d remaining", len(due), len(self._queue))

    def _handle_alert(self, alert: Alert) -> None:
        gateway = self._gateway
        if gateway is None:
            return
        event = alert.event
        kind = alert.kind
        self._logger.info("Handling %s for '%s' (trigger %s)", kind.label, event.title, alert.trigger_at.isoformat())
        try:
            if isinstance(kind, Reminder):
                if kind.sound_only:
                    gateway.play_sound(event)
                else:
                    gateway.show_alert(event, from_snooze=False)
            elif isinstance(kind, Snooze):
                gateway.show_alert(event, from_snooze=True)
            elif isinstance(kind, MeetingStart):
                url = event.primary_link
                if self._preferences.auto_join_enabled and url:
                    self._logger.info("Auto-joining '%s'", event.title)
                    gateway.open_meeting_link(event, url)
                else:
                    self._logger.debug("Auto-join skipped for '%s'", event.title)
        except Exception:  # pylint: disable=broad-except
            self._logger.exception("Presentation failed for %s of '%s'", kind.label, event.title)
