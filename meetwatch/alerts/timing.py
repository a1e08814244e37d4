"""Timing policy: map a calendar event and preferences to alert fire times.

Everything here is pure. ``now`` is always passed in so callers (and tests)
control the clock.
"""

from __future__ import annotations

from datetime import datetime, timedelta

from .config import TimingPreferences
from .models import Alert, CalendarEvent, MeetingStart, Reminder

SHORT_MEETING_LIMIT_MINUTES = 30
MEDIUM_MEETING_LIMIT_MINUTES = 60


def alert_minutes(event: CalendarEvent, prefs: TimingPreferences) -> int:
    """Minutes before start at which the overlay reminder fires.

    With length-based timing: under 30 minutes is short, 30-60 minutes
    (inclusive) is medium, anything longer is long.
    """
    if not prefs.use_length_based_timing:
        return prefs.default_minutes
    duration_minutes = int(event.duration.total_seconds() // 60)
    if duration_minutes < SHORT_MEETING_LIMIT_MINUTES:
        return prefs.short_minutes
    if duration_minutes <= MEDIUM_MEETING_LIMIT_MINUTES:
        return prefs.medium_minutes
    return prefs.long_minutes


def is_expired(event: CalendarEvent, now: datetime) -> bool:
    return event.end < now


def compute_fire_times(event: CalendarEvent, prefs: TimingPreferences, now: datetime) -> list[Alert]:
    """Build the timing-derived alerts for one event.

    A reminder whose time has already passed while the meeting has not yet
    started (late launch, wake from sleep) is returned with ``trigger_at = now``
    so the scheduler fires it immediately instead of dropping it.
    """
    if is_expired(event, now) or event.start <= now:
        return []

    alerts: list[Alert] = []
    minutes = alert_minutes(event, prefs)
    reminder_time = event.start - timedelta(minutes=minutes)
    alerts.append(
        Alert(
            event=event,
            trigger_at=reminder_time if reminder_time > now else now,
            kind=Reminder(minutes_before=minutes),
        )
    )

    if prefs.sound_enabled:
        sound_time = event.start - timedelta(minutes=prefs.sound_minutes)
        if sound_time > now and sound_time != reminder_time:
            alerts.append(
                Alert(
                    event=event,
                    trigger_at=sound_time,
                    kind=Reminder(minutes_before=prefs.sound_minutes, sound_only=True),
                )
            )

    if prefs.auto_join_enabled and event.primary_link:
        alerts.append(Alert(event=event, trigger_at=event.start, kind=MeetingStart()))

    return alerts
