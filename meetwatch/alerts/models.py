"""Calendar event and alert value types."""

from __future__ import annotations

import itertools
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any
from uuid import uuid4

from .links import MeetingProvider, detect_primary_link, detect_provider, extract_meeting_links, is_valid_meeting_url

_SEQUENCE = itertools.count()


def _serialize_dt(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.astimezone()
    return value.isoformat()


@dataclass(frozen=True, slots=True)
class CalendarEvent:
    """A calendar event as delivered by the event source. Never mutated by the scheduler."""

    event_id: str
    title: str
    start: datetime
    end: datetime
    organizer: str | None = None
    description: str | None = None
    location: str | None = None
    links: tuple[str, ...] = ()
    calendar_id: str | None = None
    all_day: bool = False

    @classmethod
    def with_parsed_links(
        cls,
        *,
        event_id: str,
        title: str,
        start: datetime,
        end: datetime,
        organizer: str | None = None,
        description: str | None = None,
        location: str | None = None,
        extra_links: tuple[str, ...] = (),
        calendar_id: str | None = None,
        all_day: bool = False,
    ) -> CalendarEvent:
        links = list(extra_links)
        for url in extract_meeting_links(title, description, location):
            if url not in links:
                links.append(url)
        return cls(
            event_id=event_id,
            title=title,
            start=start,
            end=end,
            organizer=organizer,
            description=description,
            location=location,
            links=tuple(links),
            calendar_id=calendar_id,
            all_day=all_day,
        )

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    @property
    def primary_link(self) -> str | None:
        return detect_primary_link(self.links)

    @property
    def provider(self) -> MeetingProvider | None:
        link = self.primary_link
        return detect_provider(link) if link else None

    @property
    def is_online_meeting(self) -> bool:
        return any(is_valid_meeting_url(url) for url in self.links)

    def to_public_dict(self) -> dict[str, Any]:
        provider = self.provider
        return {
            "id": self.event_id,
            "title": self.title,
            "start": _serialize_dt(self.start),
            "end": _serialize_dt(self.end),
            "organizer": self.organizer,
            "location": self.location,
            "all_day": self.all_day,
            "calendar_id": self.calendar_id,
            "join_url": self.primary_link,
            "provider": provider.value if provider else None,
        }


@dataclass(frozen=True, slots=True)
class Reminder:
    """Timing-derived alert. ``sound_only`` alerts ask for the chime without the overlay."""

    minutes_before: int
    sound_only: bool = False

    @property
    def label(self) -> str:
        prefix = "sound" if self.sound_only else "reminder"
        return f"{prefix}({self.minutes_before}min)"


@dataclass(frozen=True, slots=True)
class Snooze:
    until: datetime

    @property
    def label(self) -> str:
        return f"snooze(until: {_serialize_dt(self.until)})"


@dataclass(frozen=True, slots=True)
class MeetingStart:
    @property
    def label(self) -> str:
        return "meeting_start"


AlertKind = Reminder | Snooze | MeetingStart


@dataclass(frozen=True, slots=True)
class Alert:
    event: CalendarEvent
    trigger_at: datetime
    kind: AlertKind
    alert_id: str = field(default_factory=lambda: uuid4().hex)
    sequence: int = field(default_factory=lambda: next(_SEQUENCE))

    @property
    def is_snooze(self) -> bool:
        return isinstance(self.kind, Snooze)

    @property
    def sort_key(self) -> tuple[datetime, int]:
        return (self.trigger_at, self.sequence)

    def is_due(self, now: datetime) -> bool:
        return now >= self.trigger_at

    def remaining(self, now: datetime) -> timedelta:
        return self.trigger_at - now

    def to_public_dict(self) -> dict[str, Any]:
        return {
            "id": self.alert_id,
            "event_id": self.event.event_id,
            "title": self.event.title,
            "trigger_at": _serialize_dt(self.trigger_at),
            "kind": self.kind.label,
        }
