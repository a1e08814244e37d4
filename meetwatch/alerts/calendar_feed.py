"""ICS/WebCal polling source that hands the upcoming event set to the scheduler."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta

import httpx
from icalendar import Calendar

from meetwatch.datetime_utils import coerce_datetime, local_now

from .config import CalendarConfig
from .models import CalendarEvent

LOGGER = logging.getLogger("meetwatch.calendar_feed")

EventsCallback = Callable[[list[CalendarEvent]], None]

# Google puts the Meet link in a vendor property rather than URL/DESCRIPTION.
_CONFERENCE_PROPERTIES = ("URL", "X-GOOGLE-CONFERENCE", "X-MICROSOFT-SKYPETEAMSMEETINGURL")


def _text(component, name: str) -> str | None:
    value = component.get(name)
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _organizer(component) -> str | None:
    organizer = component.get("ORGANIZER")
    if organizer is None:
        return None
    params = getattr(organizer, "params", {}) or {}
    name = params.get("CN")
    if name:
        return str(name).strip() or None
    text = str(organizer).strip()
    if text.lower().startswith("mailto:"):
        text = text[len("mailto:") :]
    return text or None


@dataclass(slots=True)
class _FeedState:
    url: str
    etag: str | None = None
    last_modified: str | None = None
    calendar_name: str | None = None
    events: list[CalendarEvent] = field(default_factory=list)


class CalendarFeedSource:
    """Poll ICS feeds and publish the merged upcoming event list after every sync."""

    def __init__(
        self,
        *,
        config: CalendarConfig,
        on_events: EventsCallback,
        logger: logging.Logger | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._config = config
        self._on_events = on_events
        self._logger = logger or LOGGER
        self._client = client
        self._owns_client = client is None
        self._runner: asyncio.Task | None = None
        self._stop_event = asyncio.Event()
        self._feed_states = {url: _FeedState(url=url) for url in config.feeds}

    async def start(self) -> None:
        if not self._config.feeds:
            self._logger.warning("Calendar feed start() called but no feeds configured")
            return
        if self._runner:
            return
        self._stop_event.clear()
        if self._client is None:
            self._client = httpx.AsyncClient(follow_redirects=True, timeout=20.0)
        self._runner = asyncio.create_task(self._run_loop())

    async def stop(self) -> None:
        self._stop_event.set()
        runner = self._runner
        self._runner = None
        if runner:
            runner.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await runner
        if self._client and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def _run_loop(self) -> None:
        refresh_seconds = max(1, self._config.refresh_minutes) * 60
        while not self._stop_event.is_set():
            try:
                await asyncio.wait_for(self.sync_once(), timeout=60.0)
            except Exception:  # pylint: disable=broad-except
                self._logger.exception("Calendar sync loop failed; continuing")
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=refresh_seconds)
            except TimeoutError:
                continue

    async def sync_once(self) -> list[CalendarEvent]:
        """Fetch every feed, then hand the merged event list to the callback.

        A feed that fails keeps contributing the events from its last good fetch.
        """
        now = local_now()
        for state in self._feed_states.values():
            try:
                await asyncio.wait_for(self._sync_feed(state, now), timeout=20.0)
            except TimeoutError:
                self._logger.warning("Calendar sync timed out for feed %s", state.url)
            except Exception:  # pylint: disable=broad-except
                self._logger.exception("Calendar sync failed for feed %s", state.url)
        events = self._merged_events(now)
        self._logger.info("Calendar sync produced %d upcoming event(s)", len(events))
        self._on_events(events)
        return events

    async def _sync_feed(self, state: _FeedState, now: datetime) -> None:
        if not self._client:
            return
        headers: dict[str, str] = {}
        if state.etag:
            headers["If-None-Match"] = state.etag
        if state.last_modified:
            headers["If-Modified-Since"] = state.last_modified
        try:
            response = await self._client.get(state.url, headers=headers)
        except httpx.HTTPError as exc:
            self._logger.warning("Calendar fetch failed for %s: %s", state.url, exc)
            return
        if response.status_code == 304:
            return
        if response.status_code >= 400:
            self._logger.warning("Calendar fetch returned %s for %s", response.status_code, state.url)
            return
        state.etag = response.headers.get("etag") or state.etag
        state.last_modified = response.headers.get("last-modified") or state.last_modified
        try:
            calendar = Calendar.from_ical(response.content)
        except Exception as exc:  # pylint: disable=broad-except
            self._logger.warning("Calendar parse failed for %s: %s", state.url, exc)
            return
        calendar_name = calendar.get("X-WR-CALNAME")
        if calendar_name:
            state.calendar_name = str(calendar_name)
        state.events = self.parse_events(calendar, state.url, now)

    def parse_events(self, calendar: Calendar, source_url: str, now: datetime) -> list[CalendarEvent]:
        lookahead_end = now + timedelta(hours=self._config.lookahead_hours)
        events: list[CalendarEvent] = []
        for component in calendar.walk("VEVENT"):
            event = self._event_from_component(component, source_url, now)
            if event is None:
                continue
            if event.end < now or event.start > lookahead_end:
                continue
            if event.all_day and not self._config.include_all_day:
                continue
            events.append(event)
        return events

    def _event_from_component(self, component, source_url: str, now: datetime) -> CalendarEvent | None:
        uid = _text(component, "UID")
        if not uid:
            return None
        status = (_text(component, "STATUS") or "").upper()
        if status == "CANCELLED":
            return None
        try:
            start_value = component.decoded("DTSTART")
        except (KeyError, ValueError):
            return None
        start, all_day = coerce_datetime(start_value, now.tzinfo)
        if start is None:
            return None
        end: datetime | None = None
        try:
            end_value = component.decoded("DTEND")
        except (KeyError, ValueError):
            end_value = None
        if end_value is not None:
            end, _ = coerce_datetime(end_value, now.tzinfo)
        if end is None:
            try:
                duration = component.decoded("DURATION")
            except (KeyError, ValueError):
                duration = None
            if isinstance(duration, timedelta):
                end = start + duration
            else:
                end = start + (timedelta(days=1) if all_day else timedelta(0))

        # Recurring instances share a UID; RECURRENCE-ID keeps them distinct.
        event_id = uid
        recurrence = component.get("RECURRENCE-ID")
        if recurrence is not None:
            recurrence_dt, _ = coerce_datetime(component.decoded("RECURRENCE-ID"), now.tzinfo)
            if recurrence_dt is not None:
                event_id = f"{uid}:{recurrence_dt.isoformat()}"

        extra_links = tuple(
            link for link in (_text(component, name) for name in _CONFERENCE_PROPERTIES) if link
        )
        return CalendarEvent.with_parsed_links(
            event_id=event_id,
            title=_text(component, "SUMMARY") or "Calendar event",
            start=start,
            end=end,
            organizer=_organizer(component),
            description=_text(component, "DESCRIPTION"),
            location=_text(component, "LOCATION"),
            extra_links=extra_links,
            calendar_id=source_url,
            all_day=all_day,
        )

    def _merged_events(self, now: datetime) -> list[CalendarEvent]:
        merged: dict[str, CalendarEvent] = {}
        for state in self._feed_states.values():
            for event in state.events:
                if event.end < now:
                    continue
                merged.setdefault(event.event_id, event)
        return sorted(merged.values(), key=lambda event: (event.start, event.event_id))
