"""Presentation boundary the scheduler talks to.

The scheduler never touches windows, audio or browsers directly. Whatever
implements this protocol owns its own visibility state and must swallow its
own failures; calls arrive on the event loop thread and must return quickly.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from .models import CalendarEvent


@runtime_checkable
class PresentationGateway(Protocol):
    def show_alert(self, event: CalendarEvent, from_snooze: bool = False) -> None:
        """Show the overlay for ``event``; a no-op if it is already showing, otherwise replaces the current one."""

    def hide_alert(self) -> None:
        """Hide the overlay. Safe when nothing is shown."""

    def play_sound(self, event: CalendarEvent) -> None:
        """Play the alert chime for ``event`` without changing the overlay."""

    def open_meeting_link(self, event: CalendarEvent, url: str) -> None:
        """Join the meeting at ``url`` instead of showing the overlay."""
