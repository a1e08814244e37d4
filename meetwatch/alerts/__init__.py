"""
Meeting alert engine

This package turns calendar events into full-screen overlay alerts:

- Alert model: Calendar events and the pending alerts derived from them
- Timing policy: Fixed or meeting-length based minutes-before, plus sound timing
- Scheduling: A single asyncio wait loop that sleeps until the next alert is due
- Snooze: Re-queue a shown alert N minutes later, surviving recomputes
- Presentation: Gateway protocol and an MQTT-driven kiosk overlay implementation
- Calendar feed: ICS/WebCal polling that supplies the event set
- Preferences: Validated timing preferences with change notification

Key modules:
- config: Configuration management from environment variables
- models: CalendarEvent and Alert value types
- timing: Pure fire-time computation
- scheduler: AlertScheduler wait loop and queue
- snooze: SnoozeController
- gateway: PresentationGateway protocol
"""

from __future__ import annotations

__all__ = [
    "config",
    "models",
    "timing",
    "scheduler",
    "snooze",
    "gateway",
    "overlay_gateway",
    "calendar_feed",
    "preferences",
    "links",
    "mqtt",
]
