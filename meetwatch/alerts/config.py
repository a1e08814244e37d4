"""Configuration helpers for the meetwatch alert daemon."""

from __future__ import annotations

import os
import socket
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any

from meetwatch.utils import (
    clamp,
    parse_bool,
    parse_int,
    sanitize_hostname_for_topic,
    split_csv,
)

MIN_ALERT_MINUTES = 0
MAX_ALERT_MINUTES = 60

_MINUTE_FIELDS = (
    "default_minutes",
    "short_minutes",
    "medium_minutes",
    "long_minutes",
    "sound_minutes",
)


def _strip_or_none(value: str | None) -> str | None:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


def _normalize_calendar_url(value: str | None) -> str | None:
    if not value:
        return None
    trimmed = value.strip()
    if not trimmed:
        return None
    lowered = trimmed.lower()
    if lowered.startswith("webcal://"):
        trimmed = "https://" + trimmed[9:]
    return trimmed


@dataclass(frozen=True)
class TimingPreferences:
    default_minutes: int = 5
    use_length_based_timing: bool = False
    short_minutes: int = 1
    medium_minutes: int = 2
    long_minutes: int = 5
    sound_enabled: bool = False
    sound_minutes: int = 1
    auto_join_enabled: bool = False

    def clamped(self) -> TimingPreferences:
        """Return a copy with every minute value forced into the 0-60 range."""
        changes = {
            name: clamp(int(getattr(self, name)), MIN_ALERT_MINUTES, MAX_ALERT_MINUTES) for name in _MINUTE_FIELDS
        }
        return replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        return {item.name: getattr(self, item.name) for item in fields(self)}

    @classmethod
    def from_dict(cls, payload: dict[str, Any] | None, *, base: TimingPreferences | None = None) -> TimingPreferences:
        """Overlay known keys from ``payload`` onto ``base``; unknown or mistyped keys are ignored."""
        current = base or cls()
        if not isinstance(payload, dict):
            return current
        changes: dict[str, Any] = {}
        for item in fields(cls):
            if item.name not in payload:
                continue
            value = payload[item.name]
            if item.name in _MINUTE_FIELDS:
                if isinstance(value, bool) or not isinstance(value, (int, float)):
                    continue
                changes[item.name] = int(value)
            elif isinstance(value, bool):
                changes[item.name] = value
        return replace(current, **changes).clamped()

    @staticmethod
    def from_env(env: dict[str, str] | None = None) -> TimingPreferences:
        source = env if env is not None else os.environ
        defaults = TimingPreferences()
        return TimingPreferences(
            default_minutes=parse_int(source.get("MEETWATCH_ALERT_MINUTES"), defaults.default_minutes),
            use_length_based_timing=parse_bool(source.get("MEETWATCH_LENGTH_BASED_TIMING")),
            short_minutes=parse_int(source.get("MEETWATCH_SHORT_MEETING_MINUTES"), defaults.short_minutes),
            medium_minutes=parse_int(source.get("MEETWATCH_MEDIUM_MEETING_MINUTES"), defaults.medium_minutes),
            long_minutes=parse_int(source.get("MEETWATCH_LONG_MEETING_MINUTES"), defaults.long_minutes),
            sound_enabled=parse_bool(source.get("MEETWATCH_SOUND_ENABLED")),
            sound_minutes=parse_int(source.get("MEETWATCH_SOUND_MINUTES"), defaults.sound_minutes),
            auto_join_enabled=parse_bool(source.get("MEETWATCH_AUTO_JOIN")),
        ).clamped()


@dataclass(frozen=True)
class MqttConfig:
    host: str | None
    port: int
    username: str | None
    password: str | None
    tls_enabled: bool
    cert: str | None
    key: str | None
    ca_cert: str | None
    topic_base: str


@dataclass(frozen=True)
class CalendarConfig:
    enabled: bool
    feeds: tuple[str, ...]
    refresh_minutes: int
    lookahead_hours: int
    include_all_day: bool


@dataclass(frozen=True)
class WatchConfig:
    hostname: str
    mqtt: MqttConfig
    calendar: CalendarConfig
    preferences: TimingPreferences
    preferences_path: Path

    @staticmethod
    def from_env(env: dict[str, str] | None = None) -> WatchConfig:
        source = env if env is not None else os.environ
        hostname = source.get("MEETWATCH_HOSTNAME") or socket.gethostname()

        topic_base = _strip_or_none(source.get("MEETWATCH_MQTT_TOPIC_BASE")) or (
            f"meetwatch/{sanitize_hostname_for_topic(hostname)}"
        )
        mqtt = MqttConfig(
            host=_strip_or_none(source.get("MQTT_HOST")),
            port=parse_int(source.get("MQTT_PORT"), 1883),
            username=_strip_or_none(source.get("MQTT_USER")),
            password=_strip_or_none(source.get("MQTT_PASS")),
            tls_enabled=parse_bool(source.get("MQTT_TLS_ENABLED")),
            cert=_strip_or_none(source.get("MQTT_CERT")),
            key=_strip_or_none(source.get("MQTT_KEY")),
            ca_cert=_strip_or_none(source.get("MQTT_CA_CERT")),
            topic_base=topic_base.rstrip("/"),
        )

        feeds = tuple(
            normalized
            for normalized in (_normalize_calendar_url(url) for url in split_csv(source.get("MEETWATCH_CALENDAR_ICS_URLS")))
            if normalized
        )
        calendar = CalendarConfig(
            enabled=bool(feeds),
            feeds=feeds,
            refresh_minutes=max(1, parse_int(source.get("MEETWATCH_CALENDAR_REFRESH_MINUTES"), 5)),
            lookahead_hours=max(1, parse_int(source.get("MEETWATCH_CALENDAR_LOOKAHEAD_HOURS"), 24)),
            include_all_day=parse_bool(source.get("MEETWATCH_INCLUDE_ALL_DAY")),
        )

        preferences_file = _strip_or_none(source.get("MEETWATCH_PREFERENCES_FILE"))
        if preferences_file:
            preferences_path = Path(preferences_file).expanduser()
        else:
            preferences_path = Path.home() / ".config" / "meetwatch" / "preferences.json"

        return WatchConfig(
            hostname=hostname,
            mqtt=mqtt,
            calendar=calendar,
            preferences=TimingPreferences.from_env(source),
            preferences_path=preferences_path,
        )
