"""Shared datetime normalization utilities."""

from __future__ import annotations

from datetime import date, datetime, time, tzinfo


def local_now() -> datetime:
    """Get current datetime in local timezone."""
    return datetime.now().astimezone()


def ensure_aware(dt: datetime, fallback: tzinfo | None = None) -> datetime:
    """Attach ``fallback`` (or the local zone) to naive datetimes."""
    if dt.tzinfo is not None:
        return dt
    if fallback is not None:
        return dt.replace(tzinfo=fallback)
    return dt.astimezone()


def coerce_datetime(value: object, tz: tzinfo | None) -> tuple[datetime | None, bool]:
    """Normalize ICS date/datetime values.

    Returns ``(datetime, all_day)``; plain dates become midnight in ``tz``.
    """
    if isinstance(value, datetime):
        return ensure_aware(value, tz).astimezone(tz), False
    if isinstance(value, date):
        return datetime.combine(value, time.min, tzinfo=tz), True
    return None, False
