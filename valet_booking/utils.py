"""Shared time helpers used across the booking core."""

import re
from datetime import date, datetime, time, timezone, tzinfo
from typing import Optional
from zoneinfo import ZoneInfo

TIME_PATTERN = re.compile(r"^([01]?[0-9]|2[0-3]):([0-5][0-9])$")

DAY_NAMES = ("Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday")


def parse_hhmm(value: str) -> tuple[int, int]:
    """Parse an ``H:MM`` / ``HH:MM`` string into ``(hour, minute)``.

    Raises:
        ValueError: If the string is not a valid 24-hour clock time.

    Examples:
        >>> parse_hhmm("9:05")
        (9, 5)
    """
    match = TIME_PATTERN.match(value.strip()) if isinstance(value, str) else None
    if match is None:
        raise ValueError(f"Time must be in HH:MM format, got {value!r}")
    return int(match.group(1)), int(match.group(2))


def normalize_hhmm(value: str) -> str:
    """Zero-pad a clock time so lexicographic order matches chronological order.

    Examples:
        >>> normalize_hhmm("9:00")
        '09:00'
    """
    hour, minute = parse_hhmm(value)
    return f"{hour:02d}:{minute:02d}"


def minutes_of_day(value: str) -> int:
    hour, minute = parse_hhmm(value)
    return hour * 60 + minute


def day_of_week(day: date) -> int:
    """Day index with 0=Sunday .. 6=Saturday."""
    return (day.weekday() + 1) % 7


def get_zone(name: str) -> tzinfo:
    return ZoneInfo(name)


def ensure_aware(value: datetime, zone: tzinfo) -> datetime:
    """Attach ``zone`` to naive datetimes, leave aware ones untouched."""
    if value.tzinfo is None or value.tzinfo.utcoffset(value) is None:
        return value.replace(tzinfo=zone)
    return value


def to_utc(value: datetime, zone: Optional[tzinfo] = None) -> datetime:
    """Normalize a datetime to UTC, treating naive values as ``zone`` local time."""
    return ensure_aware(value, zone or timezone.utc).astimezone(timezone.utc)


def at_time(day: date, hhmm: str, zone: tzinfo) -> datetime:
    """Combine a calendar date with an ``HH:MM`` clock time in ``zone``."""
    hour, minute = parse_hhmm(hhmm)
    return datetime.combine(day, time(hour, minute), tzinfo=zone)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
