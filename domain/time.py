"""
Domain time utilities (pure).

Centralized timestamp validation and serialization helpers.

Behavior and error messages must remain consistent across the domain model.
All instants are timezone-aware UTC; text form is ISO-8601 with microsecond
precision so that lexical order equals chronological order.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

_ONE_TICK = timedelta(microseconds=1)


def require_utc_timestamp(name: str, value: datetime) -> None:
    """
    Enforces the requirement that timestamps are UTC.

    Invariants:
    - Timestamps must be timezone-aware.
    - Timestamps must have UTC offset 0.
    """

    if value.tzinfo is None or value.utcoffset() is None:
        raise ValueError(f"{name} must be timezone-aware (UTC)")
    if value.utcoffset() != timedelta(0):
        raise ValueError(f"{name} must be a UTC timestamp (offset 0)")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def advance_timestamp(previous: datetime, now: datetime) -> datetime:
    """
    Return the next `updated_at` value after `previous`.

    Uses `now` when it is strictly later; otherwise steps one microsecond past
    `previous` so that successive mutations never share or rewind a timestamp.
    """

    require_utc_timestamp("now", now)
    if now > previous:
        return now
    return previous + _ONE_TICK


def to_iso_utc(dt: datetime, *, name: str = "timestamp") -> str:
    """Serialize a UTC datetime to fixed-width ISO-8601 (offset 0)."""

    require_utc_timestamp(name, dt)
    return dt.astimezone(timezone.utc).isoformat(timespec="microseconds")


def parse_utc_datetime(value: Any) -> datetime:
    """
    Parse a stored timestamp into a timezone-aware UTC datetime.

    Supabase commonly returns ISO-8601 strings, sometimes with a trailing 'Z'.
    """

    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str):
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    else:
        raise TypeError(f"Unsupported timestamp type: {type(value)!r}")

    if dt.tzinfo is None or dt.utcoffset() is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)
