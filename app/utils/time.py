"""Utility functions for time handling.

All timestamps should be UTC and timezone-aware. Persist UTC timestamps as
ISO-8601 strings with timezone offsets (e.g., "+00:00") via iso_now() or
to_iso().

Jobs never read the system clock directly: they receive a Clock so every
timezone conversion inside one pass uses the same instant and tests can pin
time with FixedClock.
"""

from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone
from typing import Any, Protocol, runtime_checkable


def utc_now() -> datetime:
    """Return current UTC time as an aware datetime."""
    return datetime.now(timezone.utc)


def iso_now(*, timespec: str | None = None) -> str:
    """Return current UTC time as an ISO8601 string (timezone-aware)."""
    now = utc_now()
    if timespec:
        return now.isoformat(timespec=timespec)
    return now.isoformat()


def to_iso(dt: datetime | None) -> str | None:
    """Serialize a datetime as UTC ISO8601, treating naive values as UTC."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat()


def coerce_datetime(value: Any) -> datetime | None:
    """
    Coerce value to datetime, returning None on failure.

    Args:
        value: String or datetime to coerce

    Returns:
        Datetime in timezone.utc or None if invalid
    """
    if value is None:
        return None

    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        raw = value.strip()
        if raw.endswith("Z"):
            raw = raw.replace("Z", "+00:00")
        try:
            parsed = datetime.fromisoformat(raw)
        except ValueError:
            return None
    else:
        return None

    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc)
    else:
        parsed = parsed.replace(tzinfo=timezone.utc)

    return parsed


# ==================== Clock abstraction ====================


@runtime_checkable
class Clock(Protocol):
    """Source of the current instant."""

    def now(self) -> datetime:
        """Return the current time as an aware UTC datetime."""
        ...


class SystemClock:
    """Clock backed by the host's wall clock."""

    def now(self) -> datetime:
        return utc_now()


class FixedClock:
    """Clock pinned to a settable instant (tests, replays)."""

    def __init__(self, instant: datetime) -> None:
        self._lock = threading.Lock()
        self._instant = coerce_datetime(instant) or utc_now()

    def now(self) -> datetime:
        with self._lock:
            return self._instant

    def set(self, instant: datetime) -> None:
        with self._lock:
            self._instant = coerce_datetime(instant) or self._instant

    def advance(self, **delta: float) -> datetime:
        """Move the clock forward, e.g. ``clock.advance(minutes=15)``."""
        with self._lock:
            self._instant = self._instant + timedelta(**delta)
            return self._instant
