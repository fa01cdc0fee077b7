"""
Trigger Expressions
===================

Helpers for the cron expressions stored on schedule events.

- Permanent events recur weekly: ``"{minute} {hour} * * mon,tue"``
- Temporary events fire once: ``"{minute} {hour} {day} {month} *"``

Matching is delegated to croniter at minute precision, always against the
event's own local wall-clock time.

Author: Sebastian Gomez
Date: January 2026
"""

from __future__ import annotations

import calendar
import datetime
import logging
from typing import Iterable
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from croniter import croniter

logger = logging.getLogger(__name__)

CRON_DAY_NAMES = ("mon", "tue", "wed", "thu", "fri", "sat", "sun")
DAY_NAMES = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")


def parse_time(time_str: str) -> datetime.time:
    """Parse HH:MM string to time object."""
    parts = str(time_str).split(":")
    if len(parts) != 2:
        raise ValueError("time must be in HH:MM format")
    h, m = int(parts[0]), int(parts[1])
    if not (0 <= h <= 23):
        raise ValueError("hour must be between 0 and 23")
    if not (0 <= m <= 59):
        raise ValueError("minute must be between 0 and 59")
    return datetime.time(hour=h, minute=m)


def format_time(value: datetime.time) -> str:
    return f"{value.hour:02d}:{value.minute:02d}"


def resolve_timezone(name: str) -> ZoneInfo:
    """Return the ZoneInfo for an IANA name, raising ValueError if unknown."""
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError, TypeError) as exc:
        raise ValueError(f"Unknown timezone '{name}'") from exc


def to_local(instant: datetime.datetime, timezone: str) -> datetime.datetime:
    """Convert an aware instant into wall-clock time of ``timezone``."""
    return instant.astimezone(resolve_timezone(timezone))


def build_weekly_trigger(days_of_week: Iterable[int], at: datetime.time) -> str:
    """Cron expression firing at ``at`` on each given weekday (0=Monday)."""
    days = sorted(set(int(d) for d in days_of_week))
    if not days:
        raise ValueError("At least one day of the week is required")
    day_field = ",".join(CRON_DAY_NAMES[d] for d in days)
    return f"{at.minute} {at.hour} * * {day_field}"


def build_one_shot_trigger(local_moment: datetime.datetime) -> str:
    """Cron expression firing once at a specific local date and minute."""
    return f"{local_moment.minute} {local_moment.hour} {local_moment.day} {local_moment.month} *"


def trigger_matches(expression: str, instant: datetime.datetime, timezone: str) -> bool:
    """
    Check whether ``expression`` fires at ``instant`` in ``timezone``.

    Seconds are ignored so a tick anywhere inside the minute matches.
    """
    local = to_local(instant, timezone).replace(second=0, microsecond=0, tzinfo=None)
    return bool(croniter.match(expression, local))


def format_days(days_of_week: Iterable[int] | None) -> str:
    """Human-readable weekday list, e.g. ``"Monday, Tuesday"``."""
    days = sorted(set(int(d) for d in (days_of_week or [])))
    if not days:
        return "None"
    return ", ".join(DAY_NAMES[d] for d in days)


def describe_trigger(expression: str) -> str:
    """
    Describe a trigger expression in plain English.

    Only the two shapes this application generates are supported.

    Raises:
        ValueError: If the expression is not one of those shapes
    """
    if not expression or not croniter.is_valid(expression):
        raise ValueError(f"Invalid trigger expression '{expression}'")

    minute, hour, day, month, weekday = expression.split()
    if not (minute.isdigit() and hour.isdigit()):
        raise ValueError(f"Unsupported trigger expression '{expression}'")
    at = f"At {int(hour):02d}:{int(minute):02d}"

    if day == "*" and month == "*":
        if weekday == "*":
            return f"{at}, every day"
        names = [DAY_NAMES[CRON_DAY_NAMES.index(token)] for token in weekday.lower().split(",")]
        if len(names) == 1:
            return f"{at}, only on {names[0]}"
        return f"{at}, only on {', '.join(names[:-1])} and {names[-1]}"

    if day.isdigit() and month.isdigit() and weekday == "*":
        return f"{at}, on day {int(day)} of {calendar.month_name[int(month)]}"

    raise ValueError(f"Unsupported trigger expression '{expression}'")
