"""
Schedule Event Entity
=====================

One half of a backup-reserve schedule period.

Features:
- BeginDischarge / BeginCharge halves paired by group_id
- Permanent or Temporary(expires_at) permanence variant
- Timezone-aware day-of-week and trigger evaluation
- Reconciliation policy and weather-aware settings
- Row serialization for the ScheduleEvents table

Author: Sebastian Gomez
Date: January 2026
"""

from __future__ import annotations

import datetime
import json
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Union

from app.domain.schedules.triggers import (
    build_one_shot_trigger,
    build_weekly_trigger,
    format_time,
    parse_time,
    to_local,
    trigger_matches,
)
from app.enums.schedules import EventKind, ReconciliationMode, ScheduleKind
from app.utils.time import coerce_datetime, to_iso

logger = logging.getLogger(__name__)

DEFAULT_WEATHER_SCALING_FACTOR = 70


@dataclass(frozen=True)
class Permanent:
    """Recurring event that defines a period's window."""

    def to_dict(self) -> dict[str, Any]:
        return {"type": "permanent"}


@dataclass(frozen=True)
class Temporary:
    """One-shot override event that stops counting once ``expires_at`` passes."""

    expires_at: datetime.datetime

    def is_expired(self, now: datetime.datetime) -> bool:
        return self.expires_at < now

    def to_dict(self) -> dict[str, Any]:
        return {"type": "temporary", "expires_at": to_iso(self.expires_at)}


Permanence = Union[Permanent, Temporary]


def new_id() -> str:
    return str(uuid.uuid4())


@dataclass
class ScheduleEvent:
    """
    A single time-triggered backup-reserve change.

    Attributes:
        id: Unique identifier (UUID string)
        group_id: Shared by the events forming one schedule period
        user_id: Owner of the schedule
        site_id: Energy site the reserve is applied to
        name: Human-readable schedule name
        description: Optional free text
        days_of_week: Active days (0=Monday, 6=Sunday)
        timezone: IANA timezone the schedule is evaluated in
        scheduled_time: Local trigger time in HH:MM format
        trigger_expression: Cron expression derived from days and time
        event_kind: BeginDischarge (on-peak start) or BeginCharge (on-peak end)
        backup_percent: Reserve percentage applied when the event fires
        enabled: Whether the event takes part in execution and reconciliation
        permanence: Permanent() or Temporary(expires_at)
        reconciliation_mode: Continuous or StartupOnly drift correction
        schedule_kind: Basic or WeatherAware
        weather_scaling_factor: Aggressiveness of weather overrides (0-100)
        last_evaluation_note: Last weather planner outcome
    """

    # Identity
    id: str = field(default_factory=new_id)
    group_id: str = ""
    user_id: str = ""
    site_id: str = ""

    # Descriptive
    name: str = ""
    description: str | None = None

    # Recurrence
    days_of_week: list[int] = field(default_factory=lambda: [0, 1, 2, 3, 4, 5, 6])
    timezone: str = "UTC"
    scheduled_time: str = "00:00"
    trigger_expression: str = ""

    # Semantics and control
    event_kind: EventKind = EventKind.BEGIN_DISCHARGE
    backup_percent: int = 0
    enabled: bool = True
    permanence: Permanence = field(default_factory=Permanent)

    # Policy
    reconciliation_mode: ReconciliationMode = ReconciliationMode.CONTINUOUS
    schedule_kind: ScheduleKind = ScheduleKind.BASIC
    weather_scaling_factor: int | None = DEFAULT_WEATHER_SCALING_FACTOR

    # Diagnostics
    last_evaluation_note: str | None = None
    created_at: datetime.datetime | None = None
    updated_at: datetime.datetime | None = None

    def __post_init__(self):
        """Ensure enums are proper types after initialization."""
        if isinstance(self.event_kind, str):
            self.event_kind = EventKind(self.event_kind)
        if isinstance(self.reconciliation_mode, str):
            self.reconciliation_mode = ReconciliationMode(self.reconciliation_mode)
        if isinstance(self.schedule_kind, str):
            self.schedule_kind = ScheduleKind(self.schedule_kind)
        self.days_of_week = sorted(set(int(d) for d in self.days_of_week))
        if not self.trigger_expression:
            self.refresh_trigger()

    # ------------------------------------------------------------------
    # Variant helpers
    # ------------------------------------------------------------------

    @property
    def is_temporary(self) -> bool:
        return isinstance(self.permanence, Temporary)

    @property
    def is_permanent(self) -> bool:
        return isinstance(self.permanence, Permanent)

    @property
    def expires_at(self) -> datetime.datetime | None:
        if isinstance(self.permanence, Temporary):
            return self.permanence.expires_at
        return None

    @property
    def is_weather_aware(self) -> bool:
        return self.schedule_kind == ScheduleKind.WEATHER_AWARE

    # ------------------------------------------------------------------
    # Time evaluation
    # ------------------------------------------------------------------

    @property
    def local_time(self) -> datetime.time:
        return parse_time(self.scheduled_time)

    def refresh_trigger(self) -> None:
        """Recompute the trigger expression after days/time change.

        Temporary events keep their one-shot expression; it is built by
        ``schedule_once`` from a concrete local moment.
        """
        if self.is_temporary:
            return
        self.trigger_expression = build_weekly_trigger(self.days_of_week, self.local_time)

    def schedule_once(self, local_moment: datetime.datetime) -> None:
        """Point a temporary event at one specific local date and minute."""
        self.scheduled_time = format_time(local_moment.time())
        self.trigger_expression = build_one_shot_trigger(local_moment)

    def is_due(self, now: datetime.datetime) -> bool:
        """Return True if the trigger fires at ``now`` in the event's timezone."""
        return trigger_matches(self.trigger_expression, now, self.timezone)

    def runs_on(self, now: datetime.datetime) -> bool:
        """Return True if today, in the event's own timezone, is an active day."""
        return to_local(now, self.timezone).weekday() in self.days_of_week

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        """Convert event to dictionary for serialization."""
        return {
            "id": self.id,
            "group_id": self.group_id,
            "user_id": self.user_id,
            "site_id": self.site_id,
            "name": self.name,
            "description": self.description,
            "days_of_week": self.days_of_week,
            "timezone": self.timezone,
            "scheduled_time": self.scheduled_time,
            "trigger_expression": self.trigger_expression,
            "event_kind": self.event_kind.value,
            "backup_percent": self.backup_percent,
            "enabled": self.enabled,
            "permanence": self.permanence.to_dict(),
            "reconciliation_mode": self.reconciliation_mode.value,
            "schedule_kind": self.schedule_kind.value,
            "weather_scaling_factor": self.weather_scaling_factor,
            "last_evaluation_note": self.last_evaluation_note,
            "created_at": to_iso(self.created_at),
            "updated_at": to_iso(self.updated_at),
        }

    @staticmethod
    def from_row(row: dict[str, Any]) -> "ScheduleEvent":
        """Create ScheduleEvent from a ScheduleEvents row."""
        days = row.get("days_of_week") or "[]"
        if isinstance(days, str):
            try:
                days = json.loads(days)
            except json.JSONDecodeError:
                logger.warning("Invalid days_of_week JSON on schedule event %s: %s", row.get("id"), days)
                days = []

        expires_at = coerce_datetime(row.get("expires_at"))
        permanence: Permanence
        if row.get("is_temporary"):
            if expires_at is None:
                logger.warning("Temporary schedule event %s has no expiry; treating as expired", row.get("id"))
                expires_at = datetime.datetime.min.replace(tzinfo=datetime.timezone.utc)
            permanence = Temporary(expires_at=expires_at)
        else:
            permanence = Permanent()

        return ScheduleEvent(
            id=row["id"],
            group_id=row["group_id"],
            user_id=row["user_id"],
            site_id=row.get("site_id") or "",
            name=row.get("name") or "",
            description=row.get("description"),
            days_of_week=days,
            timezone=row.get("timezone") or "UTC",
            scheduled_time=row.get("scheduled_time") or "00:00",
            trigger_expression=row.get("trigger_expression") or "",
            event_kind=EventKind(row["event_kind"]),
            backup_percent=int(row.get("backup_percent") or 0),
            enabled=bool(row.get("enabled")),
            permanence=permanence,
            reconciliation_mode=ReconciliationMode(row.get("reconciliation_mode") or "continuous"),
            schedule_kind=ScheduleKind(row.get("schedule_kind") or "basic"),
            weather_scaling_factor=row.get("weather_scaling_factor"),
            last_evaluation_note=row.get("last_evaluation_note"),
            created_at=coerce_datetime(row.get("created_at")),
            updated_at=coerce_datetime(row.get("updated_at")),
        )
