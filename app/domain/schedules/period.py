"""
Schedule Period View
====================

Merged, user-facing view of one schedule group.

The on-peak window always comes from the Permanent pair. For each event
kind the effective percentage is taken from an enabled Temporary event of
that kind when one exists, otherwise from the Permanent event.

Author: Sebastian Gomez
Date: January 2026
"""

from __future__ import annotations

import datetime
import logging
from dataclasses import dataclass, field
from typing import Any, Iterable

from app.domain.schedules.schedule_event import ScheduleEvent
from app.domain.schedules.triggers import parse_time, to_local
from app.enums.schedules import EventKind, PeakWindow, ReconciliationMode, ScheduleKind
from app.utils.time import to_iso

logger = logging.getLogger(__name__)


def is_on_peak(now_local: datetime.time, start: datetime.time, end: datetime.time) -> bool:
    """
    Check whether a local time falls inside the on-peak window ``[start, end)``.

    The window wraps midnight when ``start >= end``.
    """
    if start < end:
        return start <= now_local < end
    return now_local >= start or now_local < end


@dataclass
class SchedulePeriod:
    """One schedule group reduced to a single window with effective percentages."""

    group_id: str
    user_id: str
    site_id: str
    name: str
    description: str | None
    days_of_week: list[int]
    timezone: str
    start_time: str
    end_time: str
    on_peak_backup_percent: int
    off_peak_backup_percent: int
    permanent_on_peak_backup_percent: int
    permanent_off_peak_backup_percent: int
    overridden_by_weather: bool
    enabled: bool
    reconciliation_mode: ReconciliationMode
    schedule_kind: ScheduleKind
    weather_scaling_factor: int | None
    begin_discharge: ScheduleEvent
    begin_charge: ScheduleEvent
    last_evaluation_note: str | None = None
    created_at: datetime.datetime | None = None
    updated_at: datetime.datetime | None = None
    temporary_events: list[ScheduleEvent] = field(default_factory=list)

    @property
    def is_weather_aware(self) -> bool:
        return self.schedule_kind == ScheduleKind.WEATHER_AWARE

    def window_at(self, now: datetime.datetime) -> PeakWindow:
        """Classify ``now`` against this period, in the period's own timezone."""
        local = to_local(now, self.timezone).time().replace(second=0, microsecond=0)
        if is_on_peak(local, parse_time(self.start_time), parse_time(self.end_time)):
            return PeakWindow.ON_PEAK
        return PeakWindow.OFF_PEAK

    def is_active_on(self, now: datetime.datetime) -> bool:
        """Enabled and scheduled for today in the period's timezone."""
        if not self.enabled:
            return False
        return to_local(now, self.timezone).weekday() in self.days_of_week

    def effective_percent(self, window: PeakWindow) -> int:
        if window == PeakWindow.ON_PEAK:
            return self.on_peak_backup_percent
        return self.off_peak_backup_percent

    def permanent_event_for(self, window: PeakWindow) -> ScheduleEvent:
        """Permanent event history rows attach to for ``window``."""
        if window == PeakWindow.ON_PEAK:
            return self.begin_discharge
        return self.begin_charge

    def to_dict(self) -> dict[str, Any]:
        return {
            "group_id": self.group_id,
            "user_id": self.user_id,
            "site_id": self.site_id,
            "name": self.name,
            "description": self.description,
            "days_of_week": list(self.days_of_week),
            "timezone": self.timezone,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "on_peak_backup_percent": self.on_peak_backup_percent,
            "off_peak_backup_percent": self.off_peak_backup_percent,
            "permanent_on_peak_backup_percent": self.permanent_on_peak_backup_percent,
            "permanent_off_peak_backup_percent": self.permanent_off_peak_backup_percent,
            "overridden_by_weather": self.overridden_by_weather,
            "enabled": self.enabled,
            "reconciliation_mode": self.reconciliation_mode.value,
            "schedule_kind": self.schedule_kind.value,
            "weather_scaling_factor": self.weather_scaling_factor,
            "last_evaluation_note": self.last_evaluation_note,
            "created_at": to_iso(self.created_at),
            "updated_at": to_iso(self.updated_at),
        }


def _find(events: Iterable[ScheduleEvent], kind: EventKind, *, temporary: bool) -> ScheduleEvent | None:
    for event in events:
        if event.event_kind == kind and event.is_temporary == temporary:
            return event
    return None


def merge_group(events: list[ScheduleEvent]) -> SchedulePeriod | None:
    """
    Merge the events of one group into a SchedulePeriod.

    Returns:
        The merged view, or None when a Permanent half is missing.
    """
    if not events:
        return None

    discharge = _find(events, EventKind.BEGIN_DISCHARGE, temporary=False)
    charge = _find(events, EventKind.BEGIN_CHARGE, temporary=False)
    if discharge is None or charge is None:
        logger.warning("Schedule group %s is missing a permanent half; excluded", events[0].group_id)
        return None

    temp_discharge = _find(events, EventKind.BEGIN_DISCHARGE, temporary=True)
    temp_charge = _find(events, EventKind.BEGIN_CHARGE, temporary=True)

    on_peak = discharge.backup_percent
    off_peak = charge.backup_percent
    overridden = False
    if temp_discharge is not None and temp_discharge.enabled:
        on_peak = temp_discharge.backup_percent
        overridden = True
    if temp_charge is not None and temp_charge.enabled:
        off_peak = temp_charge.backup_percent
        overridden = True

    return SchedulePeriod(
        group_id=discharge.group_id,
        user_id=discharge.user_id,
        site_id=discharge.site_id,
        name=discharge.name,
        description=discharge.description,
        days_of_week=list(discharge.days_of_week),
        timezone=discharge.timezone,
        start_time=discharge.scheduled_time,
        end_time=charge.scheduled_time,
        on_peak_backup_percent=on_peak,
        off_peak_backup_percent=off_peak,
        permanent_on_peak_backup_percent=discharge.backup_percent,
        permanent_off_peak_backup_percent=charge.backup_percent,
        overridden_by_weather=overridden,
        enabled=discharge.enabled,
        reconciliation_mode=discharge.reconciliation_mode,
        schedule_kind=discharge.schedule_kind,
        weather_scaling_factor=discharge.weather_scaling_factor,
        begin_discharge=discharge,
        begin_charge=charge,
        last_evaluation_note=discharge.last_evaluation_note or charge.last_evaluation_note,
        created_at=discharge.created_at,
        updated_at=max(
            (e.updated_at for e in (discharge, charge) if e.updated_at is not None),
            default=None,
        ),
        temporary_events=[e for e in events if e.is_temporary],
    )


def group_periods(events: Iterable[ScheduleEvent]) -> list[SchedulePeriod]:
    """Group events by group_id, merge each group and sort newest first."""
    groups: dict[str, list[ScheduleEvent]] = {}
    for event in events:
        groups.setdefault(event.group_id, []).append(event)

    periods = [p for p in (merge_group(g) for g in groups.values()) if p is not None]
    epoch = datetime.datetime.min.replace(tzinfo=datetime.timezone.utc)
    periods.sort(key=lambda p: p.created_at or epoch, reverse=True)
    return periods


def select_reapable(events: Iterable[ScheduleEvent], now: datetime.datetime) -> list[ScheduleEvent]:
    """Temporary events that are disabled or already past their expiry."""
    reapable = []
    for event in events:
        expires_at = event.expires_at
        if expires_at is None:
            continue
        if not event.enabled or expires_at < now:
            reapable.append(event)
    return reapable
