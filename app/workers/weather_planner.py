"""
Weather-Aware Planner
=====================

Hourly job raising the off-peak charge target ahead of poor solar days.

Per user:
1. Reap temporary events that fired or expired
2. Find the permanent weather-aware pair (skip if on-peak or no location)
3. Evaluate the forecast and compute the solar shortfall
4. Inject a temporary Start Charge / Stop Charge pair when the shortfall is
   significant, never downgrading an override that is already live
5. Run an immediate reconciliation so the new target applies at once

Author: Sebastian Gomez
Date: January 2026
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any

from app.domain.exceptions import ForecastEvaluationError
from app.domain.schedules.history import AuditRecord, ExecutionRecord
from app.domain.schedules.period import SchedulePeriod, group_periods, select_reapable
from app.domain.schedules.schedule_event import ScheduleEvent, Temporary
from app.domain.schedules.triggers import parse_time, to_local
from app.domain.schedules.weather import (
    RELEASE_PERCENT,
    START_DELAY_MINUTES,
    compute_charge_target,
    needs_override,
    solar_shortfall,
)
from app.enums.schedules import AuditAction, EventKind, ExecutionStatus, JobType, PeakWindow, ScheduleKind
from app.utils.time import Clock, SystemClock
from app.workers.job_lease import WEATHER_PLANNING_LEASE, run_under_lease

if TYPE_CHECKING:
    from app.domain.schedules.repository import ScheduleEventRepository, ScheduleHistoryRepository
    from app.services.protocols import ForecastEvaluator, LeaseProvider, UserProfileStore
    from app.workers.state_reconciler import StateReconciler

logger = logging.getLogger(__name__)

START_CHARGE_DESCRIPTION = "Temporary charging schedule created due to bad weather forecast."
STOP_CHARGE_DESCRIPTION = "Temporary schedule to stop charging after bad weather event."


@dataclass
class PlanOutcome:
    """Result of one user's planning pass."""

    user_id: str
    action: str = "none"
    reaped: int = 0
    shortfall: int | None = None
    base_target: int | None = None
    target: int | None = None
    note: str | None = None
    cleanup_error: str | None = None


@dataclass
class PlannerRunSummary:
    users: int = 0
    overrides_created: int = 0
    reaped: int = 0
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "users": self.users,
            "overrides_created": self.overrides_created,
            "reaped": self.reaped,
            "errors": list(self.errors),
        }


def next_local_occurrence(now: datetime, tz_name: str, hhmm: str) -> datetime:
    """Next instant (UTC) at which the wall clock in ``tz_name`` reads ``hhmm``; rolls to tomorrow if passed."""
    local_now = to_local(now, tz_name)
    at = parse_time(hhmm)
    candidate = local_now.replace(hour=at.hour, minute=at.minute, second=0, microsecond=0)
    if candidate <= local_now:
        candidate = candidate + timedelta(days=1)
    return candidate.astimezone(timezone.utc)


class WeatherAwarePlanner:
    """Injects and retires temporary weather overrides."""

    def __init__(
        self,
        events: "ScheduleEventRepository",
        history: "ScheduleHistoryRepository",
        forecast: "ForecastEvaluator",
        profiles: "UserProfileStore",
        reconciler: "StateReconciler",
        clock: Clock | None = None,
        lease: "LeaseProvider | None" = None,
    ) -> None:
        self.events = events
        self.history = history
        self.forecast = forecast
        self.profiles = profiles
        self.reconciler = reconciler
        self.clock = clock or SystemClock()
        self.lease = lease

    def run(self) -> PlannerRunSummary | None:
        """Lease-guarded hourly entry point."""
        return run_under_lease(self.lease, WEATHER_PLANNING_LEASE, self.plan_all)

    def plan_all(self) -> PlannerRunSummary:
        summary = PlannerRunSummary()
        for user_id in self.events.list_user_ids():
            summary.users += 1
            try:
                outcome = self.plan_user(user_id)
                summary.reaped += outcome.reaped
                if outcome.cleanup_error:
                    summary.errors.append(f"{user_id}: cleanup failed: {outcome.cleanup_error}")
                if outcome.action == "override_created":
                    summary.overrides_created += 1
            except Exception as e:
                summary.errors.append(f"{user_id}: {e}")
                logger.error(f"Weather planning failed for user {user_id}: {e}", exc_info=True)

        logger.info(
            f"Weather planning finished for {summary.users} user(s): "
            f"{summary.overrides_created} override(s) created, {summary.reaped} event(s) reaped"
        )
        return summary

    def plan_user(self, user_id: str) -> PlanOutcome:
        now = self.clock.now()
        outcome = PlanOutcome(user_id=user_id)

        events = self.events.list_by_user(user_id)
        try:
            events, outcome.reaped = self._cleanup(user_id, events, now)
        except Exception as e:
            outcome.cleanup_error = str(e)
            logger.error(f"Override cleanup failed for user {user_id}: {e}", exc_info=True)

        period = self._weather_aware_period(user_id, events)
        if period is None:
            outcome.action = "no_weather_schedule"
            return outcome

        if period.window_at(now) == PeakWindow.ON_PEAK:
            logger.debug(f"Skipping weather planning for user {user_id}: currently on-peak")
            outcome.action = "skipped_on_peak"
            return outcome

        profile = self.profiles.get_profile(user_id)
        if profile is None or not profile.has_location:
            logger.info(f"Skipping weather planning for user {user_id}: no location configured")
            outcome.action = "skipped_no_location"
            return outcome

        try:
            forecast = self.forecast.evaluate(user_id)
        except ForecastEvaluationError as e:
            logger.warning(f"Forecast evaluation failed for user {user_id}: {e}")
            note = f"Weather forecast evaluation failed: {e}"
            with self.events.transaction():
                self._audit(period, now, {"info": note, "action_taken": False})
                self._history(period, now, ExecutionStatus.FAILURE, note)
            outcome.action, outcome.note = "forecast_failed", note
            return outcome

        shortfall = solar_shortfall(forecast.sunshine_percentage)
        base = period.permanent_off_peak_backup_percent
        outcome.shortfall, outcome.base_target = shortfall, base

        if not needs_override(shortfall):
            note = f"Good solar potential detected. Reason: {forecast.reason}"
            self._record_no_action(period, now, note, {"shortfall": shortfall, "base_target": base})
            outcome.action, outcome.note = "good_weather", note
            return outcome

        target = compute_charge_target(base, shortfall, period.weather_scaling_factor)
        outcome.target = target

        live_override = next(
            (
                e
                for e in period.temporary_events
                if e.event_kind == EventKind.BEGIN_CHARGE and e.enabled
            ),
            None,
        )
        if profile.forced_charging_active and live_override is not None:
            if target <= live_override.backup_percent:
                note = (
                    f"Forced charge already active at {live_override.backup_percent}%. "
                    f"New, lower target of {target}% ignored. Forecast reason: {forecast.reason}"
                )
                self._record_no_action(
                    period, now, note, {"shortfall": shortfall, "base_target": base, "target": target}
                )
                outcome.action, outcome.note = "override_kept", note
                return outcome
            logger.info(
                f"Escalating forced charge for user {user_id} from {live_override.backup_percent}% to {target}%"
            )

        note = (
            f"Solar shortfall of {shortfall}% detected. Adjusting charge target from {base}% to {target}%. "
            f"Forecast reason: {forecast.reason}"
        )
        with self.events.transaction():
            if period.temporary_events:
                self.events.delete_events([e.id for e in period.temporary_events])
            self.profiles.set_forced_charging_active(user_id, True)
            self.events.create_many(self._override_pair(period, target, now))
            self.events.set_evaluation_note([period.begin_discharge.id, period.begin_charge.id], note)
            self._audit(
                period,
                now,
                {"info": note, "shortfall": shortfall, "base_target": base, "target": target, "action_taken": True},
            )
            self._history(period, now, ExecutionStatus.SUCCESS, note)

        logger.info(f"Injected weather override for user {user_id}: {base}% -> {target}% (shortfall {shortfall}%)")
        outcome.action, outcome.note = "override_created", note

        self.reconciler.reconcile_user(user_id)
        return outcome

    # ==================== Helpers ====================

    def _cleanup(self, user_id: str, events: list[ScheduleEvent], now: datetime) -> tuple[list[ScheduleEvent], int]:
        """Delete reapable temporaries; clear the forced-charge flag once none remain."""
        reapable = select_reapable(events, now)
        reaped_ids = {e.id for e in reapable}
        remaining = [e for e in events if e.id not in reaped_ids]
        temporaries_left = any(e.is_temporary for e in remaining)

        profile = self.profiles.get_profile(user_id)
        clear_flag = profile is not None and profile.forced_charging_active and not temporaries_left

        if reaped_ids or clear_flag:
            with self.events.transaction():
                if reaped_ids:
                    self.events.delete_events(reaped_ids)
                if clear_flag:
                    self.profiles.set_forced_charging_active(user_id, False)
            if reaped_ids:
                logger.info(f"Reaped {len(reaped_ids)} temporary schedule event(s) for user {user_id}")
        return remaining, len(reaped_ids)

    @staticmethod
    def _weather_aware_period(user_id: str, events: list[ScheduleEvent]) -> SchedulePeriod | None:
        weather_events = [e for e in events if e.schedule_kind == ScheduleKind.WEATHER_AWARE]
        if not weather_events:
            return None
        periods = [p for p in group_periods(weather_events) if p.enabled]
        if not periods:
            logger.warning(f"User {user_id} has no complete, enabled weather-aware schedule; skipping")
            return None
        return periods[0]

    def _override_pair(self, period: SchedulePeriod, target: int, now: datetime) -> list[ScheduleEvent]:
        start_at = (now + timedelta(minutes=START_DELAY_MINUTES)).replace(second=0, microsecond=0)
        stop_at = next_local_occurrence(now, period.timezone, period.start_time)
        permanence = Temporary(expires_at=stop_at)

        common = dict(
            group_id=period.group_id,
            user_id=period.user_id,
            site_id=period.site_id,
            days_of_week=list(period.days_of_week),
            timezone=period.timezone,
            enabled=True,
            permanence=permanence,
            reconciliation_mode=period.reconciliation_mode,
            schedule_kind=ScheduleKind.WEATHER_AWARE,
            weather_scaling_factor=period.weather_scaling_factor,
            created_at=now,
            updated_at=now,
        )
        start = ScheduleEvent(
            name=f"Temporary Start Charge for {period.name}",
            description=START_CHARGE_DESCRIPTION,
            event_kind=EventKind.BEGIN_CHARGE,
            backup_percent=target,
            **common,
        )
        start.schedule_once(to_local(start_at, period.timezone))
        stop = ScheduleEvent(
            name=f"Temporary Stop Charge for {period.name}",
            description=STOP_CHARGE_DESCRIPTION,
            event_kind=EventKind.BEGIN_DISCHARGE,
            backup_percent=RELEASE_PERCENT,
            **common,
        )
        stop.schedule_once(to_local(stop_at, period.timezone))
        return [start, stop]

    def _record_no_action(self, period: SchedulePeriod, now: datetime, note: str, numbers: dict[str, Any]) -> None:
        with self.events.transaction():
            self.events.set_evaluation_note([period.begin_discharge.id, period.begin_charge.id], note)
            self._audit(period, now, {"info": note, **numbers, "action_taken": False})
            self._history(period, now, ExecutionStatus.SKIPPED, note)

    def _audit(self, period: SchedulePeriod, now: datetime, details: dict[str, Any]) -> None:
        self.history.log_audit(
            AuditRecord(
                group_id=period.group_id,
                user_id=period.user_id,
                schedule_name=period.name,
                action=AuditAction.WEATHER_UPDATE,
                timestamp=now,
                details=details,
            )
        )

    def _history(self, period: SchedulePeriod, now: datetime, status: ExecutionStatus, details: str) -> None:
        self.history.log_execution(
            ExecutionRecord.for_event(
                period.begin_charge,
                execution_time=now,
                status=status,
                job_type=JobType.WEATHER_EVALUATION,
                details=details,
            )
        )
