"""
State Reconciler
================

Detects and corrects drift between the scheduled backup reserve and the
battery's actual setting.

Features:
- Continuous, startup and ad-hoc (single user) passes over the same core
- On-peak: most aggressive (lowest) reserve wins across overlapping periods
- Off-peak: most conservative (highest) reserve wins
- Never overrides a manual change in the user's favour (see ``decide``)
- Per-user failure isolation; failures are retried on the next run, never inline

Author: Sebastian Gomez
Date: January 2026
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable

from app.domain.schedules.history import ExecutionRecord
from app.domain.schedules.period import SchedulePeriod, group_periods
from app.domain.schedules.reconciliation import AlreadyCorrect, Correct, Decision, Skip, decide
from app.domain.schedules.triggers import parse_time
from app.enums.schedules import ExecutionStatus, JobType, PeakWindow, ReconciliationMode
from app.utils.time import Clock, SystemClock
from app.workers.job_lease import RECONCILE_STARTUP_LEASE, RECONCILE_STATE_LEASE, run_under_lease

if TYPE_CHECKING:
    from app.domain.schedules.repository import ScheduleEventRepository, ScheduleHistoryRepository
    from app.services.protocols import DeviceControl, LeaseProvider

logger = logging.getLogger(__name__)

PeriodFilter = Callable[[list[SchedulePeriod]], list[SchedulePeriod]]


def format_clock_time(hhmm: str) -> str:
    """'07:00' -> '7:00 AM', '21:30' -> '9:30 PM'."""
    return parse_time(hhmm).strftime("%I:%M %p").lstrip("0")


@dataclass
class ReconcileOutcome:
    """What one user's pass decided."""

    user_id: str
    window: PeakWindow | None = None
    target: int | None = None
    actual: int | None = None
    decision: Decision | None = None
    status: ExecutionStatus | None = None
    group_id: str | None = None
    error: str | None = None


@dataclass
class ReconcileRunSummary:
    users: int = 0
    corrected: int = 0
    skipped: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)

    def add(self, outcome: ReconcileOutcome) -> None:
        if outcome.status == ExecutionStatus.SUCCESS:
            self.corrected += 1
        elif outcome.status == ExecutionStatus.SKIPPED:
            self.skipped += 1
        elif outcome.status == ExecutionStatus.FAILURE:
            self.failed += 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "users": self.users,
            "corrected": self.corrected,
            "skipped": self.skipped,
            "failed": self.failed,
            "errors": list(self.errors),
        }


def _continuous_only(periods: list[SchedulePeriod]) -> list[SchedulePeriod]:
    return [p for p in periods if p.reconciliation_mode == ReconciliationMode.CONTINUOUS]


def _all_if_any_enabled(periods: list[SchedulePeriod]) -> list[SchedulePeriod]:
    return periods if any(p.enabled for p in periods) else []


class StateReconciler:
    """Self-healing backup reserve reconciliation."""

    def __init__(
        self,
        events: "ScheduleEventRepository",
        history: "ScheduleHistoryRepository",
        device: "DeviceControl",
        clock: Clock | None = None,
        lease: "LeaseProvider | None" = None,
    ) -> None:
        self.events = events
        self.history = history
        self.device = device
        self.clock = clock or SystemClock()
        self.lease = lease

    # ==================== Entry points ====================

    def run_continuous(self) -> ReconcileRunSummary | None:
        """Lease-guarded periodic pass."""
        return run_under_lease(self.lease, RECONCILE_STATE_LEASE, self.reconcile_continuously)

    def run_startup(self) -> ReconcileRunSummary | None:
        """Startup pass under its own lease, so a running periodic pass never suppresses it."""
        return run_under_lease(self.lease, RECONCILE_STARTUP_LEASE, self.reconcile_on_startup)

    def reconcile_continuously(self) -> ReconcileRunSummary:
        """Correct drift for every user's continuous-mode periods."""
        return self._sweep(_continuous_only, JobType.CONTINUOUS_RECONCILIATION)

    def reconcile_on_startup(self) -> ReconcileRunSummary:
        """Correct drift for every period of users with at least one enabled period, regardless of mode."""
        return self._sweep(_all_if_any_enabled, JobType.STARTUP_RECONCILIATION)

    def reconcile_user(self, user_id: str) -> ReconcileOutcome:
        """Synchronous pass over all of one user's periods (manual force reconcile, planner follow-up)."""
        periods = group_periods(self.events.list_by_user(user_id))
        return self._reconcile(user_id, periods, JobType.CONTINUOUS_RECONCILIATION)

    # ==================== Core ====================

    def _sweep(self, select: PeriodFilter, job_type: JobType) -> ReconcileRunSummary:
        summary = ReconcileRunSummary()
        for user_id in self.events.list_user_ids():
            summary.users += 1
            try:
                periods = select(group_periods(self.events.list_by_user(user_id)))
                outcome = self._reconcile(user_id, periods, job_type)
                summary.add(outcome)
                if outcome.error:
                    summary.errors.append(f"{user_id}: {outcome.error}")
            except Exception as e:
                summary.errors.append(f"{user_id}: {e}")
                logger.error(f"Reconciliation failed for user {user_id}: {e}", exc_info=True)

        logger.info(
            f"{job_type.display_name} finished for {summary.users} user(s): "
            f"{summary.corrected} corrected, {summary.skipped} skipped, {summary.failed} failed"
        )
        return summary

    def _reconcile(self, user_id: str, periods: list[SchedulePeriod], job_type: JobType) -> ReconcileOutcome:
        now = self.clock.now()
        outcome = ReconcileOutcome(user_id=user_id)

        active = [p for p in periods if p.is_active_on(now)]
        if not active:
            logger.debug(f"No schedules active today for user {user_id}")
            return outcome

        on_peak = [p for p in active if p.window_at(now) == PeakWindow.ON_PEAK]
        if on_peak:
            window = PeakWindow.ON_PEAK
            target = min(p.on_peak_backup_percent for p in on_peak)
            winner = next(p for p in on_peak if p.on_peak_backup_percent == target)
        else:
            window = PeakWindow.OFF_PEAK
            target = max(p.off_peak_backup_percent for p in active)
            winner = next(p for p in active if p.off_peak_backup_percent == target)

        outcome.window, outcome.target, outcome.group_id = window, target, winner.group_id

        try:
            actual = int(self.device.get_backup_reserve_percent(user_id, winner.site_id))
        except Exception as e:
            outcome.error = f"Could not read backup reserve: {e}"
            logger.error(f"Could not read backup reserve for user {user_id} site {winner.site_id}: {e}")
            return outcome

        outcome.actual = actual
        decision = decide(window, actual, target)
        outcome.decision = decision

        if isinstance(decision, Correct):
            status, details = self._correct(user_id, winner, window, actual, decision.target)
        elif isinstance(decision, AlreadyCorrect):
            status, details = ExecutionStatus.SKIPPED, self._already_correct_details(winner, window, actual)
        else:
            status, details = ExecutionStatus.SKIPPED, decision.reason

        outcome.status = status
        record = ExecutionRecord.for_event(
            winner.permanent_event_for(window),
            execution_time=now,
            status=status,
            job_type=job_type,
            details=details,
        )
        with self.events.transaction():
            self.history.log_execution(record)
        return outcome

    def _correct(
        self,
        user_id: str,
        winner: SchedulePeriod,
        window: PeakWindow,
        actual: int,
        target: int,
    ) -> tuple[ExecutionStatus, str]:
        try:
            accepted = bool(self.device.set_backup_reserve(user_id, winner.site_id, target))
        except Exception as e:
            logger.error(f"Backup reserve correction for user {user_id} raised: {e}")
            accepted = False

        if not accepted:
            return ExecutionStatus.FAILURE, (
                f"Automatic correction failed for schedule '{winner.name}'. "
                f"The API call to set backup reserve to {target}% was not accepted by the device."
            )

        logger.info(f"Corrected backup reserve for user {user_id} from {actual}% to {target}% ({window})")
        if self._weather_adjusted(winner):
            return ExecutionStatus.SUCCESS, (
                f"Automatic correction for weather-aware schedule '{winner.name}'. "
                f"Backup reserve was at {actual}% and has been corrected to the weather-adjusted target of {target}%."
            )
        if window == PeakWindow.ON_PEAK:
            return ExecutionStatus.SUCCESS, (
                f"Automatic correction for schedule '{winner.name}' during its on-peak window "
                f"({format_clock_time(winner.start_time)} - {format_clock_time(winner.end_time)}). "
                f"The backup reserve was at {actual}% and has been corrected to the scheduled {target}%."
            )
        return ExecutionStatus.SUCCESS, (
            f"Automatic correction during an off-peak period. The backup reserve was at {actual}% "
            f"and has been corrected to the scheduled {target}% (based on schedule '{winner.name}')."
        )

    def _already_correct_details(self, winner: SchedulePeriod, window: PeakWindow, actual: int) -> str:
        if self._weather_adjusted(winner):
            return (
                f"Automatic check for weather-aware schedule '{winner.name}'. "
                f"The backup reserve of {actual}% already matches the weather-adjusted target. No action was needed."
            )
        return (
            f"Automatic check during an {window.value} period for schedule '{winner.name}'. "
            f"The battery's backup reserve is already correctly set to {actual}%. No action was needed."
        )

    @staticmethod
    def _weather_adjusted(period: SchedulePeriod) -> bool:
        return period.is_weather_aware and period.overridden_by_weather


def describe_decision(decision: Decision) -> str:
    if isinstance(decision, Correct):
        return f"correct to {decision.target}%"
    if isinstance(decision, Skip):
        return "skip (manual override)"
    return "already correct"
