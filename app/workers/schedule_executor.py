"""
Schedule Executor
=================

Per-minute job firing due schedule events against the battery.

Features:
- Cron trigger evaluation in each event's own timezone
- Bounded retry with exponential backoff around the device call
- One-shot semantics for temporary events (disabled in the same unit of work as the history row)
- Per-event failure isolation

Author: Sebastian Gomez
Date: January 2026
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any, Callable

from app.domain.schedules.history import ExecutionRecord
from app.domain.schedules.schedule_event import ScheduleEvent
from app.enums.schedules import ExecutionStatus, JobType
from app.utils.time import Clock, SystemClock
from app.workers.job_lease import EXECUTE_SCHEDULES_LEASE, run_under_lease

if TYPE_CHECKING:
    from app.domain.schedules.repository import ScheduleEventRepository, ScheduleHistoryRepository
    from app.services.protocols import DeviceControl, LeaseProvider

logger = logging.getLogger(__name__)


@dataclass
class DispatchResult:
    """Outcome of one device call, after retries."""

    accepted: bool
    attempts: int
    error: Exception | None = None


@dataclass
class ExecutorRunSummary:
    evaluated: int = 0
    fired: int = 0
    succeeded: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "evaluated": self.evaluated,
            "fired": self.fired,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "errors": list(self.errors),
        }


class ScheduleExecutor:
    """Fires due schedule events and records their outcome."""

    MAX_RETRY_ATTEMPTS = 3
    RETRY_BASE_DELAY_MS = 1000

    def __init__(
        self,
        events: "ScheduleEventRepository",
        history: "ScheduleHistoryRepository",
        device: "DeviceControl",
        clock: Clock | None = None,
        lease: "LeaseProvider | None" = None,
        *,
        max_retry_attempts: int | None = None,
        retry_base_delay_ms: int | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.events = events
        self.history = history
        self.device = device
        self.clock = clock or SystemClock()
        self.lease = lease
        self.max_retry_attempts = max(1, max_retry_attempts or self.MAX_RETRY_ATTEMPTS)
        self.retry_base_delay_ms = (
            self.RETRY_BASE_DELAY_MS if retry_base_delay_ms is None else max(0, retry_base_delay_ms)
        )
        self._sleep = sleep

    def run(self) -> ExecutorRunSummary | None:
        """Lease-guarded entry point for the per-minute job."""
        return run_under_lease(self.lease, EXECUTE_SCHEDULES_LEASE, self.execute_due)

    def execute_due(self) -> ExecutorRunSummary:
        """Fire every enabled event whose trigger matches the current minute."""
        now = self.clock.now().replace(second=0, microsecond=0)
        summary = ExecutorRunSummary()

        for event in self.events.list_enabled():
            summary.evaluated += 1
            try:
                if not event.is_due(now):
                    continue
                summary.fired += 1
                if self._fire(event, now):
                    summary.succeeded += 1
                else:
                    summary.failed += 1
            except Exception as e:
                summary.errors.append(f"{event.id}: {e}")
                logger.error(f"Error executing schedule event {event.id} ({event.name}): {e}", exc_info=True)

        if summary.fired:
            logger.info(
                f"Schedule executor fired {summary.fired} event(s): "
                f"{summary.succeeded} succeeded, {summary.failed} failed"
            )
        return summary

    def dispatch_with_retry(self, event: ScheduleEvent) -> DispatchResult:
        """
        Call the device with bounded retries.

        Only exceptions are retried; a refused command (False) is final.
        """
        last_error: Exception | None = None
        for attempt in range(self.max_retry_attempts):
            try:
                accepted = self.device.set_backup_reserve(event.user_id, event.site_id, event.backup_percent)
                return DispatchResult(accepted=bool(accepted), attempts=attempt + 1)
            except Exception as e:
                last_error = e
                logger.warning(
                    f"Backup reserve dispatch for {event.id} failed "
                    f"(attempt {attempt + 1}/{self.max_retry_attempts}): {e}"
                )
                if attempt < self.max_retry_attempts - 1:
                    delay_ms = self.retry_base_delay_ms * (2**attempt)
                    self._sleep(delay_ms / 1000.0)

        logger.error(
            f"Schedule event {event.id} dispatch failed after {self.max_retry_attempts} attempts: {last_error}"
        )
        return DispatchResult(accepted=False, attempts=self.max_retry_attempts, error=last_error)

    def _fire(self, event: ScheduleEvent, now: datetime) -> bool:
        result = self.dispatch_with_retry(event)
        action = event.event_kind.description

        if result.accepted:
            status = ExecutionStatus.SUCCESS
            details = f"Successfully triggered '{action}' action. Set backup reserve to {event.backup_percent}%."
        elif result.error is None:
            status = ExecutionStatus.FAILURE
            details = (
                f"API call failed for '{action}' action. The command was not accepted by the device API."
            )
        else:
            status = ExecutionStatus.FAILURE
            details = (
                f"Execution failed for '{action}'. "
                f"Error: {result.error} ({type(result.error).__name__})"
            )

        record = ExecutionRecord.for_event(
            event,
            execution_time=now,
            status=status,
            job_type=JobType.REGULAR_TRIGGER,
            details=details,
        )
        with self.events.transaction():
            self.history.log_execution(record)
            if event.is_temporary:
                self.events.set_enabled(event.id, False)
                logger.info(f"Temporary schedule event {event.id} ({event.name}) fired and disabled")

        return result.accepted
