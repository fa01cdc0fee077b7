"""
In-process scheduler for the schedule jobs.

Design Principles:
- Single scheduler loop thread
- Bounded worker pool for job execution (prevents unbounded thread creation)
- Heap of (run_at, seq, job_id) entries; stale entries are skipped, never removed in place
- Fixed-rate interval scheduling: the next run advances from the scheduled time,
  not from completion, so runs do not drift
- Optional minute alignment so a 60s job fires at hh:mm:00 and the executor
  evaluates each trigger minute exactly once

Cross-instance exclusion is not handled here; each task acquires its own
lease before doing work.

Author: Sebastian Gomez
Date: January 2026
"""

from __future__ import annotations

import heapq
import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable

logger = logging.getLogger(__name__)


class ScheduleType(Enum):
    """Types of schedules."""

    INTERVAL = "interval"  # Every N seconds
    ONCE = "once"  # One-time execution


@dataclass
class JobResult:
    """Result of a job execution."""

    job_id: str
    success: bool
    started_at: datetime
    completed_at: datetime
    result: Any = None
    error: str | None = None

    @property
    def duration_seconds(self) -> float:
        return (self.completed_at - self.started_at).total_seconds()


@dataclass
class ScheduledJob:
    """A scheduled job configuration."""

    job_id: str
    task_name: str
    namespace: str  # e.g., "schedules"
    schedule_type: ScheduleType
    enabled: bool = True

    args: tuple = field(default_factory=tuple)
    kwargs: dict[str, Any] = field(default_factory=dict)

    interval_seconds: int | None = None  # For INTERVAL type
    run_at: datetime | None = None  # For ONCE type

    # Execution tracking
    next_run: datetime | None = None
    last_run: datetime | None = None
    run_count: int = 0
    success_count: int = 0
    failure_count: int = 0
    last_error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "job_id": self.job_id,
            "task_name": self.task_name,
            "namespace": self.namespace,
            "schedule_type": self.schedule_type.value,
            "enabled": self.enabled,
            "interval_seconds": self.interval_seconds,
            "next_run": self.next_run.isoformat() if self.next_run else None,
            "last_run": self.last_run.isoformat() if self.last_run else None,
            "run_count": self.run_count,
            "success_count": self.success_count,
            "failure_count": self.failure_count,
            "last_error": self.last_error,
        }


def _next_minute_boundary(now: datetime) -> datetime:
    return now.replace(second=0, microsecond=0) + timedelta(minutes=1)


class UnifiedScheduler:
    """
    Scheduler for the periodic schedule jobs.

    Tasks are registered by name and scheduled as interval or one-time jobs;
    ``run_now`` runs a task synchronously on the caller's thread.
    """

    def __init__(
        self,
        check_interval_seconds: float = 1.0,
        max_history: int = 1000,
        max_workers: int = 4,
    ):
        """
        Initialize the scheduler.

        Args:
            check_interval_seconds: How often to check for due jobs (default 1s)
            max_history: Maximum job execution history to keep
            max_workers: Maximum number of concurrent job executions
        """
        self._check_interval = float(check_interval_seconds)
        self._max_history = int(max_history)
        self._max_workers = int(max_workers)

        self._jobs: dict[str, ScheduledJob] = {}
        self._tasks: dict[str, Callable] = {}  # task_name -> function

        # Entries: (run_at_ts, seq, job_id)
        self._job_heap: list[tuple[float, int, str]] = []
        self._heap_seq = 0

        self._history: list[JobResult] = []

        self._running = False
        self._thread: threading.Thread | None = None
        self._job_lock = threading.RLock()
        self._executor: ThreadPoolExecutor | None = None

        logger.info("UnifiedScheduler initialized")

    # ==================== Task Registration ====================

    def register_task(self, name: str, func: Callable) -> None:
        """Register a task function programmatically."""
        self._tasks[name] = func
        logger.debug(f"Registered task: {name}")

    def has_task(self, name: str) -> bool:
        return name in self._tasks

    def task_names(self) -> list[str]:
        return sorted(self._tasks)

    def clear_jobs(self) -> None:
        """Remove all scheduled jobs and pending heap entries."""
        with self._job_lock:
            self._jobs.clear()
            self._job_heap.clear()
            self._heap_seq = 0

    def _ensure_executor(self) -> None:
        """Ensure an executor is available (supports stop() -> start() restarts)."""
        if self._executor is not None:
            return
        self._executor = ThreadPoolExecutor(
            max_workers=self._max_workers,
            thread_name_prefix="UnifiedSchedulerJob",
        )

    # ==================== Heap Helpers ====================

    def _push_heap(self, job: ScheduledJob) -> None:
        if not job.enabled or not job.next_run:
            return
        self._heap_seq += 1
        heapq.heappush(self._job_heap, (job.next_run.timestamp(), self._heap_seq, job.job_id))

    # ==================== Job Scheduling ====================

    def schedule_interval(
        self,
        task_name: str,
        interval_seconds: int,
        *,
        job_id: str | None = None,
        namespace: str | None = None,
        args: tuple = (),
        kwargs: dict[str, Any] | None = None,
        enabled: bool = True,
        start_immediately: bool = False,
        align_to_minute: bool = False,
    ) -> ScheduledJob:
        """Schedule a task to run at regular intervals."""
        if job_id is None:
            job_id = task_name

        if namespace is None:
            namespace = task_name.split(".")[0] if "." in task_name else "default"

        now = datetime.now()
        if start_immediately:
            next_run = now
        elif align_to_minute:
            next_run = _next_minute_boundary(now)
        else:
            next_run = now + timedelta(seconds=int(interval_seconds))

        job = ScheduledJob(
            job_id=job_id,
            task_name=task_name,
            namespace=namespace,
            schedule_type=ScheduleType.INTERVAL,
            enabled=enabled,
            args=args,
            kwargs=kwargs or {},
            interval_seconds=int(interval_seconds),
            next_run=next_run,
        )

        self._add_job(job)
        logger.info(f"Scheduled interval job: {job_id} (every {interval_seconds}s, first run {next_run:%H:%M:%S})")
        return job

    def schedule_once(
        self,
        task_name: str,
        run_at: datetime,
        *,
        job_id: str | None = None,
        namespace: str | None = None,
        args: tuple = (),
        kwargs: dict[str, Any] | None = None,
    ) -> ScheduledJob:
        """Schedule a task to run once at a specific time."""
        if job_id is None:
            job_id = f"{task_name}_once_{int(run_at.timestamp())}"

        if namespace is None:
            namespace = task_name.split(".")[0] if "." in task_name else "default"

        job = ScheduledJob(
            job_id=job_id,
            task_name=task_name,
            namespace=namespace,
            schedule_type=ScheduleType.ONCE,
            args=args,
            kwargs=kwargs or {},
            run_at=run_at,
            next_run=run_at,
        )

        self._add_job(job)
        logger.info(f"Scheduled one-time job: {job_id} (at {run_at})")
        return job

    def run_now(
        self,
        task_name: str,
        *,
        args: tuple = (),
        kwargs: dict[str, Any] | None = None,
    ) -> JobResult | None:
        """Run a task immediately (synchronously)."""
        func = self._tasks.get(task_name)
        if func is None:
            logger.error(f"Task not found: {task_name}")
            return None

        started_at = datetime.now()
        job_id = f"{task_name}_immediate_{int(started_at.timestamp())}"
        try:
            result = func(*args, **(kwargs or {}))
            job_result = JobResult(
                job_id=job_id,
                success=True,
                started_at=started_at,
                completed_at=datetime.now(),
                result=result,
            )
        except Exception as e:
            logger.error(f"Immediate task {task_name} failed: {e}", exc_info=True)
            job_result = JobResult(
                job_id=job_id,
                success=False,
                started_at=started_at,
                completed_at=datetime.now(),
                error=str(e),
            )
        self._record_history(job_result)
        return job_result

    # ==================== Job Management ====================

    def _add_job(self, job: ScheduledJob) -> None:
        with self._job_lock:
            self._jobs[job.job_id] = job
            self._push_heap(job)

    def remove_job(self, job_id: str) -> bool:
        with self._job_lock:
            if job_id in self._jobs:
                del self._jobs[job_id]
                logger.info(f"Removed job: {job_id}")
                return True
        return False

    def get_job(self, job_id: str) -> ScheduledJob | None:
        return self._jobs.get(job_id)

    def get_jobs(self, namespace: str | None = None) -> list[ScheduledJob]:
        jobs = list(self._jobs.values())
        if namespace:
            jobs = [j for j in jobs if j.namespace == namespace]
        return jobs

    # ==================== Scheduler Control ====================

    def start(self) -> None:
        """Start the scheduler background thread."""
        if self._running:
            logger.warning("Scheduler already running")
            return

        self._ensure_executor()

        self._running = True
        self._thread = threading.Thread(
            target=self._run_loop,
            daemon=True,
            name="UnifiedScheduler",
        )
        self._thread.start()
        logger.info("UnifiedScheduler started")

    def stop(self, wait: bool = True, timeout: float = 5.0) -> None:
        if not self._running:
            return

        self._running = False

        if wait and self._thread:
            self._thread.join(timeout=timeout)

        if self._executor:
            self._executor.shutdown(wait=wait)
            self._executor = None

        logger.info("UnifiedScheduler stopped")

    def shutdown(self, wait: bool = True, timeout: float = 5.0) -> None:
        """Alias for stop(); matches other services' shutdown() convention."""
        self.stop(wait=wait, timeout=timeout)

    def is_running(self) -> bool:
        return self._running

    def _run_loop(self) -> None:
        logger.debug("Scheduler loop started")

        while self._running:
            try:
                self._process_due_jobs()
                time.sleep(self._check_interval)
            except Exception as e:
                logger.error(f"Error in scheduler loop: {e}", exc_info=True)
                time.sleep(1)

        logger.debug("Scheduler loop ended")

    # ==================== Core Scheduling Logic ====================

    def _process_due_jobs(self, now: datetime | None = None) -> list[tuple[str, datetime]]:
        """
        Submit every due job to the worker pool.

        Returns:
            (job_id, scheduled_for) pairs that were due
        """
        now_ts = (now or datetime.now()).timestamp()
        due: list[tuple[str, datetime]] = []

        with self._job_lock:
            while self._job_heap:
                run_at_ts, _seq, job_id = self._job_heap[0]
                if run_at_ts > now_ts:
                    break

                heapq.heappop(self._job_heap)

                job = self._jobs.get(job_id)
                if not job or not job.enabled or not job.next_run:
                    continue
                # Stale entry: next_run changed since this entry was pushed
                if abs(job.next_run.timestamp() - run_at_ts) > 1e-6:
                    continue

                scheduled_for = job.next_run

                # Schedule next run before submitting so a long execution cannot miss a slot
                self._schedule_next_run(job, scheduled_time=scheduled_for, now=now)
                self._push_heap(job)
                due.append((job_id, scheduled_for))

                if not self._executor:
                    logger.warning("Executor unavailable; skipping job execution")
                    continue
                self._executor.submit(self._execute_job, job_id, scheduled_for)

        return due

    def _execute_job(self, job_id: str, scheduled_for: datetime) -> None:
        with self._job_lock:
            job = self._jobs.get(job_id)

        # One-time jobs are disabled as soon as they are dequeued
        if not job or (not job.enabled and job.schedule_type != ScheduleType.ONCE):
            return

        started_at = datetime.now()
        try:
            func = self._tasks.get(job.task_name)
            if func is None:
                raise ValueError(f"Task function not found: {job.task_name}")

            result = func(*job.args, **job.kwargs)

            with self._job_lock:
                job.last_run = started_at
                job.run_count += 1
                job.success_count += 1
                job.last_error = None

            job_result = JobResult(
                job_id=job.job_id,
                success=True,
                started_at=started_at,
                completed_at=datetime.now(),
                result=result,
            )
            self._record_history(job_result)
            logger.debug(
                f"Job {job.job_id} completed in {job_result.duration_seconds:.2f}s "
                f"(scheduled_for={scheduled_for.isoformat()})"
            )

        except Exception as e:
            with self._job_lock:
                job.last_run = started_at
                job.run_count += 1
                job.failure_count += 1
                job.last_error = str(e)

            self._record_history(
                JobResult(
                    job_id=job.job_id,
                    success=False,
                    started_at=started_at,
                    completed_at=datetime.now(),
                    error=str(e),
                )
            )
            logger.error(f"Job {job.job_id} failed: {e}", exc_info=True)

    def _schedule_next_run(
        self,
        job: ScheduledJob,
        *,
        scheduled_time: datetime,
        now: datetime | None = None,
    ) -> None:
        if job.schedule_type == ScheduleType.INTERVAL:
            interval = int(job.interval_seconds or 60)
            next_run = scheduled_time + timedelta(seconds=interval)

            # Far behind (e.g., system slept): skip ahead to the first future slot
            now = now or datetime.now()
            if next_run <= now:
                skips = int((now - next_run).total_seconds() // interval) + 1
                next_run = next_run + timedelta(seconds=skips * interval)

            job.next_run = next_run
            return

        # One-time jobs don't repeat
        job.next_run = None
        job.enabled = False

    def _record_history(self, result: JobResult) -> None:
        with self._job_lock:
            self._history.append(result)
            if len(self._history) > self._max_history:
                self._history = self._history[-self._max_history :]

    # ==================== Status & History ====================

    def get_history(self, limit: int = 50) -> list[JobResult]:
        with self._job_lock:
            return list(self._history[-limit:])

    def get_status(self) -> dict[str, Any]:
        with self._job_lock:
            enabled_jobs = [j for j in self._jobs.values() if j.enabled]
            return {
                "running": self._running,
                "total_jobs": len(self._jobs),
                "enabled_jobs": len(enabled_jobs),
                "pending_jobs": sum(1 for j in enabled_jobs if j.next_run is not None),
                "history_size": len(self._history),
                "recent_failures": sum(1 for r in self._history[-20:] if not r.success),
                "max_workers": self._max_workers,
            }
