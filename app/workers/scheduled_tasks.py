"""
Scheduled Tasks: background task definitions for the UnifiedScheduler.

Tasks live in the ``schedules.*`` namespace:
- schedules.execute: fire due schedule events (every minute)
- schedules.reconcile_continuous: correct reserve drift (every 15 minutes)
- schedules.reconcile_startup: one-off drift correction at boot
- schedules.weather_planning: weather-aware overrides (hourly)

Every task is guarded by a named job lease, so running several instances of
the service against one database never double-fires a job.

Usage:
    from app.workers.scheduled_tasks import configure_scheduler

    configure_scheduler(container.scheduler, container)

Author: Sebastian Gomez
Date: January 2026
"""

from __future__ import annotations

import logging
from functools import wraps
from typing import TYPE_CHECKING, Any, Callable

if TYPE_CHECKING:
    from app.services.container import ServiceContainer
    from app.workers.unified_scheduler import UnifiedScheduler

logger = logging.getLogger(__name__)

EXECUTE_TASK = "schedules.execute"
RECONCILE_CONTINUOUS_TASK = "schedules.reconcile_continuous"
RECONCILE_STARTUP_TASK = "schedules.reconcile_startup"
WEATHER_PLANNING_TASK = "schedules.weather_planning"


def _summary_to_result(summary: Any) -> dict[str, Any]:
    """Job summaries are None when another instance holds the lease."""
    if summary is None:
        return {"skipped": True, "reason": "lease held by another instance", "errors": []}
    return summary.to_dict()


# ==================== Schedules Namespace Tasks ====================


def execute_schedules_task(container: "ServiceContainer") -> dict[str, Any]:
    """
    Fire every enabled schedule event whose trigger matches the current minute.

    Task name: schedules.execute
    """
    return _summary_to_result(container.executor.run())


def reconcile_continuous_task(container: "ServiceContainer") -> dict[str, Any]:
    """
    Correct backup reserve drift for continuous-mode schedules.

    Task name: schedules.reconcile_continuous
    """
    return _summary_to_result(container.reconciler.run_continuous())


def reconcile_startup_task(container: "ServiceContainer") -> dict[str, Any]:
    """
    Correct drift once at boot, including startup-only schedules.

    Task name: schedules.reconcile_startup
    """
    return _summary_to_result(container.reconciler.run_startup())


def weather_planning_task(container: "ServiceContainer") -> dict[str, Any]:
    """
    Reap finished overrides and inject new ones ahead of poor solar days.

    Task name: schedules.weather_planning
    """
    return _summary_to_result(container.planner.run())


TASKS: dict[str, Callable[["ServiceContainer"], dict[str, Any]]] = {
    EXECUTE_TASK: execute_schedules_task,
    RECONCILE_CONTINUOUS_TASK: reconcile_continuous_task,
    RECONCILE_STARTUP_TASK: reconcile_startup_task,
    WEATHER_PLANNING_TASK: weather_planning_task,
}


# ==================== Task Registration ====================


def register_all_tasks(
    scheduler: "UnifiedScheduler",
    container: "ServiceContainer",
) -> None:
    """
    Register all tasks with the unified scheduler.

    This should be called once during application startup.

    Args:
        scheduler: UnifiedScheduler instance
        container: ServiceContainer with all services
    """
    logger.info("Registering scheduled tasks...")

    def bind_noargs(task_fn):
        @wraps(task_fn)
        def bound_task():
            try:
                return task_fn(container)
            # Intentional broad catch: this wrapper executes arbitrary scheduled task callables.
            except Exception as e:
                logger.exception("Scheduled task %s raised: %s", task_fn.__name__, e)
                # Re-raise to let scheduler record failure in history as well
                raise

        return bound_task

    for name, task_fn in TASKS.items():
        scheduler.register_task(name, bind_noargs(task_fn))

    logger.info("Registered %s tasks", len(scheduler.task_names()))


def schedule_default_jobs(scheduler: "UnifiedScheduler", container: "ServiceContainer") -> None:
    """
    Schedule default jobs with standard timing.

    Call this after register_all_tasks() to set up default schedules.

    Args:
        scheduler: UnifiedScheduler instance
        container: ServiceContainer providing the configured intervals
    """
    logger.info("Scheduling default jobs...")
    config = container.config

    # Startup reconciliation runs once, before the periodic jobs begin
    if config.reconcile_on_startup:
        scheduler.run_now(RECONCILE_STARTUP_TASK)

    # Triggers have minute resolution, so evaluate on the minute boundary
    scheduler.schedule_interval(
        EXECUTE_TASK,
        interval_seconds=config.execute_interval_seconds,
        job_id="schedules_execute_minutely",
        align_to_minute=True,
    )

    scheduler.schedule_interval(
        RECONCILE_CONTINUOUS_TASK,
        interval_seconds=config.reconcile_interval_seconds,
        job_id="schedules_reconcile_continuous",
        start_immediately=False,  # Startup reconciliation handles initial state
    )

    scheduler.schedule_interval(
        WEATHER_PLANNING_TASK,
        interval_seconds=config.weather_interval_seconds,
        job_id="schedules_weather_planning_hourly",
        start_immediately=True,
    )

    jobs = scheduler.get_jobs()
    logger.info("Scheduled %s default jobs", len(jobs))

    for job in jobs:
        logger.debug("  - %s: %s (%s)", job.job_id, job.schedule_type.value, job.namespace)


def configure_scheduler(
    scheduler: "UnifiedScheduler",
    container: "ServiceContainer",
    *,
    reset_jobs: bool = True,
    start: bool = True,
) -> None:
    """Register tasks, apply default schedules, and optionally start the scheduler."""
    if reset_jobs:
        scheduler.clear_jobs()

    register_all_tasks(scheduler, container)
    schedule_default_jobs(scheduler, container)

    if start:
        scheduler.start()
