"""
Workers module for the background schedule jobs.

This module contains:
- unified_scheduler: in-process scheduler driving all jobs
- schedule_executor: per-minute firing of due schedule events
- state_reconciler: drift correction between scheduled and actual reserve
- weather_planner: hourly weather-aware override injection and cleanup
- scheduled_tasks: task registration in the ``schedules.*`` namespace
"""

__all__ = [
    "UnifiedScheduler",
    "ScheduleExecutor",
    "StateReconciler",
    "WeatherAwarePlanner",
    "configure_scheduler",
    "register_all_tasks",
    "schedule_default_jobs",
]

from app.workers.unified_scheduler import UnifiedScheduler
from app.workers.schedule_executor import ScheduleExecutor
from app.workers.state_reconciler import StateReconciler
from app.workers.weather_planner import WeatherAwarePlanner
from app.workers.scheduled_tasks import configure_scheduler, register_all_tasks, schedule_default_jobs
