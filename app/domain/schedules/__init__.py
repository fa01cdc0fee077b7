"""
Schedules Domain
================

Backup-reserve schedule events, the merged period view, and the pure
reconciliation and weather-target rules.
"""

from app.domain.schedules.history import AuditRecord, ExecutionRecord
from app.domain.schedules.period import SchedulePeriod, group_periods, is_on_peak, merge_group, select_reapable
from app.domain.schedules.reconciliation import AlreadyCorrect, Correct, Decision, Skip, decide
from app.domain.schedules.repository import ScheduleEventRepository, ScheduleHistoryRepository
from app.domain.schedules.schedule_event import Permanence, Permanent, ScheduleEvent, Temporary
from app.domain.schedules.weather import compute_charge_target

__all__ = [
    "ScheduleEvent",
    "Permanent",
    "Temporary",
    "Permanence",
    "SchedulePeriod",
    "merge_group",
    "group_periods",
    "select_reapable",
    "is_on_peak",
    "Correct",
    "Skip",
    "AlreadyCorrect",
    "Decision",
    "decide",
    "compute_charge_target",
    "ExecutionRecord",
    "AuditRecord",
    "ScheduleEventRepository",
    "ScheduleHistoryRepository",
]
