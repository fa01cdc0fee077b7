"""
Enums Module
============

This module provides enumeration types for the energy scheduling application.
Enums ensure type safety and consistency across the codebase.
"""

from app.enums.schedules import (
    AuditAction,
    EventKind,
    ExecutionStatus,
    JobType,
    PeakWindow,
    ReconciliationMode,
    ScheduleKind,
)

__all__ = [
    # Schedule event enums
    "EventKind",
    "ReconciliationMode",
    "ScheduleKind",
    "PeakWindow",
    # History enums
    "ExecutionStatus",
    "JobType",
    "AuditAction",
]
