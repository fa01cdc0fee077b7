"""
Execution history and audit records.

Both are append-only: rows are written once by the jobs and the store, and
only read back for reporting.
"""

from __future__ import annotations

import datetime
import json
import logging
from dataclasses import dataclass, field
from typing import Any

from app.domain.schedules.schedule_event import ScheduleEvent, new_id
from app.domain.schedules.triggers import describe_trigger
from app.enums.schedules import AuditAction, ExecutionStatus, JobType
from app.utils.time import coerce_datetime, to_iso

logger = logging.getLogger(__name__)


def trigger_description_for(expression: str | None) -> str:
    if not expression:
        return "N/A"
    try:
        return describe_trigger(expression)
    except ValueError:
        return "N/A"


@dataclass
class ExecutionRecord:
    """One job outcome for one schedule event."""

    schedule_id: str
    group_id: str
    user_id: str
    schedule_name: str
    execution_time: datetime.datetime
    status: ExecutionStatus
    job_type: JobType
    details: str
    trigger_expression: str | None = None
    trigger_description: str = "N/A"
    id: str = field(default_factory=new_id)

    @classmethod
    def for_event(
        cls,
        event: ScheduleEvent,
        *,
        execution_time: datetime.datetime,
        status: ExecutionStatus,
        job_type: JobType,
        details: str,
    ) -> "ExecutionRecord":
        return cls(
            schedule_id=event.id,
            group_id=event.group_id,
            user_id=event.user_id,
            schedule_name=event.name,
            execution_time=execution_time,
            status=status,
            job_type=job_type,
            details=details,
            trigger_expression=event.trigger_expression,
            trigger_description=trigger_description_for(event.trigger_expression),
        )

    @staticmethod
    def from_row(row: dict[str, Any]) -> "ExecutionRecord":
        return ExecutionRecord(
            id=row["id"],
            schedule_id=row["schedule_id"],
            group_id=row["group_id"],
            user_id=row["user_id"],
            schedule_name=row.get("schedule_name") or "",
            execution_time=coerce_datetime(row.get("execution_time")),
            status=ExecutionStatus(row["status"]),
            job_type=JobType(row["job_type"]),
            details=row.get("details") or "",
            trigger_expression=row.get("trigger_expression"),
            trigger_description=row.get("trigger_description") or "N/A",
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "schedule_id": self.schedule_id,
            "group_id": self.group_id,
            "user_id": self.user_id,
            "schedule_name": self.schedule_name,
            "execution_time": to_iso(self.execution_time),
            "status": self.status.value,
            "job_type": self.job_type.value,
            "job_type_display": self.job_type.display_name,
            "details": self.details,
            "trigger_expression": self.trigger_expression,
            "trigger_description": self.trigger_description,
        }


@dataclass
class AuditRecord:
    """A configuration change or weather decision on a schedule group."""

    group_id: str
    user_id: str
    schedule_name: str
    action: AuditAction
    timestamp: datetime.datetime
    details: dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=new_id)

    @staticmethod
    def from_row(row: dict[str, Any]) -> "AuditRecord":
        raw = row.get("details") or "{}"
        try:
            details = json.loads(raw) if isinstance(raw, str) else dict(raw)
        except json.JSONDecodeError:
            logger.warning("Invalid audit details JSON on event %s", row.get("id"))
            details = {"info": raw}
        return AuditRecord(
            id=row["id"],
            group_id=row["group_id"],
            user_id=row["user_id"],
            schedule_name=row.get("schedule_name") or "",
            action=AuditAction(row["action"]),
            timestamp=coerce_datetime(row.get("timestamp")),
            details=details,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "group_id": self.group_id,
            "user_id": self.user_id,
            "schedule_name": self.schedule_name,
            "action": self.action.value,
            "timestamp": to_iso(self.timestamp),
            "details": self.details,
        }
