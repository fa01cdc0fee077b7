"""
Schedule History Repository
===========================

Append-only execution history and audit trail.

Audit events are written to the database and, once their transaction
commits, mirrored to the structured JSON audit log.

Author: Sebastian Gomez
Date: January 2026
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from app.domain.schedules.history import AuditRecord, ExecutionRecord
from app.enums.schedules import AuditAction, ExecutionStatus
from infrastructure.database.pagination import PaginationParams

if TYPE_CHECKING:
    from infrastructure.database.sqlite_handler import SQLiteDatabaseHandler
    from infrastructure.logging.audit import AuditLogger

logger = logging.getLogger(__name__)


class ScheduleHistoryRepository:
    """Execution history and audit persistence for schedule jobs and the store."""

    def __init__(self, backend: "SQLiteDatabaseHandler", audit_logger: "AuditLogger | None" = None) -> None:
        self._backend = backend
        self._audit_logger = audit_logger

    def log_execution(self, record: ExecutionRecord) -> None:
        self._backend.insert_execution_record(record)
        logger.info(
            "Schedule %s [%s] %s: %s",
            record.schedule_name,
            record.job_type.display_name,
            record.status.value,
            record.details,
        )

    def log_audit(self, record: AuditRecord) -> None:
        self._backend.insert_audit_record(record)
        if self._audit_logger is not None:
            # Mirrored only once the row is committed
            self._backend.after_commit(lambda: self._mirror_audit(record))

    def _mirror_audit(self, record: AuditRecord) -> None:
        self._audit_logger.log_event(
            actor=record.user_id,
            action=f"schedule_{record.action.value}",
            resource=record.group_id,
            outcome="recorded",
            schedule_name=record.schedule_name,
            details=record.details,
        )

    def get_execution_history(
        self,
        user_id: str,
        statuses: list[ExecutionStatus] | None = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> tuple[list[ExecutionRecord], int]:
        params = PaginationParams.from_request(limit=limit, offset=offset)
        return self._backend.get_execution_records(
            user_id,
            [s.value for s in statuses] if statuses else None,
            params.limit,
            params.offset,
        )

    def get_audit_history(
        self,
        user_id: str,
        actions: list[AuditAction] | None = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> tuple[list[AuditRecord], int]:
        params = PaginationParams.from_request(limit=limit, offset=offset)
        return self._backend.get_audit_records(
            user_id,
            [a.value for a in actions] if actions else None,
            params.limit,
            params.offset,
        )
