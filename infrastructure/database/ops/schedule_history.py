"""
Schedule History Database Operations
====================================

Append-only execution history and audit trail for schedule groups.

Author: Sebastian Gomez
Date: January 2026
"""

from __future__ import annotations

import json
import logging
import sqlite3
from contextlib import AbstractContextManager
from typing import TYPE_CHECKING, Any

from app.domain.exceptions import RepositoryError
from app.domain.schedules.history import AuditRecord, ExecutionRecord
from app.utils.time import to_iso
from infrastructure.database.pagination import apply_pagination_to_query

if TYPE_CHECKING:
    from sqlite3 import Connection

logger = logging.getLogger(__name__)


class ScheduleHistoryOperations:
    """Execution history and audit helpers for database handlers."""

    def get_db(self) -> "Connection":
        """Get database connection. Must be implemented by mixing class."""
        raise NotImplementedError("Subclass must implement get_db()")

    def transaction(self) -> AbstractContextManager["Connection"]:
        """Open a unit of work. Must be implemented by mixing class."""
        raise NotImplementedError("Subclass must implement transaction()")

    # =========================================================================
    # Appends
    # =========================================================================

    def insert_execution_record(self, record: ExecutionRecord) -> None:
        try:
            with self.transaction() as db:
                db.execute(
                    """
                    INSERT INTO ScheduleExecutionHistory (
                        id, schedule_id, group_id, user_id, schedule_name,
                        execution_time, status, job_type, details,
                        trigger_expression, trigger_description
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        record.id,
                        record.schedule_id,
                        record.group_id,
                        record.user_id,
                        record.schedule_name,
                        to_iso(record.execution_time),
                        record.status.value,
                        record.job_type.value,
                        record.details,
                        record.trigger_expression,
                        record.trigger_description,
                    ),
                )
        except sqlite3.Error as e:
            logger.error(f"Error logging execution for schedule {record.schedule_id}: {e}")
            raise RepositoryError("Failed to log schedule execution") from e

    def insert_audit_record(self, record: AuditRecord) -> None:
        try:
            with self.transaction() as db:
                db.execute(
                    """
                    INSERT INTO ScheduleAuditEvents (
                        id, group_id, user_id, schedule_name, action, timestamp, details
                    ) VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        record.id,
                        record.group_id,
                        record.user_id,
                        record.schedule_name,
                        record.action.value,
                        to_iso(record.timestamp),
                        json.dumps(record.details),
                    ),
                )
        except sqlite3.Error as e:
            logger.error(f"Error logging audit event for group {record.group_id}: {e}")
            raise RepositoryError("Failed to log audit event") from e

    # =========================================================================
    # Queries
    # =========================================================================

    def get_execution_records(
        self,
        user_id: str,
        statuses: list[str] | None = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> tuple[list[ExecutionRecord], int]:
        rows, total = self._paged_query(
            "ScheduleExecutionHistory", "status", "execution_time", user_id, statuses, limit, offset
        )
        return [ExecutionRecord.from_row(r) for r in rows], total

    def get_audit_records(
        self,
        user_id: str,
        actions: list[str] | None = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> tuple[list[AuditRecord], int]:
        rows, total = self._paged_query(
            "ScheduleAuditEvents", "action", "timestamp", user_id, actions, limit, offset
        )
        return [AuditRecord.from_row(r) for r in rows], total

    def _paged_query(
        self,
        table: str,
        filter_column: str,
        order_column: str,
        user_id: str,
        values: list[str] | None,
        limit: int | None,
        offset: int | None,
    ) -> tuple[list[dict[str, Any]], int]:
        where = "WHERE user_id = ?"
        params: list[Any] = [user_id]
        if values:
            where += f" AND {filter_column} IN ({', '.join('?' for _ in values)})"
            params.extend(values)

        query, _, _ = apply_pagination_to_query(
            f"SELECT * FROM {table} {where} ORDER BY {order_column} DESC, rowid DESC", limit, offset
        )
        db = self.get_db()
        try:
            total = db.execute(f"SELECT COUNT(*) FROM {table} {where}", params).fetchone()[0]
            rows = db.execute(query, params).fetchall()
            return [dict(row) for row in rows], int(total)
        except sqlite3.Error as e:
            logger.error(f"Error querying {table} for user {user_id}: {e}")
            raise RepositoryError(f"Failed to query {table}") from e
