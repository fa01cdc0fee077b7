"""
Schedule Event Database Operations
==================================

Database operations for the ScheduleEvents table.

Every write runs inside ``transaction()`` so it joins any unit of work the
caller already opened (a group CRUD call, an executor fire, a planner
injection) and commits on its own otherwise.

Author: Sebastian Gomez
Date: January 2026
"""

from __future__ import annotations

import json
import logging
import sqlite3
from contextlib import AbstractContextManager
from typing import TYPE_CHECKING, Any, Iterable

from app.domain.exceptions import RepositoryError
from app.domain.schedules.schedule_event import ScheduleEvent
from app.utils.time import iso_now, to_iso

if TYPE_CHECKING:
    from sqlite3 import Connection

logger = logging.getLogger(__name__)

_COLUMNS = (
    "id",
    "group_id",
    "user_id",
    "site_id",
    "name",
    "description",
    "days_of_week",
    "timezone",
    "scheduled_time",
    "trigger_expression",
    "event_kind",
    "backup_percent",
    "enabled",
    "is_temporary",
    "expires_at",
    "reconciliation_mode",
    "schedule_kind",
    "weather_scaling_factor",
    "last_evaluation_note",
    "created_at",
    "updated_at",
)


def _placeholders(count: int) -> str:
    return ", ".join("?" for _ in range(count))


class ScheduleEventOperations:
    """Schedule event CRUD helpers for database handlers."""

    def get_db(self) -> "Connection":
        """Get database connection. Must be implemented by mixing class."""
        raise NotImplementedError("Subclass must implement get_db()")

    def transaction(self) -> AbstractContextManager["Connection"]:
        """Open a unit of work. Must be implemented by mixing class."""
        raise NotImplementedError("Subclass must implement transaction()")

    # =========================================================================
    # Writes
    # =========================================================================

    def insert_schedule_events(self, events: Iterable[ScheduleEvent]) -> None:
        """
        Insert schedule events.

        Args:
            events: Events with ids and group ids already assigned
        """
        now = iso_now()
        sql = f"INSERT INTO ScheduleEvents ({', '.join(_COLUMNS)}) VALUES ({_placeholders(len(_COLUMNS))})"
        try:
            with self.transaction() as db:
                for event in events:
                    row = self._event_to_row(event)
                    row["created_at"] = row["created_at"] or now
                    row["updated_at"] = now
                    db.execute(sql, tuple(row[c] for c in _COLUMNS))
                    logger.debug(f"Inserted schedule event {event.id} ({event.event_kind}) in group {event.group_id}")
        except sqlite3.Error as e:
            logger.error(f"Error inserting schedule events: {e}")
            raise RepositoryError("Failed to insert schedule events") from e

    def update_schedule_events(self, events: Iterable[ScheduleEvent]) -> None:
        """Rewrite every mutable column of the given events."""
        mutable = [c for c in _COLUMNS if c not in ("id", "group_id", "user_id", "created_at")]
        sql = f"UPDATE ScheduleEvents SET {', '.join(f'{c} = ?' for c in mutable)} WHERE id = ?"
        now = iso_now()
        try:
            with self.transaction() as db:
                for event in events:
                    row = self._event_to_row(event)
                    row["updated_at"] = now
                    db.execute(sql, tuple(row[c] for c in mutable) + (event.id,))
        except sqlite3.Error as e:
            logger.error(f"Error updating schedule events: {e}")
            raise RepositoryError("Failed to update schedule events") from e

    def set_schedule_event_enabled(self, event_id: str, enabled: bool) -> bool:
        try:
            with self.transaction() as db:
                cursor = db.execute(
                    "UPDATE ScheduleEvents SET enabled = ?, updated_at = ? WHERE id = ?",
                    (1 if enabled else 0, iso_now(), event_id),
                )
                return cursor.rowcount > 0
        except sqlite3.Error as e:
            logger.error(f"Error setting enabled on schedule event {event_id}: {e}")
            raise RepositoryError("Failed to update schedule event") from e

    def set_schedule_group_enabled(self, group_id: str, enabled: bool) -> int:
        try:
            with self.transaction() as db:
                cursor = db.execute(
                    "UPDATE ScheduleEvents SET enabled = ?, updated_at = ? WHERE group_id = ?",
                    (1 if enabled else 0, iso_now(), group_id),
                )
                return cursor.rowcount
        except sqlite3.Error as e:
            logger.error(f"Error setting enabled on schedule group {group_id}: {e}")
            raise RepositoryError("Failed to update schedule group") from e

    def set_schedule_evaluation_note(self, event_ids: Iterable[str], note: str) -> None:
        ids = list(event_ids)
        if not ids:
            return
        try:
            with self.transaction() as db:
                db.execute(
                    f"UPDATE ScheduleEvents SET last_evaluation_note = ?, updated_at = ? "
                    f"WHERE id IN ({_placeholders(len(ids))})",
                    (note, iso_now(), *ids),
                )
        except sqlite3.Error as e:
            logger.error(f"Error recording evaluation note: {e}")
            raise RepositoryError("Failed to record evaluation note") from e

    def delete_schedule_group(self, group_id: str) -> int:
        try:
            with self.transaction() as db:
                cursor = db.execute("DELETE FROM ScheduleEvents WHERE group_id = ?", (group_id,))
                logger.info(f"Deleted {cursor.rowcount} schedule events in group {group_id}")
                return cursor.rowcount
        except sqlite3.Error as e:
            logger.error(f"Error deleting schedule group {group_id}: {e}")
            raise RepositoryError("Failed to delete schedule group") from e

    def delete_schedule_events(self, event_ids: Iterable[str]) -> int:
        ids = list(event_ids)
        if not ids:
            return 0
        try:
            with self.transaction() as db:
                cursor = db.execute(
                    f"DELETE FROM ScheduleEvents WHERE id IN ({_placeholders(len(ids))})",
                    tuple(ids),
                )
                return cursor.rowcount
        except sqlite3.Error as e:
            logger.error(f"Error deleting schedule events: {e}")
            raise RepositoryError("Failed to delete schedule events") from e

    # =========================================================================
    # Reads
    # =========================================================================

    def get_schedule_events_by_group(self, group_id: str) -> list[ScheduleEvent]:
        return self._select_events("WHERE group_id = ?", (group_id,))

    def get_schedule_events_by_user(self, user_id: str) -> list[ScheduleEvent]:
        return self._select_events("WHERE user_id = ?", (user_id,))

    def get_enabled_schedule_events(self) -> list[ScheduleEvent]:
        return self._select_events("WHERE enabled = 1", ())

    def get_schedule_user_ids(self) -> list[str]:
        db = self.get_db()
        try:
            rows = db.execute("SELECT DISTINCT user_id FROM ScheduleEvents ORDER BY user_id").fetchall()
            return [row["user_id"] for row in rows]
        except sqlite3.Error as e:
            logger.error(f"Error listing schedule owners: {e}")
            raise RepositoryError("Failed to list schedule owners") from e

    # =========================================================================
    # Helpers
    # =========================================================================

    def _select_events(self, where: str, params: tuple) -> list[ScheduleEvent]:
        db = self.get_db()
        try:
            rows = db.execute(
                f"SELECT * FROM ScheduleEvents {where} ORDER BY created_at DESC, event_kind",
                params,
            ).fetchall()
        except sqlite3.Error as e:
            logger.error(f"Error reading schedule events: {e}")
            raise RepositoryError("Failed to read schedule events") from e

        events = []
        for row in rows:
            try:
                events.append(ScheduleEvent.from_row(dict(row)))
            except (KeyError, ValueError) as e:
                logger.warning(f"Skipping malformed schedule event {row['id']}: {e}")
        return events

    @staticmethod
    def _event_to_row(event: ScheduleEvent) -> dict[str, Any]:
        return {
            "id": event.id,
            "group_id": event.group_id,
            "user_id": event.user_id,
            "site_id": event.site_id,
            "name": event.name,
            "description": event.description,
            "days_of_week": json.dumps(event.days_of_week),
            "timezone": event.timezone,
            "scheduled_time": event.scheduled_time,
            "trigger_expression": event.trigger_expression,
            "event_kind": event.event_kind.value,
            "backup_percent": event.backup_percent,
            "enabled": 1 if event.enabled else 0,
            "is_temporary": 1 if event.is_temporary else 0,
            "expires_at": to_iso(event.expires_at),
            "reconciliation_mode": event.reconciliation_mode.value,
            "schedule_kind": event.schedule_kind.value,
            "weather_scaling_factor": event.weather_scaling_factor,
            "last_evaluation_note": event.last_evaluation_note,
            "created_at": to_iso(event.created_at),
            "updated_at": to_iso(event.updated_at),
        }
