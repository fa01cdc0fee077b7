"""
Schedule Event Repository
=========================

Concrete implementation of the ScheduleEventRepository protocol using SQLite.
Wraps the ScheduleEventOperations mixin from the infrastructure layer.

Reads are never cached: every job run reloads fresh state.

Author: Sebastian Gomez
Date: January 2026
"""

from __future__ import annotations

from contextlib import AbstractContextManager
from typing import TYPE_CHECKING, Iterable

from app.domain.schedules.schedule_event import ScheduleEvent

if TYPE_CHECKING:
    from sqlite3 import Connection

    from infrastructure.database.sqlite_handler import SQLiteDatabaseHandler


class ScheduleEventRepository:
    """
    Concrete implementation of ScheduleEventRepository protocol.

    Wraps the ScheduleEventOperations mixin to provide repository pattern access.
    """

    def __init__(self, backend: "SQLiteDatabaseHandler") -> None:
        """
        Initialize with database backend.

        Args:
            backend: Database handler that implements ScheduleEventOperations
        """
        self._backend = backend

    def transaction(self) -> AbstractContextManager["Connection"]:
        """Unit of work shared with every repository on the same backend."""
        return self._backend.transaction()

    # ==================== Writes ====================

    def create_many(self, events: Iterable[ScheduleEvent]) -> None:
        self._backend.insert_schedule_events(events)

    def update_many(self, events: Iterable[ScheduleEvent]) -> None:
        self._backend.update_schedule_events(events)

    def set_enabled(self, event_id: str, enabled: bool) -> bool:
        return self._backend.set_schedule_event_enabled(event_id, enabled)

    def set_group_enabled(self, group_id: str, enabled: bool) -> int:
        return self._backend.set_schedule_group_enabled(group_id, enabled)

    def set_evaluation_note(self, event_ids: Iterable[str], note: str) -> None:
        self._backend.set_schedule_evaluation_note(event_ids, note)

    def delete_group(self, group_id: str) -> int:
        return self._backend.delete_schedule_group(group_id)

    def delete_events(self, event_ids: Iterable[str]) -> int:
        return self._backend.delete_schedule_events(event_ids)

    # ==================== Reads ====================

    def get_by_group(self, group_id: str) -> list[ScheduleEvent]:
        return self._backend.get_schedule_events_by_group(group_id)

    def list_by_user(self, user_id: str) -> list[ScheduleEvent]:
        return self._backend.get_schedule_events_by_user(user_id)

    def list_enabled(self) -> list[ScheduleEvent]:
        return self._backend.get_enabled_schedule_events()

    def list_user_ids(self) -> list[str]:
        return self._backend.get_schedule_user_ids()
