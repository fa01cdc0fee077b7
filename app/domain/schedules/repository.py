"""
Schedule Repository Protocols
=============================

Defines the interfaces for schedule event and history persistence.
The SQLite implementations live in ``infrastructure.database.repositories``.

Author: Sebastian Gomez
Date: January 2026
"""

from __future__ import annotations

from abc import abstractmethod
from contextlib import AbstractContextManager
from typing import Any, Iterable, Protocol

from app.domain.schedules.history import AuditRecord, ExecutionRecord
from app.domain.schedules.schedule_event import ScheduleEvent
from app.enums.schedules import AuditAction, ExecutionStatus


class ScheduleEventRepository(Protocol):
    """Protocol for schedule event persistence operations."""

    @abstractmethod
    def transaction(self) -> AbstractContextManager[Any]:
        """Unit of work; writes made inside commit or roll back together."""
        ...

    @abstractmethod
    def create_many(self, events: Iterable[ScheduleEvent]) -> None:
        """
        Insert new events in one unit of work.

        Args:
            events: Events with ids and group ids already assigned
        """
        ...

    @abstractmethod
    def get_by_group(self, group_id: str) -> list[ScheduleEvent]:
        """
        Get every event (permanent and temporary) of a group.

        Args:
            group_id: Schedule group ID

        Returns:
            Events of the group, empty if the group does not exist
        """
        ...

    @abstractmethod
    def list_by_user(self, user_id: str) -> list[ScheduleEvent]:
        """Get all events owned by a user."""
        ...

    @abstractmethod
    def list_enabled(self) -> list[ScheduleEvent]:
        """Get every enabled event across all users."""
        ...

    @abstractmethod
    def list_user_ids(self) -> list[str]:
        """Get the distinct owners of at least one event."""
        ...

    @abstractmethod
    def update_many(self, events: Iterable[ScheduleEvent]) -> None:
        """Persist changed events in one unit of work."""
        ...

    @abstractmethod
    def set_enabled(self, event_id: str, enabled: bool) -> bool:
        """
        Enable or disable a single event.

        Returns:
            True if updated, False if not found
        """
        ...

    @abstractmethod
    def set_group_enabled(self, group_id: str, enabled: bool) -> int:
        """Enable or disable every event in a group; returns rows changed."""
        ...

    @abstractmethod
    def set_evaluation_note(self, event_ids: Iterable[str], note: str) -> None:
        """Record the last weather evaluation outcome on the given events."""
        ...

    @abstractmethod
    def delete_group(self, group_id: str) -> int:
        """Delete every event in a group; returns rows deleted."""
        ...

    @abstractmethod
    def delete_events(self, event_ids: Iterable[str]) -> int:
        """Delete the given events; returns rows deleted."""
        ...


class ScheduleHistoryRepository(Protocol):
    """Protocol for the append-only execution history and audit trail."""

    @abstractmethod
    def log_execution(self, record: ExecutionRecord) -> None:
        ...

    @abstractmethod
    def log_audit(self, record: AuditRecord) -> None:
        ...

    @abstractmethod
    def get_execution_history(
        self,
        user_id: str,
        statuses: list[ExecutionStatus] | None = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> tuple[list[ExecutionRecord], int]:
        """
        Page through a user's execution history, newest first.

        Returns:
            (records, total matching rows)
        """
        ...

    @abstractmethod
    def get_audit_history(
        self,
        user_id: str,
        actions: list[AuditAction] | None = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> tuple[list[AuditRecord], int]:
        """
        Page through a user's audit events, newest first.

        Returns:
            (records, total matching rows)
        """
        ...
