"""
Job Lease Database Operations
=============================

Row-per-job leases giving single-runner semantics across instances that
share the database.

Acquire is a single conditional UPDATE (expired lease) falling back to an
INSERT OR IGNORE (first use); the affected row count decides the winner, so
two instances racing on the same tick cannot both succeed.

Author: Sebastian Gomez
Date: January 2026
"""

from __future__ import annotations

import logging
import sqlite3
from contextlib import AbstractContextManager
from typing import TYPE_CHECKING

from app.domain.exceptions import RepositoryError

if TYPE_CHECKING:
    from sqlite3 import Connection

logger = logging.getLogger(__name__)


class JobLeaseOperations:
    """JobLeases helpers for database handlers. Times are epoch seconds."""

    def get_db(self) -> "Connection":
        raise NotImplementedError("Subclass must implement get_db()")

    def transaction(self) -> AbstractContextManager["Connection"]:
        raise NotImplementedError("Subclass must implement transaction()")

    def try_acquire_lease(self, name: str, owner: str, now: float, lock_until: float) -> bool:
        try:
            with self.transaction() as db:
                cursor = db.execute(
                    """
                    UPDATE JobLeases SET lock_until = ?, locked_at = ?, locked_by = ?
                    WHERE name = ? AND lock_until <= ?
                    """,
                    (lock_until, now, owner, name, now),
                )
                if cursor.rowcount > 0:
                    return True
                cursor = db.execute(
                    "INSERT OR IGNORE INTO JobLeases (name, lock_until, locked_at, locked_by) VALUES (?, ?, ?, ?)",
                    (name, lock_until, now, owner),
                )
                return cursor.rowcount > 0
        except sqlite3.Error as e:
            logger.error(f"Error acquiring lease {name}: {e}")
            raise RepositoryError(f"Failed to acquire lease {name}") from e

    def release_lease(self, name: str, owner: str, now: float, min_hold_seconds: float) -> None:
        """Shorten the lease to ``max(now, locked_at + min_hold)`` if ``owner`` holds it."""
        try:
            with self.transaction() as db:
                db.execute(
                    """
                    UPDATE JobLeases SET lock_until = MAX(?, locked_at + ?)
                    WHERE name = ? AND locked_by = ?
                    """,
                    (now, min_hold_seconds, name, owner),
                )
        except sqlite3.Error as e:
            logger.error(f"Error releasing lease {name}: {e}")
            raise RepositoryError(f"Failed to release lease {name}") from e

    def get_lease_row(self, name: str) -> dict | None:
        db = self.get_db()
        try:
            row = db.execute("SELECT * FROM JobLeases WHERE name = ?", (name,)).fetchone()
            return dict(row) if row else None
        except sqlite3.Error as e:
            logger.error(f"Error reading lease {name}: {e}")
            raise RepositoryError(f"Failed to read lease {name}") from e
