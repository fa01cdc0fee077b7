"""User profile state used by the weather planner."""

from __future__ import annotations

import logging
import sqlite3
from contextlib import AbstractContextManager
from typing import TYPE_CHECKING, Any

from app.domain.exceptions import RepositoryError

if TYPE_CHECKING:
    from sqlite3 import Connection

logger = logging.getLogger(__name__)


class UserProfileOperations:
    """UserProfiles helpers for database handlers."""

    def get_db(self) -> "Connection":
        raise NotImplementedError("Subclass must implement get_db()")

    def transaction(self) -> AbstractContextManager["Connection"]:
        raise NotImplementedError("Subclass must implement transaction()")

    def get_user_profile_row(self, user_id: str) -> dict[str, Any] | None:
        db = self.get_db()
        try:
            row = db.execute("SELECT * FROM UserProfiles WHERE user_id = ?", (user_id,)).fetchone()
            return dict(row) if row else None
        except sqlite3.Error as e:
            logger.error(f"Error reading profile for user {user_id}: {e}")
            raise RepositoryError("Failed to read user profile") from e

    def upsert_user_profile(self, user_id: str, zip_code: str | None, forced_charging_active: bool = False) -> None:
        try:
            with self.transaction() as db:
                db.execute(
                    """
                    INSERT INTO UserProfiles (user_id, zip_code, forced_charging_active)
                    VALUES (?, ?, ?)
                    ON CONFLICT(user_id) DO UPDATE SET
                        zip_code = excluded.zip_code,
                        forced_charging_active = excluded.forced_charging_active
                    """,
                    (user_id, zip_code, 1 if forced_charging_active else 0),
                )
        except sqlite3.Error as e:
            logger.error(f"Error saving profile for user {user_id}: {e}")
            raise RepositoryError("Failed to save user profile") from e

    def set_forced_charging_flag(self, user_id: str, active: bool) -> None:
        try:
            with self.transaction() as db:
                db.execute(
                    """
                    INSERT INTO UserProfiles (user_id, forced_charging_active) VALUES (?, ?)
                    ON CONFLICT(user_id) DO UPDATE SET forced_charging_active = excluded.forced_charging_active
                    """,
                    (user_id, 1 if active else 0),
                )
        except sqlite3.Error as e:
            logger.error(f"Error setting forced charging for user {user_id}: {e}")
            raise RepositoryError("Failed to update forced charging flag") from e
