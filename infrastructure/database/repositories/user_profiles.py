"""SQLite-backed UserProfileStore."""

from __future__ import annotations

from typing import TYPE_CHECKING

from app.domain.user_profile import UserProfile

if TYPE_CHECKING:
    from infrastructure.database.sqlite_handler import SQLiteDatabaseHandler


class UserProfileRepository:
    def __init__(self, backend: "SQLiteDatabaseHandler") -> None:
        self._backend = backend

    def get_profile(self, user_id: str) -> UserProfile | None:
        row = self._backend.get_user_profile_row(user_id)
        return UserProfile.from_row(row) if row else None

    def upsert_profile(self, profile: UserProfile) -> None:
        self._backend.upsert_user_profile(profile.user_id, profile.zip_code, profile.forced_charging_active)

    def set_forced_charging_active(self, user_id: str, active: bool) -> None:
        self._backend.set_forced_charging_flag(user_id, active)
