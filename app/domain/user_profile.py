"""User profile state consumed by the weather planner."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class UserProfile:
    user_id: str
    zip_code: str | None = None
    forced_charging_active: bool = False

    @property
    def has_location(self) -> bool:
        return bool(self.zip_code and self.zip_code.strip())

    @staticmethod
    def from_row(row: dict[str, Any]) -> "UserProfile":
        return UserProfile(
            user_id=row["user_id"],
            zip_code=row.get("zip_code"),
            forced_charging_active=bool(row.get("forced_charging_active")),
        )
