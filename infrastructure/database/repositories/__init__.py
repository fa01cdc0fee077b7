"""Repository facades exposing typed accessors over low-level mixins.

Each repository wraps a ``SQLiteDatabaseHandler`` and converts rows to
domain objects::

    from infrastructure.database.repositories import ScheduleEventRepository
"""

from infrastructure.database.repositories.job_leases import LeaseManager
from infrastructure.database.repositories.schedule_events import ScheduleEventRepository
from infrastructure.database.repositories.schedule_history import ScheduleHistoryRepository
from infrastructure.database.repositories.user_profiles import UserProfileRepository

__all__ = [
    "ScheduleEventRepository",
    "ScheduleHistoryRepository",
    "UserProfileRepository",
    "LeaseManager",
]
