"""
Shared test fixtures for the energy schedule engine test suite.

Provides:
- In-memory SQLite database with all tables created
- Repository instances wired to the test database
- A FixedClock pinned to Monday 2026-01-05 14:00 UTC
- Fake device and forecast collaborators
- Job and store factories wired to the above
- Helpers for building schedule events and period requests

Usage:
    def test_example(store, seed):
        discharge, charge = seed.pair("u1", start_time="07:00", end_time="21:00")
        assert store.get_by_group_id(discharge.group_id, "u1").name == discharge.name
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any
from unittest.mock import MagicMock

import pytest

from app.domain.exceptions import DeviceApiError, ForecastEvaluationError
from app.domain.schedules.schedule_event import Permanent, ScheduleEvent, Temporary, new_id
from app.domain.user_profile import UserProfile
from app.enums.schedules import EventKind, ReconciliationMode, ScheduleKind
from app.services.application.schedule_store import ScheduleStore
from app.services.protocols import SolarForecast
from app.utils.time import FixedClock
from app.workers.schedule_executor import ScheduleExecutor
from app.workers.state_reconciler import StateReconciler
from app.workers.weather_planner import WeatherAwarePlanner

# ---------------------------------------------------------------------------
# Database & Repositories
# ---------------------------------------------------------------------------
from infrastructure.database.repositories.job_leases import LeaseManager
from infrastructure.database.repositories.schedule_events import ScheduleEventRepository
from infrastructure.database.repositories.schedule_history import ScheduleHistoryRepository
from infrastructure.database.repositories.user_profiles import UserProfileRepository
from infrastructure.database.sqlite_handler import SQLiteDatabaseHandler

# ---------------------------------------------------------------------------
# Logging: keep test output clean
# ---------------------------------------------------------------------------
logging.getLogger("infrastructure").setLevel(logging.WARNING)
logging.getLogger("app").setLevel(logging.WARNING)

# Monday
NOW = datetime(2026, 1, 5, 14, 0, tzinfo=timezone.utc)


# ========================== Fakes ==========================================


class FakeDevice:
    """In-memory DeviceControl recording every write."""

    def __init__(self) -> None:
        self.sites: dict[str, list[str]] = {}
        self.reserves: dict[tuple[str, str], int] = {}
        self.set_calls: list[tuple[str, str, int]] = []
        self.raise_for_users: set[str] = set()
        self.refuse_for_users: set[str] = set()
        self.unreadable_users: set[str] = set()

    def list_energy_sites(self, user_id: str) -> list[str]:
        return list(self.sites.get(user_id, []))

    def get_backup_reserve_percent(self, user_id: str, site_id: str) -> int:
        if user_id in self.unreadable_users:
            raise DeviceApiError("Gateway returned HTTP 503")
        return self.reserves[(user_id, site_id)]

    def set_backup_reserve(self, user_id: str, site_id: str, percent: int) -> bool:
        self.set_calls.append((user_id, site_id, percent))
        if user_id in self.raise_for_users:
            raise DeviceApiError("Gateway request failed: connection reset")
        if user_id in self.refuse_for_users:
            return False
        self.reserves[(user_id, site_id)] = percent
        return True


class FakeForecast:
    """ForecastEvaluator returning a configured sunshine percentage per user."""

    def __init__(self) -> None:
        self.sunshine: dict[str, int] = {}
        self.failing_users: set[str] = set()
        self.calls: list[str] = []

    def evaluate(self, user_id: str) -> SolarForecast:
        self.calls.append(user_id)
        if user_id in self.failing_users:
            raise ForecastEvaluationError("Forecast provider unavailable")
        return SolarForecast(sunshine_percentage=self.sunshine.get(user_id, 100), reason="Overcast all day")


# ========================== Database Fixtures ==============================


@pytest.fixture()
def db_handler():
    """In-memory SQLite database with all tables created.

    Each test gets a fresh database, nothing leaks between tests.
    """
    handler = SQLiteDatabaseHandler(":memory:")
    handler.create_tables()
    yield handler
    handler.close_db()


@pytest.fixture()
def db_connection(db_handler):
    """Raw sqlite3 connection for direct SQL in tests."""
    with db_handler.connection() as conn:
        yield conn


# ========================== Repository Fixtures ============================


@pytest.fixture()
def mock_audit_logger():
    """MagicMock standing in for the JSON audit log."""
    return MagicMock()


@pytest.fixture()
def event_repo(db_handler):
    return ScheduleEventRepository(db_handler)


@pytest.fixture()
def history_repo(db_handler, mock_audit_logger):
    return ScheduleHistoryRepository(db_handler, audit_logger=mock_audit_logger)


@pytest.fixture()
def profile_repo(db_handler):
    return UserProfileRepository(db_handler)


@pytest.fixture()
def clock():
    return FixedClock(NOW)


@pytest.fixture()
def lease_manager(db_handler, clock):
    return LeaseManager(db_handler, instance_id="test-instance", clock=clock)


# ========================== Collaborator Fixtures ==========================


@pytest.fixture()
def device():
    fake = FakeDevice()
    for user_id in ("u1", "u2"):
        fake.sites[user_id] = [f"site-{user_id}"]
    return fake


@pytest.fixture()
def forecast():
    return FakeForecast()


# ========================== Service Fixtures ===============================


@pytest.fixture()
def store(event_repo, history_repo, device, profile_repo, clock):
    return ScheduleStore(events=event_repo, history=history_repo, device=device, profiles=profile_repo, clock=clock)


@pytest.fixture()
def sleeps():
    """Delays requested by the executor's retry loop."""
    return []


@pytest.fixture()
def executor(event_repo, history_repo, device, clock, sleeps):
    return ScheduleExecutor(event_repo, history_repo, device, clock=clock, sleep=sleeps.append)


@pytest.fixture()
def reconciler(event_repo, history_repo, device, clock):
    return StateReconciler(event_repo, history_repo, device, clock=clock)


@pytest.fixture()
def planner(event_repo, history_repo, forecast, profile_repo, reconciler, clock):
    return WeatherAwarePlanner(event_repo, history_repo, forecast, profile_repo, reconciler, clock=clock)


# ========================== Builders =======================================


def build_period_request(**overrides: Any) -> dict[str, Any]:
    """07:00-21:00 every day in UTC, 20% on-peak / 80% off-peak."""
    request = {
        "name": "Daily Peak",
        "days_of_week": [0, 1, 2, 3, 4, 5, 6],
        "start_time": "07:00",
        "end_time": "21:00",
        "timezone": "UTC",
        "on_peak_backup_percent": 20,
        "off_peak_backup_percent": 80,
        "enabled": True,
        "reconciliation_mode": "continuous",
        "schedule_kind": "basic",
    }
    request.update(overrides)
    return request


@pytest.fixture()
def period_request():
    """Factory for valid period request dicts."""
    return build_period_request


def build_event(**overrides: Any) -> ScheduleEvent:
    fields: dict[str, Any] = {
        "group_id": "g1",
        "user_id": "u1",
        "site_id": "site-u1",
        "name": "Daily Peak",
        "days_of_week": [0, 1, 2, 3, 4, 5, 6],
        "timezone": "UTC",
        "scheduled_time": "07:00",
        "event_kind": EventKind.BEGIN_DISCHARGE,
        "backup_percent": 20,
        "enabled": True,
        "permanence": Permanent(),
        "reconciliation_mode": ReconciliationMode.CONTINUOUS,
        "schedule_kind": ScheduleKind.BASIC,
        "created_at": NOW,
        "updated_at": NOW,
    }
    fields.update(overrides)
    return ScheduleEvent(**fields)


@pytest.fixture()
def make_event():
    """Factory for ScheduleEvent objects (not persisted)."""
    return build_event


class ScheduleSeeder:
    """Insert schedule groups and profiles straight through the repositories."""

    def __init__(self, event_repo: ScheduleEventRepository, profile_repo: UserProfileRepository):
        self._events = event_repo
        self._profiles = profile_repo

    def pair(
        self,
        user_id: str = "u1",
        *,
        group_id: str | None = None,
        start_time: str = "07:00",
        end_time: str = "21:00",
        on_peak: int = 20,
        off_peak: int = 80,
        created_at: datetime = NOW,
        **common: Any,
    ) -> tuple[ScheduleEvent, ScheduleEvent]:
        group_id = group_id or new_id()
        shared = {"group_id": group_id, "user_id": user_id, "site_id": f"site-{user_id}", "created_at": created_at}
        shared.update(common)
        discharge = build_event(
            event_kind=EventKind.BEGIN_DISCHARGE, scheduled_time=start_time, backup_percent=on_peak, **shared
        )
        charge = build_event(
            event_kind=EventKind.BEGIN_CHARGE, scheduled_time=end_time, backup_percent=off_peak, **shared
        )
        self._events.create_many([discharge, charge])
        return discharge, charge

    def temporary(
        self,
        anchor: ScheduleEvent,
        *,
        kind: EventKind,
        percent: int,
        expires_at: datetime,
        enabled: bool = True,
        fire_at: datetime | None = None,
    ) -> ScheduleEvent:
        event = build_event(
            group_id=anchor.group_id,
            user_id=anchor.user_id,
            site_id=anchor.site_id,
            name=f"Temporary for {anchor.name}",
            event_kind=kind,
            backup_percent=percent,
            enabled=enabled,
            permanence=Temporary(expires_at=expires_at),
            schedule_kind=anchor.schedule_kind,
            timezone=anchor.timezone,
        )
        event.schedule_once(fire_at or (NOW + timedelta(minutes=5)))
        self._events.create_many([event])
        return event

    def profile(self, user_id: str = "u1", zip_code: str | None = "94103", forced: bool = False) -> UserProfile:
        profile = UserProfile(user_id=user_id, zip_code=zip_code, forced_charging_active=forced)
        self._profiles.upsert_profile(profile)
        return profile


@pytest.fixture()
def seed(event_repo, profile_repo):
    """Seeder bound to the test database.

    Example:
        def test_something(seed):
            discharge, charge = seed.pair("u1", on_peak=20, off_peak=80)
    """
    return ScheduleSeeder(event_repo, profile_repo)
