"""
Service protocols (structural typing interfaces).

Protocols let the schedule jobs declare the *minimal* surface they depend on
without importing the concrete class, keeping the device gateway, the
forecast source and the lease backend swappable and tests trivially
mockable.

Usage
-----
In a consumer service::

    from __future__ import annotations
    from typing import TYPE_CHECKING
    if TYPE_CHECKING:
        from app.services.protocols import DeviceControl

    class ScheduleExecutor:
        def __init__(self, device: "DeviceControl", ...): ...

At runtime the concrete ``EnergyGatewayClient`` already satisfies both
``DeviceControl`` and ``ForecastEvaluator`` via structural subtyping; no
explicit inheritance needed.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import List, Optional, Protocol, runtime_checkable

from app.domain.user_profile import UserProfile


@dataclass(frozen=True)
class SolarForecast:
    """Forecast outcome for one user's location."""

    sunshine_percentage: int
    reason: str


@runtime_checkable
class DeviceControl(Protocol):
    """Read and write the battery's backup-reserve setpoint."""

    def get_backup_reserve_percent(self, user_id: str, site_id: str) -> int:
        """Return the current reserve percent.

        Raises:
            DeviceApiError: If the device cannot be read
        """
        ...

    def set_backup_reserve(self, user_id: str, site_id: str, percent: int) -> bool:
        """Request a new reserve percent; ``False`` if the device refused it."""
        ...

    def list_energy_sites(self, user_id: str) -> List[str]:
        """Return the site ids the user's account can control."""
        ...


@runtime_checkable
class ForecastEvaluator(Protocol):
    """Turns a user's location forecast into a sunshine percentage."""

    def evaluate(self, user_id: str) -> SolarForecast:
        """
        Raises:
            ForecastEvaluationError: If no forecast is available
        """
        ...


@runtime_checkable
class UserProfileStore(Protocol):
    """Per-user location and forced-charge state."""

    def get_profile(self, user_id: str) -> Optional[UserProfile]:
        ...

    def set_forced_charging_active(self, user_id: str, active: bool) -> None:
        ...

    def upsert_profile(self, profile: UserProfile) -> None:
        ...


@runtime_checkable
class LeaseProvider(Protocol):
    """Named cross-instance lease with max and min hold durations."""

    def acquire(self, job_name: str, max_hold: timedelta, min_hold: timedelta) -> bool:
        """Return True if this instance now holds ``job_name``."""
        ...

    def release(self, job_name: str) -> None:
        ...
