"""Run a job body only while holding its cross-instance lease."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import TYPE_CHECKING, Callable, TypeVar

if TYPE_CHECKING:
    from app.services.protocols import LeaseProvider

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class LeaseSpec:
    name: str
    max_hold: timedelta
    min_hold: timedelta


EXECUTE_SCHEDULES_LEASE = LeaseSpec("execute_schedules", timedelta(minutes=2), timedelta(seconds=20))
RECONCILE_STATE_LEASE = LeaseSpec("reconcile_state", timedelta(minutes=10), timedelta(minutes=1))
RECONCILE_STARTUP_LEASE = LeaseSpec("reconcile_startup", timedelta(minutes=5), timedelta(0))
WEATHER_PLANNING_LEASE = LeaseSpec("weather_planning", timedelta(minutes=10), timedelta(minutes=1))


def run_under_lease(lease: "LeaseProvider | None", spec: LeaseSpec, body: Callable[[], T]) -> T | None:
    """
    Run ``body`` if the lease can be acquired.

    Returns:
        The body's result, or None when another instance holds the lease
    """
    if lease is None:
        return body()

    if not lease.acquire(spec.name, spec.max_hold, spec.min_hold):
        logger.debug("Skipping %s: lease held by another instance", spec.name)
        return None
    try:
        return body()
    finally:
        lease.release(spec.name)
