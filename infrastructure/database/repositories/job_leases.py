"""
Job Lease Manager
=================

SQLite-backed LeaseProvider.

- max_hold: the lease expires on its own if the holder dies mid-run
- min_hold: on release the lease is kept until ``locked_at + min_hold`` so a
  second instance ticking a few seconds late does not run the same job again

Author: Sebastian Gomez
Date: January 2026
"""

from __future__ import annotations

import logging
import os
import socket
import uuid
from contextlib import contextmanager
from datetime import timedelta
from typing import TYPE_CHECKING, Iterator

from app.utils.time import Clock, SystemClock

if TYPE_CHECKING:
    from infrastructure.database.sqlite_handler import SQLiteDatabaseHandler

logger = logging.getLogger(__name__)


def default_instance_id() -> str:
    return f"{socket.gethostname()}:{os.getpid()}:{uuid.uuid4().hex[:8]}"


class LeaseManager:
    """Acquire and release named job leases shared through the database."""

    def __init__(
        self,
        backend: "SQLiteDatabaseHandler",
        instance_id: str | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._backend = backend
        self.instance_id = instance_id or default_instance_id()
        self._clock = clock or SystemClock()
        self._min_holds: dict[str, timedelta] = {}

    def acquire(self, job_name: str, max_hold: timedelta, min_hold: timedelta) -> bool:
        now = self._clock.now().timestamp()
        acquired = self._backend.try_acquire_lease(
            job_name,
            self.instance_id,
            now,
            now + max_hold.total_seconds(),
        )
        if acquired:
            self._min_holds[job_name] = min_hold
            logger.debug("Lease %s acquired by %s", job_name, self.instance_id)
        else:
            logger.debug("Lease %s is held by another instance", job_name)
        return acquired

    def release(self, job_name: str) -> None:
        min_hold = self._min_holds.pop(job_name, timedelta(0))
        self._backend.release_lease(
            job_name,
            self.instance_id,
            self._clock.now().timestamp(),
            min_hold.total_seconds(),
        )
        logger.debug("Lease %s released by %s", job_name, self.instance_id)

    @contextmanager
    def hold(self, job_name: str, max_hold: timedelta, min_hold: timedelta) -> Iterator[bool]:
        """
        Context manager yielding whether the lease was acquired.

        The lease is released on exit only if it was acquired.
        """
        acquired = self.acquire(job_name, max_hold, min_hold)
        try:
            yield acquired
        finally:
            if acquired:
                self.release(job_name)
