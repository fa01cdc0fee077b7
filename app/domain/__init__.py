"""
Domain Package
==============
Entities, value objects and pure rules of the backup-reserve scheduler.

Nothing in here touches the database, the device gateway or the clock
directly; callers pass those in.
"""

from .exceptions import (
    AccessDeniedError,
    ConfigurationError,
    DeviceApiError,
    EnergyScheduleError,
    ExternalServiceError,
    ForecastEvaluationError,
    NotFoundError,
    RepositoryError,
    ServiceError,
    ValidationError,
)

__all__ = [
    "EnergyScheduleError",
    "ValidationError",
    "AccessDeniedError",
    "NotFoundError",
    "ServiceError",
    "RepositoryError",
    "ExternalServiceError",
    "DeviceApiError",
    "ForecastEvaluationError",
    "ConfigurationError",
]
