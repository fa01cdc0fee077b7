"""Centralized exception hierarchy for the energy scheduler.

All domain and service exceptions inherit from :class:`EnergyScheduleError` so
that callers can catch a single base class when they need a broad safety net,
yet still match on specific subclasses where narrower handling is appropriate.

Each class carries the HTTP status an API layer should map it to.

Hierarchy
---------
::

    EnergyScheduleError (base, maps to 500)
    ├── ValidationError              (400, bad input from caller)
    ├── AccessDeniedError            (403, entity owned by another user)
    ├── NotFoundError                (404, entity does not exist)
    ├── ServiceError                 (500, business-logic failure)
    │   ├── RepositoryError          (500, database / persistence)
    │   └── ExternalServiceError     (502, third-party / network)
    │       ├── DeviceApiError       (502, battery gateway call failed)
    │       └── ForecastEvaluationError (502, forecast unavailable)
    └── ConfigurationError           (500, missing / invalid config)
"""

from __future__ import annotations


class EnergyScheduleError(Exception):
    """Base exception for all energy scheduler errors.

    Parameters
    ----------
    message:
        Human-readable description (logged server-side, **not** leaked to
        end users; they only see history and audit entries).
    detail:
        Optional machine-readable context dict attached to the error for
        structured logging.
    """

    http_status: int = 500

    def __init__(self, message: str = "", *, detail: dict | None = None) -> None:
        super().__init__(message)
        self.detail = detail or {}


# ── Client errors (4xx) ──────────────────────────────────────────────


class ValidationError(EnergyScheduleError):
    """Caller supplied invalid or incomplete input (HTTP 400)."""

    http_status: int = 400


class AccessDeniedError(EnergyScheduleError):
    """Entity belongs to a different user (HTTP 403)."""

    http_status: int = 403


class NotFoundError(EnergyScheduleError):
    """Requested entity does not exist or is malformed (HTTP 404)."""

    http_status: int = 404


# ── Server errors (5xx) ──────────────────────────────────────────────


class ServiceError(EnergyScheduleError):
    """Business-logic failure in a service method (HTTP 500)."""

    http_status: int = 500


class RepositoryError(ServiceError):
    """Database / persistence layer failure (HTTP 500)."""

    http_status: int = 500


class ExternalServiceError(ServiceError):
    """Third-party or network dependency failure (HTTP 502)."""

    http_status: int = 502


class DeviceApiError(ExternalServiceError):
    """Battery gateway rejected or failed a read/write call (HTTP 502)."""


class ForecastEvaluationError(ExternalServiceError):
    """Solar forecast could not be evaluated for a user (HTTP 502)."""


class ConfigurationError(EnergyScheduleError):
    """Missing or invalid application configuration (HTTP 500)."""

    http_status: int = 500
