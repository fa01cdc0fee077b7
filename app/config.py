"""
Configuration for the Energy Reserve Scheduler
==============================================
Runtime settings for the schedule jobs, the device gateway and persistence.
Every value can be overridden through an ``ENERGY_*`` environment variable.
Sets up the logging configuration as well.
"""

import os
from contextlib import suppress
from dataclasses import dataclass, field
from typing import Any

from app.domain.exceptions import ConfigurationError


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.lower() in {"1", "true", "t", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        raise ConfigurationError(f"Environment variable {name} must be an integer.") from None


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        raise ConfigurationError(f"Environment variable {name} must be a number.") from None


@dataclass
class AppConfig:
    """Runtime configuration loaded from environment variables."""

    environment: str = field(default_factory=lambda: os.getenv("ENERGY_ENV", "development"))
    database_path: str = field(default_factory=lambda: os.getenv("ENERGY_DATABASE_PATH", "database/energy.db"))

    DEBUG: bool = field(default_factory=lambda: _env_bool("ENERGY_DEBUG", False))
    log_level: str = field(default_factory=lambda: os.getenv("ENERGY_LOG_LEVEL", "INFO"))
    log_file: str = field(default_factory=lambda: os.getenv("ENERGY_LOG_FILE", "logs/energy.log"))
    audit_log_path: str = field(default_factory=lambda: os.getenv("ENERGY_AUDIT_LOG_PATH", "logs/audit.log"))

    # Job cadence
    execute_interval_seconds: int = field(default_factory=lambda: _env_int("ENERGY_EXECUTE_INTERVAL", 60))
    reconcile_interval_seconds: int = field(default_factory=lambda: _env_int("ENERGY_RECONCILE_INTERVAL", 900))
    weather_interval_seconds: int = field(default_factory=lambda: _env_int("ENERGY_WEATHER_INTERVAL", 3600))
    reconcile_on_startup: bool = field(default_factory=lambda: _env_bool("ENERGY_RECONCILE_ON_STARTUP", True))
    scheduler_max_workers: int = field(default_factory=lambda: _env_int("ENERGY_SCHEDULER_MAX_WORKERS", 4))

    # Executor retries
    retry_max_attempts: int = field(default_factory=lambda: _env_int("ENERGY_RETRY_MAX_ATTEMPTS", 3))
    retry_base_delay_ms: int = field(default_factory=lambda: _env_int("ENERGY_RETRY_BASE_DELAY_MS", 1000))

    # Job leases; empty means hostname:pid:random
    instance_id: str = field(default_factory=lambda: os.getenv("ENERGY_INSTANCE_ID", ""))

    # Device / forecast gateway
    gateway_base_url: str = field(default_factory=lambda: os.getenv("ENERGY_GATEWAY_URL", "http://localhost:8080"))
    gateway_api_token: str = field(default_factory=lambda: os.getenv("ENERGY_GATEWAY_TOKEN", ""))
    gateway_timeout_seconds: float = field(default_factory=lambda: _env_float("ENERGY_GATEWAY_TIMEOUT", 10.0))

    def as_flask_config(self) -> dict[str, Any]:
        """Render configuration values for the Flask application."""
        return {
            "ENV": self.environment,
            "DATABASE_PATH": self.database_path,
            "AUDIT_LOG_PATH": self.audit_log_path,
            "DEBUG": self.DEBUG,
        }


def validate_config(config: AppConfig) -> list[str]:
    """
    Validate configuration and return a list of problems.

    Args:
        config: AppConfig instance

    Returns:
        List of error messages (empty if all valid)
    """
    errors = []

    if config.execute_interval_seconds != 60:
        errors.append(
            f"Execute interval ({config.execute_interval_seconds}s) must be 60s; "
            "schedule triggers have minute resolution"
        )
    if config.reconcile_interval_seconds < 60:
        errors.append(f"Reconcile interval ({config.reconcile_interval_seconds}s) must be at least 60s")
    if config.weather_interval_seconds < 60:
        errors.append(f"Weather interval ({config.weather_interval_seconds}s) must be at least 60s")
    if config.retry_max_attempts < 1:
        errors.append(f"Retry attempts ({config.retry_max_attempts}) must be at least 1")
    if config.retry_base_delay_ms < 0:
        errors.append(f"Retry base delay ({config.retry_base_delay_ms}ms) cannot be negative")
    if config.scheduler_max_workers < 1:
        errors.append(f"Scheduler workers ({config.scheduler_max_workers}) must be at least 1")
    if config.gateway_timeout_seconds <= 0:
        errors.append(f"Gateway timeout ({config.gateway_timeout_seconds}s) must be positive")
    if not config.gateway_base_url.startswith(("http://", "https://")):
        errors.append(f"Gateway URL must be http(s): {config.gateway_base_url!r}")

    return errors


def setup_logging(debug: bool = False, log_file: str = "logs/energy.log", level: str | None = None) -> None:
    """Setup logging configuration."""
    import logging
    import sys
    from logging.handlers import RotatingFileHandler

    if debug:
        log_level = logging.DEBUG
    else:
        log_level = logging.getLevelName((level or "INFO").upper())
        if not isinstance(log_level, int):
            log_level = logging.INFO

    # Root logger
    root = logging.getLogger()
    root.setLevel(log_level)

    # Avoid adding duplicates when setup runs more than once per process
    has_console = any(getattr(h, "name", "") == "energy_console" for h in root.handlers)
    has_file = any(getattr(h, "name", "") == "energy_file" for h in root.handlers)
    added_handler = False

    stream = sys.stdout
    with suppress(AttributeError, ValueError):
        stream.reconfigure(encoding="utf-8", errors="replace")
    formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    if not has_console:
        console_handler = logging.StreamHandler(stream=stream)
        console_handler.name = "energy_console"
        console_handler.setLevel(log_level)
        console_handler.setFormatter(formatter)
        root.addHandler(console_handler)
        added_handler = True

    if not has_file and log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=10 * 1024 * 1024,
            backupCount=5,
            encoding="utf-8",
        )
        file_handler.name = "energy_file"
        file_handler.setLevel(log_level)
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)
        added_handler = True

    for handler in root.handlers:
        if getattr(handler, "name", "") in {"energy_console", "energy_file"}:
            handler.setLevel(log_level)

    if added_handler:
        root.info(f"Logging initialized at level: {logging.getLevelName(log_level)}")

    # Every gateway call would otherwise log a connection line
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    if _env_bool("ENERGY_SILENCE_WERKZEUG", True):
        logging.getLogger("werkzeug").setLevel(logging.WARNING)


def load_config() -> AppConfig:
    """Helper for callers to load and validate configuration."""
    config = AppConfig()
    errors = validate_config(config)
    if errors:
        raise ConfigurationError("Invalid configuration", detail={"errors": errors})
    return config
