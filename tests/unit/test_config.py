"""Tests for environment-driven configuration and its validation."""

import pytest

from app.config import AppConfig, load_config, validate_config
from app.domain.exceptions import ConfigurationError


def test_defaults_are_valid(monkeypatch):
    for name in ("ENERGY_EXECUTE_INTERVAL", "ENERGY_RECONCILE_INTERVAL", "ENERGY_GATEWAY_URL"):
        monkeypatch.delenv(name, raising=False)

    config = AppConfig()

    assert config.execute_interval_seconds == 60
    assert config.reconcile_interval_seconds == 900
    assert config.weather_interval_seconds == 3600
    assert validate_config(config) == []


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("ENERGY_RECONCILE_INTERVAL", "300")
    monkeypatch.setenv("ENERGY_RECONCILE_ON_STARTUP", "false")
    monkeypatch.setenv("ENERGY_GATEWAY_TIMEOUT", "2.5")
    monkeypatch.setenv("ENERGY_INSTANCE_ID", "node-1")

    config = AppConfig()

    assert config.reconcile_interval_seconds == 300
    assert config.reconcile_on_startup is False
    assert config.gateway_timeout_seconds == 2.5
    assert config.instance_id == "node-1"


def test_non_numeric_value_is_rejected(monkeypatch):
    monkeypatch.setenv("ENERGY_RETRY_MAX_ATTEMPTS", "three")
    with pytest.raises(ConfigurationError):
        AppConfig()


def test_validation_collects_every_problem():
    config = AppConfig(
        execute_interval_seconds=30,
        retry_max_attempts=0,
        gateway_base_url="ftp://gateway",
    )

    errors = validate_config(config)

    assert len(errors) == 3
    assert any("minute resolution" in e for e in errors)


def test_load_config_raises_on_invalid(monkeypatch):
    monkeypatch.setenv("ENERGY_EXECUTE_INTERVAL", "120")

    with pytest.raises(ConfigurationError) as exc:
        load_config()

    assert exc.value.detail["errors"]


def test_flask_config_rendering():
    config = AppConfig(environment="testing", database_path=":memory:", DEBUG=True)
    assert config.as_flask_config() == {
        "ENV": "testing",
        "DATABASE_PATH": ":memory:",
        "AUDIT_LOG_PATH": config.audit_log_path,
        "DEBUG": True,
    }
