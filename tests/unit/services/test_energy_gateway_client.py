"""Tests for the energy gateway HTTP client using a mocked requests session."""

from __future__ import annotations

import json
from unittest.mock import MagicMock

import pytest
import requests

from app.domain.exceptions import DeviceApiError, ForecastEvaluationError
from app.services.utilities.energy_gateway_client import EnergyGatewayClient


def _response(status: int = 200, payload=None) -> requests.Response:
    response = requests.Response()
    response.status_code = status
    response._content = json.dumps(payload).encode() if payload is not None else b""
    response.url = "http://gateway.test"
    return response


@pytest.fixture()
def session():
    mock = MagicMock()
    mock.headers = {}
    return mock


@pytest.fixture()
def client(session):
    return EnergyGatewayClient("http://gateway.test/api/", api_token="secret", timeout=3.0, session=session)


def test_headers_and_url(client, session):
    session.request.return_value = _response(payload={"sites": []})

    client.list_energy_sites("u1")

    assert session.headers["Authorization"] == "Bearer secret"
    session.request.assert_called_once_with(
        "GET", "http://gateway.test/api/users/u1/sites", json=None, timeout=3.0
    )


def test_list_energy_sites_accepts_objects_and_ids(client, session):
    session.request.return_value = _response(payload={"sites": [{"site_id": 11}, {"id": "b"}, "c", {}]})
    assert client.list_energy_sites("u1") == ["11", "b", "c"]


def test_get_backup_reserve(client, session):
    session.request.return_value = _response(payload={"backup_reserve_percent": 35})
    assert client.get_backup_reserve_percent("u1", "s1") == 35


def test_get_backup_reserve_missing_field(client, session):
    session.request.return_value = _response(payload={})
    with pytest.raises(DeviceApiError):
        client.get_backup_reserve_percent("u1", "s1")


def test_set_backup_reserve_success(client, session):
    session.request.return_value = _response(payload={"result": True})

    assert client.set_backup_reserve("u1", "s1", 40) is True
    session.request.assert_called_once_with(
        "POST",
        "http://gateway.test/api/users/u1/sites/s1/backup-reserve",
        json={"backup_reserve_percent": 40},
        timeout=3.0,
    )


def test_set_backup_reserve_refused(client, session):
    session.request.return_value = _response(422, {"error": "out of range"})
    assert client.set_backup_reserve("u1", "s1", 40) is False


def test_set_backup_reserve_result_false(client, session):
    session.request.return_value = _response(payload={"result": False})
    assert client.set_backup_reserve("u1", "s1", 40) is False


def test_server_error_raises(client, session):
    session.request.return_value = _response(503)

    with pytest.raises(DeviceApiError) as exc:
        client.set_backup_reserve("u1", "s1", 40)

    assert exc.value.detail["status"] == 503


def test_transport_error_raises(client, session):
    session.request.side_effect = requests.ConnectionError("connection refused")

    with pytest.raises(DeviceApiError):
        client.get_backup_reserve_percent("u1", "s1")


def test_forecast_is_clamped(client, session):
    session.request.return_value = _response(payload={"sunshine_percentage": 112.4, "reason": "Clear"})

    forecast = client.evaluate("u1")

    assert forecast.sunshine_percentage == 100
    assert forecast.reason == "Clear"


def test_forecast_default_reason(client, session):
    session.request.return_value = _response(payload={"sunshine_percentage": 41.6})

    forecast = client.evaluate("u1")

    assert forecast.sunshine_percentage == 42
    assert forecast.reason == "No reason given"


def test_forecast_errors_use_forecast_exception(client, session):
    session.request.return_value = _response(payload={"reason": "?"})
    with pytest.raises(ForecastEvaluationError):
        client.evaluate("u1")

    session.request.return_value = _response(500)
    with pytest.raises(ForecastEvaluationError):
        client.evaluate("u1")


def test_close_closes_session(client, session):
    client.close()
    session.close.assert_called_once()
