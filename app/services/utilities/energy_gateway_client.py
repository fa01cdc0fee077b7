"""
Energy Gateway Client
=====================

HTTP adapter for the energy gateway that fronts the battery vendor API and
the weather provider. The gateway already handles vendor authentication,
token refresh, geocoding and weather payload parsing; this client only
speaks its small JSON API.

Endpoints:
- GET  /users/{user}/sites
- GET  /users/{user}/sites/{site}/backup-reserve
- POST /users/{user}/sites/{site}/backup-reserve
- GET  /users/{user}/solar-forecast

Implements the DeviceControl and ForecastEvaluator protocols.

Author: Sebastian Gomez
Date: January 2026
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import requests

from app.domain.exceptions import DeviceApiError, ForecastEvaluationError
from app.services.protocols import SolarForecast

logger = logging.getLogger(__name__)


class EnergyGatewayClient:
    """Thin requests-based client for the energy gateway."""

    def __init__(
        self,
        base_url: str,
        api_token: Optional[str] = None,
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ):
        """
        Initialize gateway client.

        Args:
            base_url: Gateway root URL, e.g. ``http://localhost:8080/api``
            api_token: Bearer token sent on every request
            timeout: Per-request timeout in seconds
            session: Optional pre-configured session (tests, connection pooling)
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session = session or requests.Session()
        self._session.headers.setdefault("Accept", "application/json")
        if api_token:
            self._session.headers["Authorization"] = f"Bearer {api_token}"

        logger.info(f"EnergyGatewayClient initialized (base_url={self.base_url})")

    # --- DeviceControl ------------------------------------------------------------
    def list_energy_sites(self, user_id: str) -> List[str]:
        response = self._request("GET", f"/users/{user_id}/sites", DeviceApiError)
        payload = self._json(response, DeviceApiError)
        sites = payload.get("sites", []) if isinstance(payload, dict) else payload
        site_ids: List[str] = []
        for site in sites or []:
            if isinstance(site, dict):
                site_id = site.get("site_id") or site.get("id")
            else:
                site_id = site
            if site_id is not None:
                site_ids.append(str(site_id))
        return site_ids

    def get_backup_reserve_percent(self, user_id: str, site_id: str) -> int:
        response = self._request("GET", self._reserve_path(user_id, site_id), DeviceApiError)
        payload = self._json(response, DeviceApiError)
        try:
            return int(payload["backup_reserve_percent"])
        except (KeyError, TypeError, ValueError) as exc:
            raise DeviceApiError(
                "Gateway returned no backup reserve", detail={"user_id": user_id, "site_id": site_id}
            ) from exc

    def set_backup_reserve(self, user_id: str, site_id: str, percent: int) -> bool:
        """
        Request a new backup reserve.

        Returns:
            True if accepted, False if the device refused the command

        Raises:
            DeviceApiError: On transport errors or gateway 5xx responses
        """
        response = self._request(
            "POST",
            self._reserve_path(user_id, site_id),
            DeviceApiError,
            json={"backup_reserve_percent": int(percent)},
            allow_client_errors=True,
        )
        if 400 <= response.status_code < 500:
            logger.warning(
                f"Gateway refused backup reserve {percent}% for site {site_id}: HTTP {response.status_code}"
            )
            return False
        payload = self._json(response, DeviceApiError)
        return bool(payload.get("result", True)) if isinstance(payload, dict) else True

    # --- ForecastEvaluator --------------------------------------------------------
    def evaluate(self, user_id: str) -> SolarForecast:
        response = self._request("GET", f"/users/{user_id}/solar-forecast", ForecastEvaluationError)
        payload = self._json(response, ForecastEvaluationError)
        try:
            sunshine = int(round(float(payload["sunshine_percentage"])))
        except (KeyError, TypeError, ValueError) as exc:
            raise ForecastEvaluationError(
                "Forecast response has no sunshine percentage", detail={"user_id": user_id}
            ) from exc
        return SolarForecast(
            sunshine_percentage=max(0, min(100, sunshine)),
            reason=str(payload.get("reason") or "No reason given"),
        )

    def close(self) -> None:
        self._session.close()

    # --- Internals ----------------------------------------------------------------
    @staticmethod
    def _reserve_path(user_id: str, site_id: str) -> str:
        return f"/users/{user_id}/sites/{site_id}/backup-reserve"

    def _request(
        self,
        method: str,
        path: str,
        error_cls: type,
        *,
        json: Optional[Dict[str, Any]] = None,
        allow_client_errors: bool = False,
    ) -> requests.Response:
        url = f"{self.base_url}{path}"
        try:
            response = self._session.request(method, url, json=json, timeout=self.timeout)
        except requests.RequestException as exc:
            logger.error(f"Gateway {method} {path} failed: {exc}")
            raise error_cls(f"Gateway request failed: {exc}", detail={"path": path}) from exc

        if allow_client_errors and 400 <= response.status_code < 500:
            return response
        try:
            response.raise_for_status()
        except requests.HTTPError as exc:
            logger.error(f"Gateway {method} {path} returned HTTP {response.status_code}")
            raise error_cls(
                f"Gateway returned HTTP {response.status_code}",
                detail={"path": path, "status": response.status_code},
            ) from exc
        return response

    @staticmethod
    def _json(response: requests.Response, error_cls: type) -> Any:
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as exc:
            raise error_cls("Gateway returned invalid JSON") from exc
