"""
HTTP client for a running Heimdall server.

Used by the CLI subcommands; mirrors the JSON API one method per endpoint.
"""

import logging
from typing import Any, Dict, List, Optional

import requests

logger = logging.getLogger(__name__)


class ClientError(Exception):
    """The server could not be reached or answered with an error envelope."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class HeimdallClient:
    """Thin wrapper around the `{success, data, error}` envelope."""

    def __init__(self, base_url: str, timeout: float = 10.0, session: Optional[requests.Session] = None):
        if not base_url:
            raise ValueError("Missing base_url")
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def _request(self, method: str, path: str, body: Optional[Dict[str, Any]] = None) -> Any:
        url = f"{self.base_url}{path}"
        try:
            response = self.session.request(method, url, json=body, timeout=self.timeout)
        except requests.RequestException as e:
            raise ClientError(f"{method} {url} failed: {e}") from e

        try:
            payload = response.json()
        except ValueError:
            raise ClientError(
                f"{method} {url} returned non-JSON response ({response.status_code})",
                response.status_code,
            ) from None

        if not isinstance(payload, dict) or not payload.get("success"):
            error = payload.get("error") if isinstance(payload, dict) else None
            raise ClientError(error or f"{method} {url} failed ({response.status_code})", response.status_code)
        return payload.get("data")

    def get_devices(self) -> List[Dict[str, Any]]:
        return self._request("GET", "/api/devices") or []

    def get_device(self, device_id: str) -> Dict[str, Any]:
        return self._request("GET", f"/api/devices/{device_id}")

    def add_device(self, device: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("POST", "/api/devices", device)

    def update_device(self, device: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("PUT", f"/api/devices/{device['id']}", device)

    def delete_device(self, device_id: str) -> None:
        self._request("DELETE", f"/api/devices/{device_id}")

    def get_config(self) -> Dict[str, Any]:
        return self._request("GET", "/api/config")

    def update_config(self, config: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("PUT", "/api/config", config)

    def connect(self, device_id: str) -> Dict[str, Any]:
        return self._request("POST", f"/connect/{device_id}")

    def disconnect(self) -> None:
        self._request("POST", "/disconnect")

    def status(self) -> Dict[str, Any]:
        return self._request("GET", "/api/status")
