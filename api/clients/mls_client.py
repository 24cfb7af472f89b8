from __future__ import annotations

from typing import Any, Dict, Optional

import requests

from config import MLS_API_HOST, MLS_API_KEY, MLS_TIMEOUT_SECS
from utils.errors import ConfigError, NotFoundError, UpstreamError


class MLSClient:
    """Thin RapidAPI wrapper for the property-search API."""

    def __init__(
        self,
        api_key: str = MLS_API_KEY,
        host: str = MLS_API_HOST,
        session: Optional[requests.Session] = None,
        timeout: float = MLS_TIMEOUT_SECS,
    ):
        self.api_key = api_key
        self.host = host
        self.base_url = f"https://{host}"
        self.session = session or requests.Session()
        self.timeout = timeout

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    def _headers(self) -> Dict[str, str]:
        return {
            "X-RapidAPI-Key": self.api_key,
            "X-RapidAPI-Host": self.host,
            "Accept": "application/json",
        }

    def request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
    ) -> Any:
        if not self.enabled:
            raise ConfigError("Real Estate API key is not configured.")
        resp = self.session.request(
            method,
            f"{self.base_url}{path}",
            params=params,
            json=json,
            headers=self._headers(),
            timeout=self.timeout,
        )
        if resp.status_code == 404:
            raise NotFoundError("Property not found")
        if resp.status_code >= 400:
            raise UpstreamError(f"MLS request failed: {resp.text}", resp.status_code, resp.text)
        return resp.json()

    def get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        return self.request("GET", path, params=params)

    def post(self, path: str, json: Optional[Dict[str, Any]] = None) -> Any:
        return self.request("POST", path, json=json)
