from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import urlencode

import requests

from config import CRM_HTTP_TIMEOUT_SECS
from schemas.crm import Contact, CRMTask, TokenSet
from utils.errors import ConfigError, UpstreamError
from utils.time_helpers import now_ms, parse_iso

DEFAULT_EXPIRES_IN_SECS = 3600


@dataclass(frozen=True)
class ProviderConfig:
    id: str
    display_name: str
    authorize_url: str
    token_url: str
    api_base: str
    scope: str
    client_id: str = ""
    client_secret: str = ""

    def require_client_id(self) -> str:
        if not self.client_id:
            raise ConfigError(f"{self.display_name} client ID is not configured.")
        return self.client_id

    def require_credentials(self) -> None:
        if not self.client_id or not self.client_secret:
            raise ConfigError(f"{self.display_name} credentials are not configured.")


def _expires_at_ms(data: Dict[str, Any], now: int) -> int:
    if data.get("expires_in") is not None:
        return now + int(float(data["expires_in"]) * 1000)
    raw = data.get("expires_at")
    if isinstance(raw, (int, float)):
        # epoch seconds or millis
        return int(raw) if raw > 1e12 else int(raw * 1000)
    parsed = parse_iso(raw) if raw else None
    if parsed:
        return int(parsed.timestamp() * 1000)
    return now + DEFAULT_EXPIRES_IN_SECS * 1000


# =========================
# OAuth token endpoints
# =========================
class OAuthClient:
    """Authorize URL, code exchange and refresh against one provider's OAuth server."""

    def __init__(
        self,
        config: ProviderConfig,
        session: Optional[requests.Session] = None,
        timeout: float = CRM_HTTP_TIMEOUT_SECS,
        clock: Callable[[], int] = now_ms,
    ):
        self.config = config
        self.session = session or requests.Session()
        self.timeout = timeout
        self.clock = clock

    def authorize_url(self, user_id: str, redirect_uri: str) -> str:
        params = {
            "response_type": "code",
            "client_id": self.config.require_client_id(),
            "redirect_uri": redirect_uri,
            "state": user_id,
        }
        if self.config.scope:
            params["scope"] = self.config.scope
        return f"{self.config.authorize_url}?{urlencode(params)}"

    def exchange_code(self, code: str, redirect_uri: str) -> TokenSet:
        self.config.require_credentials()
        data = self._token_request({
            "grant_type": "authorization_code",
            "code": code,
            "client_id": self.config.client_id,
            "client_secret": self.config.client_secret,
            "redirect_uri": redirect_uri,
        }, "Token exchange")
        return self._token_set(data)

    def refresh(self, refresh_token: str) -> TokenSet:
        self.config.require_credentials()
        data = self._token_request({
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
            "client_id": self.config.client_id,
            "client_secret": self.config.client_secret,
        }, "Token refresh")
        # some providers do not rotate refresh tokens
        return self._token_set(data, fallback_refresh=refresh_token)

    def _token_request(self, form: Dict[str, str], action: str) -> Dict[str, Any]:
        resp = self.session.request(
            "POST",
            self.config.token_url,
            data=form,
            headers={"Accept": "application/json"},
            timeout=self.timeout,
        )
        if resp.status_code >= 400:
            raise UpstreamError(
                f"{self.config.display_name} {action.lower()} failed: {resp.text}",
                resp.status_code,
                resp.text,
            )
        return resp.json() or {}

    def _token_set(self, data: Dict[str, Any], fallback_refresh: str = "") -> TokenSet:
        access = data.get("access_token")
        if not access:
            raise UpstreamError(f"{self.config.display_name} token response had no access_token")
        return TokenSet(
            access_token=access,
            refresh_token=data.get("refresh_token") or fallback_refresh,
            expires_at=_expires_at_ms(data, self.clock()),
            token_type=data.get("token_type") or "Bearer",
            scope=data.get("scope"),
        )


# =========================
# Authenticated REST clients
# =========================
class CRMProvider:
    """
    Capability interface shared by every CRM integration.

    ``token_source`` returns a currently-valid access token; it is called once
    per request so that refresh happens on demand.
    """

    provider_id = ""
    requires_contact_for_task = True

    def __init__(
        self,
        config: ProviderConfig,
        token_source: Callable[[], str],
        session: Optional[requests.Session] = None,
        timeout: float = CRM_HTTP_TIMEOUT_SECS,
    ):
        self.config = config
        self.token_source = token_source
        self.session = session or requests.Session()
        self.timeout = timeout

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
    ) -> Any:
        token = self.token_source()
        resp = self.session.request(
            method,
            f"{self.config.api_base}{path}",
            params={k: v for k, v in (params or {}).items() if v is not None} or None,
            json=json,
            headers={
                "Authorization": f"Bearer {token}",
                "Content-Type": "application/json",
                "Accept": "application/json",
            },
            timeout=self.timeout,
        )
        if resp.status_code >= 400:
            raise UpstreamError(
                f"{self.config.display_name} API error: {resp.text}",
                resp.status_code,
                resp.text,
            )
        if resp.status_code == 204 or not resp.content:
            return {}
        return resp.json()

    @staticmethod
    def _items(data: Any, key: str) -> List[Dict[str, Any]]:
        if isinstance(data, dict):
            data = data.get(key)
        if not isinstance(data, list):
            return []
        # malformed entries are dropped
        return [item for item in data if isinstance(item, dict)]

    def create_contact(self, contact: Contact) -> str:
        raise NotImplementedError

    def update_contact(self, contact_id: str, updates: Dict[str, Any]) -> None:
        raise NotImplementedError

    def search_contacts(self, query: str) -> List[Contact]:
        raise NotImplementedError

    def get_contact(self, contact_id: str) -> Contact:
        raise NotImplementedError

    def add_note(self, contact_id: str, note: str) -> None:
        raise NotImplementedError

    def create_task(self, task: CRMTask) -> str:
        raise NotImplementedError

    def get_tasks(self, contact_id: Optional[str] = None) -> List[CRMTask]:
        raise NotImplementedError

    def complete_task(self, task_id: str) -> None:
        raise NotImplementedError
