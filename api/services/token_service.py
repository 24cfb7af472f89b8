from __future__ import annotations

import threading
from typing import Any, Callable, Dict, List, Optional

import requests

from clients.crm.base import OAuthClient, ProviderConfig
from config import APP_BASE_URL, log
from schemas.crm import CredentialRecord
from storage.credential_store import CredentialStore
from storage.user_store import UserStore
from utils.errors import NotConnectedError, ReauthRequiredError, ServiceError, ValidationError
from utils.observability import log_event
from utils.time_helpers import now_ms

# Refresh this long before the provider's stated expiry.
BUFFER_MS = 5 * 60 * 1000

# Refresh locks are striped by (user, provider) hash; the pool never grows.
LOCK_STRIPES = 64


def redirect_uri_for(provider: str, base_url: str = APP_BASE_URL) -> str:
    return f"{base_url}/crm/{provider}/callback"


class TokenManager:
    """
    Hands out valid access tokens for (user, provider), refreshing on demand,
    and owns the OAuth connect / disconnect lifecycle.
    """

    def __init__(
        self,
        credentials: CredentialStore,
        users: UserStore,
        oauth_clients: Dict[str, OAuthClient],
        *,
        clock: Callable[[], int] = now_ms,
        base_url: str = APP_BASE_URL,
    ):
        self.credentials = credentials
        self.users = users
        self.oauth_clients = oauth_clients
        self.clock = clock
        self.base_url = base_url
        self._locks: List[threading.Lock] = [threading.Lock() for _ in range(LOCK_STRIPES)]

    # =========================
    # Lookup helpers
    # =========================
    def oauth_client(self, provider: str) -> OAuthClient:
        client = self.oauth_clients.get(provider)
        if client is None:
            raise ValidationError(f"Unsupported CRM provider: {provider}")
        return client

    def provider_config(self, provider: str) -> ProviderConfig:
        return self.oauth_client(provider).config

    def _lock_for(self, user_id: str, provider: str) -> threading.Lock:
        return self._locks[hash((user_id, provider)) % LOCK_STRIPES]

    def _is_fresh(self, record: CredentialRecord) -> bool:
        return self.clock() < record.expires_at - BUFFER_MS

    # =========================
    # Token guard
    # =========================
    def get_valid_access_token(self, user_id: str, provider: str) -> str:
        client = self.oauth_client(provider)
        record = self.credentials.get(user_id, provider)
        if record is None or not record.access_token or not record.refresh_token:
            raise NotConnectedError(client.config.display_name)

        if self._is_fresh(record):
            return self.credentials.access_token(record)

        with self._lock_for(user_id, provider):
            # another caller may have refreshed while we waited
            record = self.credentials.get(user_id, provider)
            if record is None:
                raise NotConnectedError(client.config.display_name)
            if self._is_fresh(record):
                return self.credentials.access_token(record)

            try:
                tokens = client.refresh(self.credentials.refresh_token(record))
                self.credentials.save(user_id, provider, tokens)
            except (ServiceError, requests.RequestException, ValueError) as e:
                log_event(
                    "crm_token",
                    "refresh failed",
                    user_id=user_id,
                    provider=provider,
                    level="warning",
                    data={"error": str(e)},
                )
                raise ReauthRequiredError(client.config.display_name) from e

        log_event("crm_token", "refreshed", user_id=user_id, provider=provider,
                  data={"expires_at": tokens.expires_at})
        return tokens.access_token

    def token_source(self, user_id: str, provider: str) -> Callable[[], str]:
        return lambda: self.get_valid_access_token(user_id, provider)

    # =========================
    # OAuth lifecycle
    # =========================
    def authorize_url(self, provider: str, user_id: str) -> str:
        if not user_id:
            raise ValidationError("Missing user_id")
        return self.oauth_client(provider).authorize_url(user_id, redirect_uri_for(provider, self.base_url))

    def complete_oauth(self, provider: str, code: Optional[str], state: Optional[str]) -> Dict[str, Any]:
        """Callback handler. Never raises; failures come back as ``success: False``."""
        if not code or not state:
            return {"success": False, "message": "Missing authorization code or state."}
        user_id = state
        try:
            client = self.oauth_client(provider)
            tokens = client.exchange_code(code, redirect_uri_for(provider, self.base_url))
            self.credentials.save(user_id, provider, tokens)
            self.users.set_crm_connected(user_id, provider, True)
        except ServiceError as e:
            log_event("crm_oauth", "connect failed", user_id=user_id, provider=provider,
                      level="warning", data={"error": e.message})
            return {"success": False, "message": e.message}
        except Exception:
            log.exception("OAuth callback error for %s", provider)
            return {"success": False, "message": "Failed to connect CRM. Please try again."}

        log_event("crm_oauth", "connected", user_id=user_id, provider=provider)
        return {
            "success": True,
            "message": f"{client.config.display_name} connected successfully.",
            "provider": provider,
        }

    def disconnect(self, user_id: str, provider: str) -> Dict[str, Any]:
        self.oauth_client(provider)
        removed = self.credentials.delete(user_id, provider)
        self.users.set_crm_connected(user_id, provider, False)
        log_event("crm_oauth", "disconnected", user_id=user_id, provider=provider)
        return {"provider": provider, "removed": removed}

    def connection_status(self, user_id: str) -> Dict[str, Any]:
        flagged = set(self.users.connected_providers(user_id))
        out = {}
        for provider, client in self.oauth_clients.items():
            record = self.credentials.get(user_id, provider)
            out[provider] = {
                "name": client.config.display_name,
                "connected": provider in flagged and record is not None,
                "connected_at": record.connected_at if record else None,
                "expires_at": record.expires_at if record else None,
            }
        return out
