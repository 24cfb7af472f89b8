from __future__ import annotations

from typing import Optional


class ServiceError(Exception):
    def __init__(self, message: str, status: int = 400, code: str = "bad_request"):
        super().__init__(message)
        self.message = message
        self.status = status
        self.code = code


class ValidationError(ServiceError):
    def __init__(self, message: str):
        super().__init__(message, 400, "bad_request")


class NotFoundError(ServiceError):
    def __init__(self, message: str):
        super().__init__(message, 404, "not_found")


class NotConnectedError(ServiceError):
    """No credential record exists for (user, provider)."""

    def __init__(self, provider: str):
        super().__init__(f"{provider} is not connected for this user.", 409, "not_connected")
        self.provider = provider


class ReauthRequiredError(ServiceError):
    """Token refresh failed; the user has to redo the OAuth flow."""

    def __init__(self, provider: str):
        super().__init__(
            f"Failed to refresh {provider} authentication. Please reconnect your account.",
            401,
            "reauth_required",
        )
        self.provider = provider


class UpstreamError(ServiceError):
    """Non-2xx answer from a third-party API; body text is passed through."""

    def __init__(self, message: str, upstream_status: Optional[int] = None, body: str = ""):
        super().__init__(message, 502, "upstream_error")
        self.upstream_status = upstream_status
        self.body = body


class ConfigError(ServiceError):
    def __init__(self, message: str):
        super().__init__(message, 500, "config_error")


class StorageError(ServiceError):
    def __init__(self, message: str):
        super().__init__(message, 500, "storage_error")
