"""Classified errors for authentication, the VRChat API and ingestion."""

from __future__ import annotations

from typing import TYPE_CHECKING

from shared.models.audit_log import MalformedRecordError

if TYPE_CHECKING:
    from vrcban.core.ingest import IngestResult

__all__ = [
    "AuthError",
    "AuthRejectedError",
    "AuthorizationError",
    "MalformedRecordError",
    "SecondFactorFailedError",
    "StoreWriteError",
    "TransientNetworkError",
    "VRChatAPIError",
    "VRChatError",
]


class VRChatError(Exception):
    """Base class for every error raised by vrc-ban."""


# ==================== Authentication ====================


class AuthError(VRChatError):
    """Obtaining a session failed. Fatal for startup."""


class AuthRejectedError(AuthError):
    """Username/password were refused. Do not retry with the same credentials."""


class SecondFactorFailedError(AuthError):
    """The TOTP code was not accepted. Safe to retry in the next 30s window."""


# ==================== Remote API ====================


class AuthorizationError(VRChatError):
    """An API call was refused because the session is missing or expired."""


class TransientNetworkError(VRChatError):
    """Timeout, connection failure, rate limit or 5xx. Retry next cycle."""


class VRChatAPIError(VRChatError):
    """Unexpected non-success response from the VRChat API."""

    def __init__(self, status_code: int, message: str = "") -> None:
        self.status_code = status_code
        self.message = message
        super().__init__(f"HTTP {status_code}: {message}" if message else f"HTTP {status_code}")


# ==================== Storage ====================


class StoreWriteError(VRChatError):
    """Inserting into the log store failed partway through a page."""

    def __init__(self, message: str, partial: IngestResult | None = None) -> None:
        super().__init__(message)
        self.partial = partial
