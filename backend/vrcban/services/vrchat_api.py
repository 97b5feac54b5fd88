"""VRChat API client service.

Two clients share one ``httpx.AsyncClient``:
- ``VRChatAuth``: login / TOTP verification / session probe. Used only by
  the session manager.
- ``VRChatClient``: group audit logs, membership, bans and user lookups,
  authenticated with the session manager's current session.

Session cookies are carried explicitly in the ``Cookie`` header; the shared
client's cookie jar refuses every cookie so nothing leaks between sessions.
Errors are classified (see ``vrcban.core.errors``) and never retried here.
"""

from __future__ import annotations

import base64
import logging
from dataclasses import dataclass
from http.cookiejar import CookieJar, DefaultCookiePolicy
from typing import Any, Protocol
from urllib.parse import quote

import httpx

from shared.models.audit_log import (
    AuditLogEntry,
    AuditLogPage,
    MalformedRecordError,
    parse_timestamp,
)
from shared.models.session import GroupMember, Session, UserProfile
from vrcban.core.config import MAX_PAGE_SIZE, VRCHAT_API_BASE
from vrcban.core.errors import (
    AuthorizationError,
    AuthRejectedError,
    SecondFactorFailedError,
    TransientNetworkError,
    VRChatAPIError,
)

logger = logging.getLogger(__name__)

AUTH_COOKIE = "auth"
TWO_FACTOR_COOKIE = "twoFactorAuth"


def create_http_client(
    user_agent: str,
    api_base: str = VRCHAT_API_BASE,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """Build the shared HTTP client. VRChat rejects requests without a User-Agent."""
    return httpx.AsyncClient(
        base_url=api_base,
        headers={"User-Agent": user_agent},
        cookies=CookieJar(policy=DefaultCookiePolicy(allowed_domains=[])),
        timeout=10.0,
        transport=transport,
    )


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict):
            return str(error.get("message", ""))
        if error:
            return str(error)
    return ""


def _raise_for_status(response: httpx.Response) -> None:
    """Map a non-2xx response onto the error classification."""
    status = response.status_code
    if 200 <= status < 300:
        return
    message = _error_message(response)
    if status in (401, 403):
        raise AuthorizationError(f"HTTP {status}: {message}" if message else f"HTTP {status}")
    if status == 429 or status >= 500:
        raise TransientNetworkError(f"HTTP {status}: {message}" if message else f"HTTP {status}")
    raise VRChatAPIError(status, message)


def _json(response: httpx.Response) -> Any:
    """Decode a success body; an unparseable one (e.g. a proxy error page) is an API error."""
    try:
        return response.json()
    except ValueError as e:
        raise VRChatAPIError(
            response.status_code, f"undecodable response body: {response.text[:80]!r}"
        ) from e


async def _send(
    http: httpx.AsyncClient,
    method: str,
    path: str,
    *,
    session: Session | None = None,
    headers: dict[str, str] | None = None,
    **kwargs: Any,
) -> httpx.Response:
    """Issue one request, converting transport failures to ``TransientNetworkError``."""
    headers = dict(headers or {})
    if session is not None:
        headers["Cookie"] = session.cookie_header()
    try:
        return await http.request(method, path, headers=headers, **kwargs)
    except httpx.TimeoutException as e:
        raise TransientNetworkError(f"{method} {path} timed out") from e
    except httpx.TransportError as e:
        raise TransientNetworkError(f"{method} {path} failed: {type(e).__name__}: {e}") from e


# ------------------------------------------------------------------
# Authentication
# ------------------------------------------------------------------


@dataclass
class LoginResult:
    """Result of a username/password login."""

    token: str
    requires_second_factor: bool = False


class AuthBackend(Protocol):
    async def login(self, username: str, password: str) -> LoginResult: ...

    async def verify_totp(self, token: str, code: str) -> str: ...

    async def probe(self, session: Session) -> bool: ...


class VRChatAuth:
    """VRChat authentication endpoints."""

    def __init__(self, http: httpx.AsyncClient) -> None:
        self._http = http

    async def login(self, username: str, password: str) -> LoginResult:
        """Log in with HTTP Basic credentials and return the ``auth`` cookie."""
        basic = base64.b64encode(
            f"{quote(username, safe='')}:{quote(password, safe='')}".encode()
        ).decode()
        response = await _send(
            self._http, "GET", "/auth/user", headers={"Authorization": f"Basic {basic}"}
        )
        if response.status_code in (401, 403):
            raise AuthRejectedError(f"VRChat rejected credentials for {username}")
        _raise_for_status(response)

        token = response.cookies.get(AUTH_COOKIE)
        if not token:
            raise VRChatAPIError(response.status_code, "login response carried no auth cookie")

        factors = _json(response).get("requiresTwoFactorAuth") or []
        if factors and "totp" not in factors:
            raise AuthRejectedError(f"Unsupported second factor(s) required: {factors}")

        logger.debug(f"Logged in as {username} (second factor required: {bool(factors)})")
        return LoginResult(token=token, requires_second_factor=bool(factors))

    async def verify_totp(self, token: str, code: str) -> str:
        """Submit a TOTP code; return the ``twoFactorAuth`` cookie."""
        response = await _send(
            self._http,
            "POST",
            "/auth/twofactorauth/totp/verify",
            headers={"Cookie": f"{AUTH_COOKIE}={token}"},
            json={"code": code},
        )
        if response.status_code in (400, 401):
            raise SecondFactorFailedError(f"TOTP code rejected: {_error_message(response)}")
        _raise_for_status(response)

        if not _json(response).get("verified", False):
            raise SecondFactorFailedError("TOTP code not verified")

        second_factor_token = response.cookies.get(TWO_FACTOR_COOKIE)
        if not second_factor_token:
            raise SecondFactorFailedError("verification carried no twoFactorAuth cookie")
        return second_factor_token

    async def probe(self, session: Session) -> bool:
        """Check whether a persisted session is still usable."""
        response = await _send(self._http, "GET", "/auth/user", session=session)
        if response.status_code in (401, 403):
            return False
        _raise_for_status(response)
        return not _json(response).get("requiresTwoFactorAuth")


# ------------------------------------------------------------------
# Group / user API
# ------------------------------------------------------------------


class SessionSource(Protocol):
    @property
    def session(self) -> Session | None: ...


class VRChatAPI(Protocol):
    """Remote log client capability set (production client and test fakes)."""

    async def get_audit_logs(
        self, group_id: str, *, limit: int = MAX_PAGE_SIZE, offset: int = 0
    ) -> AuditLogPage: ...

    async def get_group_member(self, group_id: str, user_id: str) -> GroupMember | None: ...

    async def ban_member(self, group_id: str, user_id: str) -> None: ...

    async def unban_member(self, group_id: str, user_id: str) -> None: ...

    async def get_user(self, user_id: str) -> UserProfile: ...

    async def search_users(self, query: str, *, limit: int = 10) -> list[UserProfile]: ...


def _parse_profile(data: dict[str, Any]) -> UserProfile:
    return UserProfile(
        id=data["id"],
        display_name=data.get("displayName") or data["id"],
        bio=data.get("bio") or "",
        thumbnail_url=data.get("currentAvatarThumbnailImageUrl"),
    )


class VRChatClient:
    """Client for the VRChat group and user endpoints."""

    def __init__(self, http: httpx.AsyncClient, sessions: SessionSource) -> None:
        self._http = http
        self._sessions = sessions

    async def close(self) -> None:
        """Close the shared HTTP client. Call on shutdown."""
        await self._http.aclose()

    def _session(self) -> Session:
        session = self._sessions.session
        if session is None:
            raise AuthorizationError("No authenticated VRChat session")
        return session

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        return await _send(self._http, method, path, session=self._session(), **kwargs)

    # ==================== Audit Logs ====================

    async def get_audit_logs(
        self, group_id: str, *, limit: int = MAX_PAGE_SIZE, offset: int = 0
    ) -> AuditLogPage:
        """Fetch one page of the group audit log (newest first)."""
        limit = max(1, min(limit, MAX_PAGE_SIZE))
        response = await self._request(
            "GET", f"/groups/{group_id}/auditLogs", params={"n": limit, "offset": offset}
        )
        _raise_for_status(response)
        body = _json(response)
        if not isinstance(body, dict) or not isinstance(body.get("results") or [], list):
            raise VRChatAPIError(response.status_code, "unexpected audit log page shape")

        raw_results = body.get("results") or []
        results: list[AuditLogEntry] = []
        malformed = 0
        for raw in raw_results:
            try:
                results.append(AuditLogEntry.from_api(raw))
            except MalformedRecordError as e:
                malformed += 1
                logger.warning(f"Dropping malformed audit log entry at offset {offset}: {e}")

        return AuditLogPage(
            results=results,
            has_next=bool(body.get("hasNext", False)),
            total_count=int(body.get("totalCount") or 0),
            offset=offset,
            raw_count=len(raw_results),
            malformed=malformed,
        )

    # ==================== Members / Bans ====================

    async def get_group_member(self, group_id: str, user_id: str) -> GroupMember | None:
        """Return the member's ban status, or None when the user is not a member."""
        response = await self._request("GET", f"/groups/{group_id}/members/{user_id}")
        if response.status_code == 404:
            return None
        _raise_for_status(response)

        body = _json(response)
        if not body:
            return None
        banned_at = body.get("bannedAt")
        return GroupMember(
            user_id=body.get("userId", user_id),
            banned_at=parse_timestamp(banned_at) if banned_at else None,
        )

    async def ban_member(self, group_id: str, user_id: str) -> None:
        """Ban a user from the group. Banning an already-banned user is not an error."""
        response = await self._request(
            "POST", f"/groups/{group_id}/bans", json={"userId": user_id}
        )
        if response.status_code in (400, 409):
            logger.info(f"Ban {user_id}: already banned ({_error_message(response)})")
            return
        _raise_for_status(response)
        logger.info(f"Banned {user_id} from {group_id}")

    async def unban_member(self, group_id: str, user_id: str) -> None:
        """Unban a user. Unbanning a user who is not banned is not an error."""
        response = await self._request("DELETE", f"/groups/{group_id}/bans/{user_id}")
        if response.status_code in (400, 404):
            logger.info(f"Unban {user_id}: not banned ({_error_message(response)})")
            return
        _raise_for_status(response)
        logger.info(f"Unbanned {user_id} from {group_id}")

    # ==================== Users ====================

    async def get_user(self, user_id: str) -> UserProfile:
        """Fetch a user profile by ID."""
        response = await self._request("GET", f"/users/{user_id}")
        _raise_for_status(response)
        return _parse_profile(_json(response))

    async def search_users(self, query: str, *, limit: int = 10) -> list[UserProfile]:
        """Search users by display name."""
        response = await self._request(
            "GET", "/users", params={"search": query, "n": max(1, min(limit, MAX_PAGE_SIZE))}
        )
        _raise_for_status(response)
        return [_parse_profile(user) for user in _json(response)]
