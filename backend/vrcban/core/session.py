"""Session manager: turns stored credentials into an authenticated VRChat session.

States::

    UNAUTHENTICATED -> AWAITING_SECOND_FACTOR -> AUTHENTICATED
           \\________________ REJECTED (terminal)

Every successful transition writes the token set back to the credential
store before returning. A failed write is logged and tolerated: the session
stays usable in memory and only a restart would need to log in again.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from enum import Enum

import pyotp

from shared.models.session import Session
from vrcban.core.credentials import Credentials, CredentialStore, SessionTokens
from vrcban.core.errors import AuthRejectedError, SecondFactorFailedError
from vrcban.services.vrchat_api import AuthBackend

logger = logging.getLogger(__name__)


class SessionState(Enum):
    UNAUTHENTICATED = "unauthenticated"
    AWAITING_SECOND_FACTOR = "awaiting_second_factor"
    AUTHENTICATED = "authenticated"
    REJECTED = "rejected"


def totp_code(secret: str, for_time: float) -> str:
    """Current TOTP code (SHA-1, 6 digits, 30s step) for a base32 seed."""
    return pyotp.TOTP(secret.replace(" ", "").upper()).at(for_time)


class SessionManager:
    """Owns the process-wide VRChat session.

    Callers that see an ``AuthorizationError`` hand the session they used
    back to ``acquire_session(stale=...)``; concurrent callers reporting the
    same stale session trigger only one re-login.
    """

    def __init__(
        self,
        store: CredentialStore,
        auth: AuthBackend,
        user_agent: str,
        *,
        credentials: Credentials | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._auth = auth
        self._user_agent = user_agent
        self._credentials = credentials
        self._clock = clock
        self._session: Session | None = None
        self._state = SessionState.UNAUTHENTICATED
        self._lock = asyncio.Lock()

    @property
    def session(self) -> Session | None:
        return self._session

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def credentials(self) -> Credentials:
        if self._credentials is None:
            self._credentials = self._store.load()
        return self._credentials

    async def acquire_session(self, stale: Session | None = None) -> Session:
        """Return a usable session, logging in only when necessary.

        Raises ``AuthRejectedError`` or ``SecondFactorFailedError``.
        """
        async with self._lock:
            if self._session is not None and self._session != stale:
                return self._session

            if stale is not None:
                logger.info("VRChat session expired, re-authenticating")
                self._session = None
                self._state = SessionState.UNAUTHENTICATED

            credentials = self.credentials

            # Fast path: reuse the persisted session
            persisted = credentials.authentication
            if persisted is not None and stale is None:
                session = self._build_session(persisted)
                if await self._auth.probe(session):
                    logger.info("Reusing persisted VRChat session")
                    return self._authenticated(session)
                logger.info("Persisted VRChat session is no longer valid")

            return await self._login(credentials)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _build_session(self, tokens: SessionTokens) -> Session:
        return Session(
            token=tokens.token,
            second_factor_token=tokens.second_factor_token,
            user_agent=self._user_agent,
        )

    def _authenticated(self, session: Session) -> Session:
        self._session = session
        self._state = SessionState.AUTHENTICATED
        return session

    async def _login(self, credentials: Credentials) -> Session:
        try:
            result = await self._auth.login(credentials.username, credentials.password)
        except AuthRejectedError:
            self._state = SessionState.REJECTED
            logger.error(f"VRChat rejected the credentials for {credentials.username}")
            raise

        tokens = SessionTokens(token=result.token)
        self._persist(tokens)

        if result.requires_second_factor:
            self._state = SessionState.AWAITING_SECOND_FACTOR
            code = totp_code(credentials.totp_secret, self._clock())
            try:
                tokens.second_factor_token = await self._auth.verify_totp(tokens.token, code)
            except SecondFactorFailedError:
                self._state = SessionState.UNAUTHENTICATED
                logger.error("TOTP verification failed, retry after the next 30s window")
                raise
            self._persist(tokens)
            logger.info("Second factor verified")

        logger.info(f"Logged in to VRChat as {credentials.username}")
        return self._authenticated(self._build_session(tokens))

    def _persist(self, tokens: SessionTokens) -> None:
        credentials = self.credentials
        credentials.authentication = tokens.model_copy()
        try:
            self._store.save(credentials)
        except OSError as e:
            logger.warning(f"Could not persist VRChat session ({e}); it will not survive a restart")
