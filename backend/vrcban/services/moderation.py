"""Operator-facing moderation actions (ban / unban / lookups)."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from shared.models.audit_log import AuditLogEntry, EventType
from shared.models.session import GroupMember, UserProfile
from shared.repositories.audit_log import AuditLogStore
from vrcban.core.errors import AuthorizationError, TransientNetworkError
from vrcban.core.session import SessionManager
from vrcban.services.vrchat_api import VRChatAPI

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ModerationService:
    """Moderation actions against one group.

    A remote call failing with an authorization or network error triggers one
    re-authentication and one retry before the error reaches the operator.
    """

    def __init__(
        self,
        api: VRChatAPI,
        sessions: SessionManager,
        group_id: str,
        store: AuditLogStore | None = None,
    ) -> None:
        self.api = api
        self.sessions = sessions
        self.group_id = group_id
        self.store = store

    async def _with_reauth(self, action: str, call: Callable[[], Awaitable[T]]) -> T:
        session = self.sessions.session
        try:
            return await call()
        except (AuthorizationError, TransientNetworkError) as e:
            logger.warning(f"{action} failed ({type(e).__name__}: {e}), re-authenticating once")
            await self.sessions.acquire_session(stale=session)
            return await call()

    # ==================== Actions ====================

    async def ban(self, user_id: str) -> None:
        await self._with_reauth(
            f"ban {user_id}", lambda: self.api.ban_member(self.group_id, user_id)
        )

    async def unban(self, user_id: str) -> None:
        await self._with_reauth(
            f"unban {user_id}", lambda: self.api.unban_member(self.group_id, user_id)
        )

    # ==================== Lookups ====================

    async def member_status(self, user_id: str) -> GroupMember | None:
        return await self._with_reauth(
            f"member {user_id}", lambda: self.api.get_group_member(self.group_id, user_id)
        )

    async def get_user(self, user_id: str) -> UserProfile:
        return await self._with_reauth(f"user {user_id}", lambda: self.api.get_user(user_id))

    async def search_users(self, query: str, limit: int = 10) -> list[UserProfile]:
        return await self._with_reauth(
            f"search {query!r}", lambda: self.api.search_users(query, limit=limit)
        )

    async def recent_ban_targets(self, limit: int = 25) -> list[str]:
        """Targets of the most recent bans (newest first, de-duplicated)."""
        page = await self._with_reauth(
            "recent bans", lambda: self.api.get_audit_logs(self.group_id, offset=0)
        )
        targets: list[str] = []
        for entry in page.results:
            if entry.event_type != EventType.BAN or not entry.target_id:
                continue
            if entry.target_id not in targets:
                targets.append(entry.target_id)
            if len(targets) >= limit:
                break
        return targets

    async def history(self, target_id: str, limit: int = 25) -> list[AuditLogEntry]:
        """Stored moderation history for a user, newest first."""
        if self.store is None:
            raise RuntimeError("No audit log store configured")
        return await self.store.query_by_target(target_id, limit=limit)
