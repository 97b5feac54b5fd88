"""Leaderboard service: aggregates stored (or freshly pulled) audit logs, with caching."""

from __future__ import annotations

import logging

from shared.cache import AsyncTTLCache, cached
from shared.models.leaderboard import Leaderboard
from shared.repositories.audit_log import AuditLogStore
from vrcban.core.audit_cache import AuditLogCache
from vrcban.core.errors import VRChatError
from vrcban.core.ingest import AuditLogIngestor
from vrcban.core.leaderboard import AliasMap, build_leaderboard
from vrcban.services.vrchat_api import VRChatAPI

logger = logging.getLogger(__name__)

# Display names change rarely; four hours matches the public page refresh
_display_name_cache = AsyncTTLCache(maxsize=256, ttl=14_400)


class LeaderboardService:
    """Builds the staff leaderboard from one of two sources.

    - ``store``: the durable log store kept current by the ingestion loop.
    - ``audit_cache`` + ``ingestor``: an in-memory accumulator synced with
      the remote audit log on every (uncached) request.
    """

    def __init__(
        self,
        api: VRChatAPI,
        *,
        store: AuditLogStore | None = None,
        audit_cache: AuditLogCache | None = None,
        ingestor: AuditLogIngestor | None = None,
        aliases: AliasMap | None = None,
        ttl: float = 1800,
        count_warnings_in_share: bool = False,
        resolve_names: bool = True,
    ) -> None:
        if store is None and (audit_cache is None or ingestor is None):
            raise ValueError("LeaderboardService needs a store or an audit_cache with an ingestor")
        self.api = api
        self.store = store
        self.audit_cache = audit_cache
        self.ingestor = ingestor
        self.aliases = aliases or AliasMap()
        self.count_warnings_in_share = count_warnings_in_share
        self.resolve_names = resolve_names

        self._cache = AsyncTTLCache(maxsize=1, ttl=ttl)
        self._cached_build = cached(self._cache, key_func=lambda: "leaderboard")(self._build)

    async def get_leaderboard(self) -> Leaderboard:
        """Return the cached leaderboard, rebuilding it once the TTL expires."""
        return await self._cached_build()

    def invalidate(self) -> None:
        self._cache.invalidate("leaderboard")

    async def _build(self) -> Leaderboard:
        if self.audit_cache is not None and self.ingestor is not None:
            result = await self.audit_cache.sync(self.ingestor)
            logger.debug(f"Audit cache synced: {result.inserted} new entries")
            entries = await self.audit_cache.snapshot()
        else:
            assert self.store is not None
            entries = await self.store.query_since(None)

        board = build_leaderboard(
            entries,
            aliases=self.aliases,
            count_warnings_in_share=self.count_warnings_in_share,
        )
        if self.resolve_names:
            await self._resolve_display_names(board)

        logger.info(
            f"Leaderboard built: {len(board.entries)} moderators from {board.entry_count} entries"
        )
        return board

    async def _resolve_display_names(self, board: Leaderboard) -> None:
        for entry in board.entries:
            if entry.display_name or not entry.actor_id.startswith("usr_"):
                continue
            try:
                entry.display_name = await self._display_name(entry.actor_id)
            except VRChatError as e:
                logger.debug(f"Could not resolve display name for {entry.actor_id}: {e}")

    @cached(
        cache=_display_name_cache,
        key_func=lambda self, user_id: f"user:{user_id}",
        stale_on=(VRChatError,),
    )
    async def _display_name(self, user_id: str) -> str:
        profile = await self.api.get_user(user_id)
        return profile.display_name
