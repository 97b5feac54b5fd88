"""Wires settings, session, VRChat client and log store into one runtime."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field

import httpx

from shared.database import DatabaseManager
from shared.migrations.runner import MigrationRunner
from shared.repositories.audit_log import AuditLogRepository
from vrcban.core.config import Settings
from vrcban.core.credentials import Credentials, CredentialStore
from vrcban.core.ingest import AuditLogIngestor, IngestionLoop
from vrcban.core.leaderboard import AliasMap
from vrcban.core.session import SessionManager
from vrcban.services.leaderboard import LeaderboardService
from vrcban.services.moderation import ModerationService
from vrcban.services.vrchat_api import VRChatAuth, VRChatClient, create_http_client

logger = logging.getLogger(__name__)


@dataclass
class Runtime:
    settings: Settings
    credentials: Credentials
    http: httpx.AsyncClient
    sessions: SessionManager
    client: VRChatClient
    db: DatabaseManager
    store: AuditLogRepository
    ingestor: AuditLogIngestor
    stop: asyncio.Event = field(default_factory=asyncio.Event)

    def ingestion_loop(self) -> IngestionLoop:
        return IngestionLoop(
            self.ingestor, self.store, self.sessions, interval=self.settings.poll_interval
        )

    def leaderboard_service(self) -> LeaderboardService:
        return LeaderboardService(
            self.client,
            store=self.store,
            aliases=AliasMap(self.settings.aliases),
            ttl=self.settings.leaderboard_ttl,
            count_warnings_in_share=self.settings.count_warnings_in_share,
        )

    def moderation_service(self) -> ModerationService:
        """Ban/unban/lookup actions for a command front end (bot or CLI) built on this runtime.

        Nothing in vrc-ban itself issues moderation actions.
        """
        return ModerationService(
            self.client, self.sessions, self.credentials.group_id, store=self.store
        )

    async def close(self) -> None:
        self.stop.set()
        await self.client.close()
        await self.db.disconnect()


async def build_runtime(settings: Settings) -> Runtime:
    """Authenticate, connect the database and apply migrations.

    Authentication errors propagate: nothing useful runs without a session.
    """
    credential_store = CredentialStore(settings.credentials_file)
    credentials = credential_store.load()

    http = create_http_client(settings.user_agent, settings.api_base)
    sessions = SessionManager(
        credential_store, VRChatAuth(http), settings.user_agent, credentials=credentials
    )
    client = VRChatClient(http, sessions)
    db = DatabaseManager(settings.database_url)

    try:
        await sessions.acquire_session()
        await db.connect()
        await MigrationRunner(db.pool).run_pending()
    except BaseException:
        await http.aclose()
        await db.disconnect()
        raise

    logger.info(f"Runtime ready for group {credentials.group_id}")
    return Runtime(
        settings=settings,
        credentials=credentials,
        http=http,
        sessions=sessions,
        client=client,
        db=db,
        store=AuditLogRepository(db.pool),
        ingestor=AuditLogIngestor(client, credentials.group_id, settings.page_size),
    )
