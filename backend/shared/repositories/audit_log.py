"""Repository for the audit_logs table."""

from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any, Protocol

import asyncpg

from shared.models.audit_log import AuditLogEntry

logger = logging.getLogger(__name__)

_COLUMNS = (
    "id, created_at, group_id, actor_id, actor_display_name, "
    "target_id, event_type, description, data"
)


class AuditLogStore(Protocol):
    """Durable, deduplicating audit-log storage."""

    async def insert(self, entry: AuditLogEntry) -> bool: ...

    async def query_by_target(
        self, target_id: str, *, event_type: str | None = None, limit: int = 100
    ) -> list[AuditLogEntry]: ...

    async def query_by_actor(
        self, actor_id: str, *, limit: int | None = None
    ) -> list[AuditLogEntry]: ...

    async def query_recent(
        self, limit: int, *, event_type: str | None = None
    ) -> list[AuditLogEntry]: ...

    async def query_since(self, since: datetime | None) -> list[AuditLogEntry]: ...

    async def count(self) -> int: ...


def _row_to_entry(row: asyncpg.Record) -> AuditLogEntry:
    values: dict[str, Any] = dict(row)
    data = values.get("data")
    if isinstance(data, str):
        values["data"] = json.loads(data)
    values["description"] = values.get("description") or ""
    return AuditLogEntry(**values)


class AuditLogRepository:
    """Pure SQL operations for the group audit log."""

    def __init__(self, pool: asyncpg.Pool) -> None:
        self.pool = pool

    # ==================== Write ====================

    async def insert(self, entry: AuditLogEntry) -> bool:
        """Insert an entry; already-stored IDs are ignored.

        Returns True when a row was actually inserted.
        """
        async with self.pool.acquire() as conn:
            status = await conn.execute(
                f"""
                INSERT INTO audit_logs ({_COLUMNS})
                VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9::jsonb)
                ON CONFLICT (id) DO NOTHING
                """,
                entry.id,
                entry.created_at,
                entry.group_id,
                entry.actor_id,
                entry.actor_display_name,
                entry.target_id,
                entry.event_type,
                entry.description,
                json.dumps(entry.data),
            )
        # asyncpg status string: "INSERT 0 <rows>"
        return status.rsplit(" ", 1)[-1] == "1"

    # ==================== Read ====================

    async def query_by_target(
        self, target_id: str, *, event_type: str | None = None, limit: int = 100
    ) -> list[AuditLogEntry]:
        """Entries acting on *target_id*, newest first."""
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                f"""
                SELECT {_COLUMNS} FROM audit_logs
                WHERE target_id = $1 AND ($2::text IS NULL OR event_type = $2)
                ORDER BY created_at DESC
                LIMIT $3
                """,
                target_id,
                event_type,
                limit,
            )
            return [_row_to_entry(r) for r in rows]

    async def query_by_actor(
        self, actor_id: str, *, limit: int | None = None
    ) -> list[AuditLogEntry]:
        """Entries performed by *actor_id*, newest first."""
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                f"""
                SELECT {_COLUMNS} FROM audit_logs
                WHERE actor_id = $1
                ORDER BY created_at DESC
                LIMIT $2
                """,
                actor_id,
                limit,
            )
            return [_row_to_entry(r) for r in rows]

    async def query_recent(
        self, limit: int, *, event_type: str | None = None
    ) -> list[AuditLogEntry]:
        """Most recent entries, optionally of one event type, newest first."""
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                f"""
                SELECT {_COLUMNS} FROM audit_logs
                WHERE $1::text IS NULL OR event_type = $1
                ORDER BY created_at DESC
                LIMIT $2
                """,
                event_type,
                limit,
            )
            return [_row_to_entry(r) for r in rows]

    async def query_since(self, since: datetime | None) -> list[AuditLogEntry]:
        """Entries created at or after *since* (all when None), oldest first."""
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                f"""
                SELECT {_COLUMNS} FROM audit_logs
                WHERE $1::timestamptz IS NULL OR created_at >= $1
                ORDER BY created_at ASC, ingested_at ASC
                """,
                since,
            )
            return [_row_to_entry(r) for r in rows]

    async def count(self) -> int:
        async with self.pool.acquire() as conn:
            return int(await conn.fetchval("SELECT COUNT(*) FROM audit_logs") or 0)
