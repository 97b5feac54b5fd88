"""Minimal SQL migration runner with a tracking table."""

from __future__ import annotations

import logging
from pathlib import Path

import asyncpg

logger = logging.getLogger(__name__)

VERSIONS_DIR = Path(__file__).resolve().parent / "versions"


class MigrationRunner:
    """Apply ``versions/NNN_description.sql`` files in filename order, once each.

    Applied versions are recorded in ``schema_migrations``.
    """

    TRACKING_TABLE = "schema_migrations"

    def __init__(self, pool: asyncpg.Pool, versions_dir: Path = VERSIONS_DIR) -> None:
        self.pool = pool
        self.versions_dir = versions_dir

    async def pending(self) -> list[Path]:
        """SQL files not yet recorded as applied."""
        async with self.pool.acquire() as conn:
            await conn.execute(
                f"""
                CREATE TABLE IF NOT EXISTS {self.TRACKING_TABLE} (
                    version    TEXT PRIMARY KEY,
                    applied_at TIMESTAMPTZ DEFAULT NOW()
                )
                """
            )
            rows = await conn.fetch(f"SELECT version FROM {self.TRACKING_TABLE}")  # noqa: S608
        applied = {row["version"] for row in rows}
        return [p for p in sorted(self.versions_dir.glob("*.sql")) if p.stem not in applied]

    async def run_pending(self) -> list[str]:
        """Apply every pending migration, each in its own transaction."""
        applied: list[str] = []
        for sql_path in await self.pending():
            logger.info(f"Applying migration: {sql_path.stem}")
            async with self.pool.acquire() as conn:
                async with conn.transaction():
                    await conn.execute(sql_path.read_text(encoding="utf-8"))
                    await conn.execute(
                        f"INSERT INTO {self.TRACKING_TABLE} (version) VALUES ($1)",  # noqa: S608
                        sql_path.stem,
                    )
            applied.append(sql_path.stem)

        if applied:
            logger.info(f"Applied {len(applied)} migration(s): {', '.join(applied)}")
        else:
            logger.info("Database is up to date")
        return applied
