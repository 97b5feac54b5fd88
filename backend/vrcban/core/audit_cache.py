"""In-memory audit-log accumulator for foreground leaderboard requests.

Owns its lock: callers only see ``snapshot()``, ``merge()`` and ``sync()``.
The lock is held for a whole "check remote, merge new pages" pass, never
while a caller renders the snapshot it got back.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import tempfile
from collections.abc import Iterable
from pathlib import Path

from shared.models.audit_log import AuditLogEntry, MalformedRecordError
from vrcban.core.ingest import AuditLogIngestor, IngestResult

logger = logging.getLogger(__name__)


class _Sink:
    """Ingestion sink writing into the cache while the caller holds its lock."""

    def __init__(self, cache: AuditLogCache) -> None:
        self._cache = cache

    async def insert(self, entry: AuditLogEntry) -> bool:
        return self._cache._add(entry)


class AuditLogCache:
    """Insertion-ordered, id-deduplicated set of audit-log entries."""

    def __init__(self, path: Path | str | None = None) -> None:
        self.path = Path(path) if path else None
        self._entries: dict[str, AuditLogEntry] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    def _add(self, entry: AuditLogEntry) -> bool:
        if entry.id in self._entries:
            return False
        self._entries[entry.id] = entry
        return True

    async def snapshot(self) -> list[AuditLogEntry]:
        """Consistent copy of every cached entry in insertion order."""
        async with self._lock:
            return list(self._entries.values())

    async def merge(self, entries: Iterable[AuditLogEntry]) -> int:
        """Add entries; return how many were new."""
        async with self._lock:
            return sum(1 for entry in entries if self._add(entry))

    async def sync(self, ingestor: AuditLogIngestor) -> IngestResult:
        """Pull new remote pages into the cache, then persist it."""
        async with self._lock:
            result = await ingestor.run_once(_Sink(self))
            if result.inserted and self.path is not None:
                self._save()
            return result

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def load(self) -> int:
        """Load entries from ``path``; return how many were loaded."""
        if self.path is None or not self.path.exists():
            return 0

        raw = json.loads(self.path.read_text(encoding="utf-8"))
        loaded = 0
        for item in raw:
            try:
                if self._add(AuditLogEntry.from_api(item)):
                    loaded += 1
            except MalformedRecordError as e:
                logger.warning(f"Skipping cached audit log entry: {e}")
        logger.info(f"Loaded {loaded} cached audit log entries from {self.path}")
        return loaded

    def _save(self) -> None:
        assert self.path is not None
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = json.dumps([e.to_api() for e in self._entries.values()], ensure_ascii=False)
        fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
            os.replace(tmp_name, self.path)
        except OSError as e:
            Path(tmp_name).unlink(missing_ok=True)
            logger.warning(f"Failed to save audit log cache to {self.path}: {e}")
