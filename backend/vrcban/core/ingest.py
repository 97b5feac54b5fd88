"""Audit-log ingestion: one incremental pagination pass plus the polling loop around it."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Protocol

from shared.models.audit_log import AuditLogEntry
from shared.models.session import Session
from vrcban.core.config import MAX_PAGE_SIZE
from vrcban.core.errors import (
    AuthError,
    AuthorizationError,
    StoreWriteError,
    TransientNetworkError,
    VRChatAPIError,
)
from vrcban.core.session import SessionManager
from vrcban.services.vrchat_api import VRChatAPI

logger = logging.getLogger(__name__)


class AuditLogSink(Protocol):
    async def insert(self, entry: AuditLogEntry) -> bool:
        """Store an entry; return True only when it was not stored before."""
        ...


@dataclass
class IngestResult:
    """Counters for one ingestion cycle."""

    pages: int = 0
    fetched: int = 0
    inserted: int = 0
    malformed: int = 0


class AuditLogIngestor:
    """Walks the remote audit log from offset 0 until it reaches known history.

    Termination, checked per page in this order:
      1. the page is empty (end of history)
      2. ``has_next`` is false (last page)
      3. the page added no new entries (already caught up)

    A page whose entries were all malformed says nothing about stored
    history, so rule 3 does not apply to it.
    """

    def __init__(self, api: VRChatAPI, group_id: str, page_size: int = MAX_PAGE_SIZE) -> None:
        if not 1 <= page_size <= MAX_PAGE_SIZE:
            raise ValueError(f"page_size must be between 1 and {MAX_PAGE_SIZE}")
        self.api = api
        self.group_id = group_id
        self.page_size = page_size

    async def run_once(self, sink: AuditLogSink) -> IngestResult:
        """Run one ingestion cycle into *sink*.

        Fetch errors propagate unchanged. A sink failure raises
        ``StoreWriteError`` carrying the partial result; the rest of that
        page is abandoned.
        """
        result = IngestResult()
        offset = 0

        while True:
            page = await self.api.get_audit_logs(self.group_id, limit=self.page_size, offset=offset)
            result.pages += 1
            if page.is_empty:
                break

            result.fetched += len(page.results)
            result.malformed += page.malformed

            new = 0
            for entry in page.results:
                try:
                    if await sink.insert(entry):
                        new += 1
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    result.inserted += new
                    raise StoreWriteError(
                        f"Failed to store audit log entry {entry.id}: {type(e).__name__}: {e}",
                        partial=result,
                    ) from e
            result.inserted += new

            if not page.has_next:
                break
            if new == 0 and page.results:
                break  # Caught up with stored history

            offset += self.page_size

        return result


class IngestionLoop:
    """Runs ingestion cycles on a fixed interval until stopped.

    Per-cycle failures are classified instead of swallowed:
      - AuthorizationError: re-acquire the session, try again next cycle
      - AuthError (rejected credentials / TOTP): fatal, propagates
      - TransientNetworkError / VRChatAPIError / StoreWriteError: next cycle
    """

    def __init__(
        self,
        ingestor: AuditLogIngestor,
        sink: AuditLogSink,
        sessions: SessionManager,
        interval: float = 600,
    ) -> None:
        self.ingestor = ingestor
        self.sink = sink
        self.sessions = sessions
        self.interval = interval
        self.cycles = 0

    async def run_cycle(self) -> IngestResult | None:
        """Run one cycle; return its result, or None when it failed recoverably."""
        self.cycles += 1
        session = self.sessions.session
        try:
            result = await self.ingestor.run_once(self.sink)
        except AuthorizationError as e:
            logger.warning(f"Ingestion unauthorized ({e}), renewing session")
            await self._renew_session(session)
            return None
        except AuthError:
            raise
        except TransientNetworkError as e:
            logger.warning(f"Ingestion cycle {self.cycles} failed: {e}, retrying next cycle")
            return None
        except VRChatAPIError as e:
            logger.error(f"Ingestion cycle {self.cycles}: unexpected API response {e}")
            return None
        except StoreWriteError as e:
            logger.error(f"Ingestion cycle {self.cycles}: {e}; rest of the page abandoned")
            return None

        logger.info(
            f"Ingestion cycle {self.cycles}: {result.inserted} new / {result.fetched} fetched "
            f"in {result.pages} page(s)"
            + (f", {result.malformed} malformed dropped" if result.malformed else "")
        )
        return result

    async def _renew_session(self, stale: Session | None) -> None:
        """Re-login after an expired session. Only ``AuthError`` propagates."""
        try:
            await self.sessions.acquire_session(stale=stale)
        except (TransientNetworkError, VRChatAPIError) as e:
            logger.warning(
                f"Ingestion cycle {self.cycles}: session renewal failed ({e}), retrying next cycle"
            )

    async def run(self, stop: asyncio.Event) -> None:
        """Loop until *stop* is set. Cycles never overlap."""
        logger.info(f"Audit log ingestion started (interval={self.interval}s)")
        while not stop.is_set():
            await self.run_cycle()
            try:
                await asyncio.wait_for(stop.wait(), timeout=self.interval)
            except TimeoutError:
                pass
        logger.info("Audit log ingestion stopped")
