"""FastAPI application factory: leaderboard JSON API plus the background ingestion task."""

import asyncio
import logging
import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from vrcban import __version__
from vrcban.api.routers import leaderboard_router
from vrcban.core.config import Settings, get_settings
from vrcban.runtime import build_runtime
from vrcban.services.leaderboard import LeaderboardService

logger = logging.getLogger(__name__)


def log_ingestion_exit(task: asyncio.Task) -> None:
    """Done callback: report an ingestion task that ended with an error right away."""
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error(
            f"Audit log ingestion stopped: {type(exc).__name__}: {exc}; "
            "the leaderboard will go stale",
            exc_info=exc,
        )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Build the runtime and run ingestion in the background for the app's lifetime."""
    app.state.started_at = time.time()
    if getattr(app.state, "leaderboard", None) is not None:
        # Pre-wired (tests / embedding): nothing to start
        yield
        return

    settings: Settings = app.state.settings
    runtime = await build_runtime(settings)
    app.state.runtime = runtime
    app.state.leaderboard = runtime.leaderboard_service()

    ingestion = asyncio.create_task(runtime.ingestion_loop().run(runtime.stop))
    ingestion.add_done_callback(log_ingestion_exit)
    app.state.ingestion = ingestion
    logger.info("vrc-ban API started")

    yield

    logger.info("Shutting down vrc-ban API")
    runtime.stop.set()
    # A failure was already reported by log_ingestion_exit
    await asyncio.gather(ingestion, return_exceptions=True)
    await runtime.close()


def create_app(
    settings: Settings | None = None,
    leaderboard: LeaderboardService | None = None,
) -> FastAPI:
    """Create and configure FastAPI application"""
    app = FastAPI(
        title="vrc-ban API",
        description="Staff moderation leaderboard for a VRChat group",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.leaderboard = leaderboard
    if leaderboard is None:
        app.state.settings = settings or get_settings()

    app.include_router(leaderboard_router.router)

    @app.get("/health")
    async def health():
        """Liveness check (no external dependency)"""
        return {
            "status": "healthy",
            "uptime_seconds": int(time.time() - getattr(app.state, "started_at", time.time())),
        }

    @app.get("/status")
    async def status():
        """Readiness: session state and database health"""
        runtime = getattr(app.state, "runtime", None)
        ingestion = getattr(app.state, "ingestion", None)
        if runtime is None or ingestion is None:
            return {
                "service": "vrc-ban",
                "version": __version__,
                "ready": app.state.leaderboard is not None,
            }
        return {
            "service": "vrc-ban",
            "version": __version__,
            "ready": not ingestion.done(),
            "session": runtime.sessions.state.value,
            "db_connected": await runtime.db.check_health(),
        }

    return app
