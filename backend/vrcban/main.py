"""vrc-ban entry point.

Usage:
    vrcban ingest [--once]    run the audit-log ingestion worker
    vrcban serve              leaderboard API + background ingestion
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
from contextlib import suppress

from pydantic import ValidationError

from vrcban.core.config import Settings, get_settings
from vrcban.core.errors import AuthError
from vrcban.core.logging import setup_logging
from vrcban.runtime import build_runtime

LOGGER = logging.getLogger("vrcban")


async def run_ingest(settings: Settings, *, once: bool = False) -> None:
    runtime = await build_runtime(settings)
    loop = runtime.ingestion_loop()
    try:
        if once:
            await loop.run_cycle()
            return

        event_loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            with suppress(NotImplementedError):
                event_loop.add_signal_handler(sig, runtime.stop.set)
        await loop.run(runtime.stop)
    finally:
        await runtime.close()


def run_serve(settings: Settings, host: str, port: int) -> None:
    import uvicorn

    from vrcban.api.app import create_app

    uvicorn.run(create_app(settings), host=host, port=port, log_config=None)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="vrcban", description=__doc__.splitlines()[0])
    sub = parser.add_subparsers(dest="command")

    ingest = sub.add_parser("ingest", help="Run the audit-log ingestion worker")
    ingest.add_argument("--once", action="store_true", help="Run a single ingestion cycle")

    serve = sub.add_parser("serve", help="Run the leaderboard API with background ingestion")
    serve.add_argument("--host", default="0.0.0.0")
    serve.add_argument("--port", type=int, default=8000)

    args = parser.parse_args(argv)

    try:
        settings = get_settings()
    except ValidationError as e:
        setup_logging()
        LOGGER.error(f"Invalid configuration: {e}")
        return 2
    setup_logging(settings.log_level)

    try:
        if args.command == "serve":
            run_serve(settings, args.host, args.port)
        else:
            asyncio.run(run_ingest(settings, once=getattr(args, "once", False)))
    except AuthError as e:
        LOGGER.error(f"VRChat authentication failed: {e}")
        return 1
    except FileNotFoundError as e:
        LOGGER.error(f"Credentials file not found: {e.filename}")
        return 1
    except KeyboardInterrupt:
        pass
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
