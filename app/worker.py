"""Standalone push worker process.

Usage:
    python -m app.worker

Runs the same pipeline the API starts in-process, for deployments that set
PUSH_WORKER_ENABLED=false on the API and scale workers separately.
"""

import asyncio
import signal

import structlog

from app.bootstrap import build_push_runtime
from app.config import settings
from app.core.redis_client import close_redis_connection, get_redis_client
from app.database import AsyncSessionLocal, engine
from app.middleware.logging import configure_logging

logger = structlog.get_logger(__name__)


async def run_worker() -> None:
    """Run the push worker until SIGINT or SIGTERM."""
    runtime = build_push_runtime(settings, get_redis_client(), AsyncSessionLocal)

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    runtime.worker.start()
    logger.info("push_worker_process_started", queue=settings.push_queue_name)

    await stop.wait()

    logger.info("push_worker_process_stopping")
    await runtime.close()
    await close_redis_connection()
    await engine.dispose()


def main() -> None:
    """Main entry point."""
    configure_logging()
    asyncio.run(run_worker())


if __name__ == "__main__":
    main()
