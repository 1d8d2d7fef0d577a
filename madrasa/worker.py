"""Scheduler worker process.

RUN:  python -m madrasa.worker

Same image as the API, different command:
  api:    uvicorn madrasa.main:app --host 0.0.0.0 --port 8000
  worker: python -m madrasa.worker

The worker owns the clock: it builds a Scheduler, starts it, and sleeps
until SIGINT or SIGTERM.  On a signal it stops the clock and waits for
in-flight ticks to finish before exiting.  Run exactly one worker per
database; the engines tolerate a second one (claims are conditional),
but every tick would be done twice.

The API can also host the clock (SCHEDULER_AUTOSTART=true) when a
separate process is not wanted.
"""

from __future__ import annotations

import asyncio
import logging
import signal

from madrasa.core.clock import make_clock
from madrasa.core.config import SETTINGS
from madrasa.core.logging import setup_logging
from madrasa.db.engine import lifespan_db
from madrasa.db.redis import lifespan_redis
from madrasa.repos.store import build_store
from madrasa.services.run_history import build_run_history
from madrasa.services.scheduler import SHUTDOWN_TIMEOUT_SECONDS, Scheduler

logger = logging.getLogger("madrasa.worker")


async def run_worker(stop_event: asyncio.Event | None = None) -> None:
    """Run the clock until ``stop_event`` is set (or a signal arrives)."""
    stop_event = stop_event or asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except (NotImplementedError, RuntimeError):
            # Not on the main thread, or no signal support (Windows).
            pass

    async with lifespan_db():
        async with lifespan_redis():
            scheduler = Scheduler(
                build_store(),
                make_clock(SETTINGS.timezone),
                history=build_run_history(),
            )
            await scheduler.start()
            logger.info("Worker running; waiting for SIGINT/SIGTERM")
            try:
                await stop_event.wait()
            finally:
                logger.info("Shutdown requested; stopping scheduler")
                await scheduler.stop(timeout=SHUTDOWN_TIMEOUT_SECONDS)


def main() -> None:
    setup_logging(SETTINGS.log_level, json_format=SETTINGS.log_json)
    asyncio.run(run_worker())


if __name__ == "__main__":
    main()
