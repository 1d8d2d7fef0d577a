"""One-shot scheduler pass, for hosts that prefer system cron.

RUN:  python -m madrasa.cli        (or the ``madrasa-run-once`` script)

One invocation runs, concurrently:

  - the release tick
  - the performance evaluation, only when the local hour is a multiple
    of 4 (otherwise the skip is logged and counts as success)
  - the auto-launch tick

Each sub-task is retried up to MAX_RETRIES times, RETRY_DELAY_SECONDS
apart.  The exit code is 0 only if every sub-task succeeded.  Output
goes to the console and to the append-only SCHEDULER_LOG_FILE.

A typical crontab line:
  */15 * * * *  cd /srv/madrasa && madrasa-run-once
"""

from __future__ import annotations

import asyncio
import logging
import sys
import time
from collections.abc import Awaitable, Callable

from madrasa.core.clock import Clock, make_clock
from madrasa.core.config import SETTINGS
from madrasa.core.logging import setup_logging
from madrasa.db.engine import lifespan_db
from madrasa.db.redis import lifespan_redis
from madrasa.repos.store import build_store
from madrasa.services.run_history import build_run_history
from madrasa.services.scheduler import (
    AUTO_LAUNCH,
    EVALUATE_PERFORMANCE,
    RELEASE_TASKS,
    Scheduler,
)

logger = logging.getLogger("madrasa.cli")

MAX_RETRIES = 3
RETRY_DELAY_SECONDS = 5.0
EVALUATION_HOUR_STEP = 4

Sleep = Callable[[float], Awaitable[None]]


async def _run_with_retries(
    scheduler: Scheduler,
    job: str,
    *,
    retries: int,
    delay: float,
    sleep: Sleep,
) -> bool:
    for attempt in range(1, retries + 1):
        report = await scheduler.run_job(job)
        if report.ok:
            if attempt > 1:
                logger.info("%s succeeded on attempt %d", job, attempt)
            return True
        logger.warning(
            "%s failed (attempt %d/%d): %s", job, attempt, retries, report.error
        )
        if attempt < retries:
            await sleep(delay)
    logger.error("%s failed after %d attempt(s)", job, retries)
    return False


async def run_once(
    scheduler: Scheduler,
    clock: Clock,
    *,
    retries: int = MAX_RETRIES,
    delay: float = RETRY_DELAY_SECONDS,
    sleep: Sleep = asyncio.sleep,
) -> int:
    """Run one pass; return the process exit code."""
    started = time.monotonic()
    jobs = [RELEASE_TASKS]
    hour = clock.now().hour
    if hour % EVALUATION_HOUR_STEP == 0:
        jobs.append(EVALUATE_PERFORMANCE)
    else:
        logger.info(
            "Skipping performance evaluation: local hour %d is not a multiple of %d",
            hour,
            EVALUATION_HOUR_STEP,
        )
    jobs.append(AUTO_LAUNCH)

    results = await asyncio.gather(
        *(
            _run_with_retries(scheduler, job, retries=retries, delay=delay, sleep=sleep)
            for job in jobs
        )
    )
    succeeded = sum(results)
    logger.info(
        "Run finished: %d/%d sub-task(s) succeeded (%.0f%%) in %.1fs",
        succeeded,
        len(jobs),
        succeeded / len(jobs) * 100,
        time.monotonic() - started,
    )
    return 0 if all(results) else 1


async def _main() -> int:
    async with lifespan_db():
        async with lifespan_redis():
            clock = make_clock(SETTINGS.timezone)
            scheduler = Scheduler(build_store(), clock, history=build_run_history())
            return await run_once(scheduler, clock)


def main() -> None:
    setup_logging(
        SETTINGS.log_level,
        json_format=SETTINGS.log_json,
        log_file=SETTINGS.scheduler_log_file,
    )
    sys.exit(asyncio.run(_main()))


if __name__ == "__main__":
    main()
