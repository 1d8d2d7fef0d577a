"""Clock driver: fires registered handlers on cron or interval schedules.

    driver = ClockDriver(ZoneInfo("Africa/Cairo"))
    driver.register("release-tasks", handler, cron="*/5 * * * *")
    driver.register("heartbeat", handler, every=timedelta(minutes=1))
    await driver.start()
    ...
    await driver.stop()

HOW A JOB LOOPS
-----------------
Each job gets its own asyncio task.  The task asks the schedule how long
until the next fire time, then waits on the stop event with that timeout:

  - stop() sets the event → the wait returns early and the loop exits
  - the timeout expires → the job fires

Next-fire computation is celery's: ``crontab.remaining_estimate`` and
``schedule.remaining_estimate`` measured from the last fire time in the
configured timezone.  Cron fire times are absolute ("every hour at :00"),
so a slow tick never shifts later ticks.

OVERLAP AND CANCELLATION
--------------------------
A fire runs the handler as a separate task.  If the previous run of the
same job is still in flight, the new fire is skipped and logged.  Jobs
never overlap themselves; different jobs may run concurrently.

stop() never cancels a running handler.  With ``wait=True`` it waits for
in-flight handlers to finish (optionally bounded by ``timeout``).
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

from celery import Celery
from celery.schedules import ParseException, crontab, schedule

from madrasa.core.metrics import SCHEDULER_TICKS
from madrasa.models.tick import OUTCOME_SKIPPED

logger = logging.getLogger(__name__)

Handler = Callable[[], Awaitable[object]]


def _schedule_app(tz: ZoneInfo) -> Celery:
    # Private app: only its timezone settings are used, nothing is sent.
    app = Celery("madrasa-clock", set_as_current=False)
    app.conf.update(timezone=str(tz), enable_utc=True)
    return app


def parse_cron(
    expression: str, *, app: Celery, nowfun: Callable[[], datetime]
) -> crontab:
    """Parse a five-field cron expression: minute hour day month weekday."""
    fields = expression.split()
    if len(fields) != 5:
        raise ValueError(
            f"cron expression must have 5 fields (got {len(fields)}): {expression!r}"
        )
    minute, hour, day_of_month, month_of_year, day_of_week = fields
    try:
        return crontab(
            minute=minute,
            hour=hour,
            day_of_month=day_of_month,
            month_of_year=month_of_year,
            day_of_week=day_of_week,
            app=app,
            nowfun=nowfun,
        )
    except (ParseException, ValueError) as exc:
        raise ValueError(f"invalid cron expression {expression!r}: {exc}") from None


@dataclass(slots=True)
class _Job:
    name: str
    spec: str
    schedule: crontab | schedule
    handler: Handler
    next_run_at: datetime | None = None
    last_fired_at: datetime | None = None


@dataclass(frozen=True, slots=True)
class JobState:
    name: str
    schedule: str
    next_run_at: datetime | None
    last_fired_at: datetime | None
    in_flight: bool


class ClockDriver:
    def __init__(
        self,
        tz: ZoneInfo,
        *,
        now: Callable[[], datetime] | None = None,
    ) -> None:
        self._tz = tz
        self._now = now or (lambda: datetime.now(self._tz))
        self._app = _schedule_app(tz)
        self._jobs: dict[str, _Job] = {}
        self._loops: list[asyncio.Task] = []
        self._in_flight: dict[str, asyncio.Task] = {}
        self._stopping: asyncio.Event | None = None

    @property
    def running(self) -> bool:
        return bool(self._loops)

    def register(
        self,
        name: str,
        handler: Handler,
        *,
        cron: str | None = None,
        every: timedelta | None = None,
    ) -> None:
        if (cron is None) == (every is None):
            raise ValueError("register() needs exactly one of cron= or every=")
        if name in self._jobs:
            raise ValueError(f"job {name!r} is already registered")
        if self.running:
            raise RuntimeError("cannot register jobs while the driver is running")

        if cron is not None:
            sched: crontab | schedule = parse_cron(cron, app=self._app, nowfun=self._now)
            spec = cron
        else:
            assert every is not None
            if every <= timedelta(0):
                raise ValueError("every= must be a positive interval")
            sched = schedule(run_every=every, app=self._app, nowfun=self._now)
            spec = f"every {every.total_seconds():g}s"

        self._jobs[name] = _Job(name=name, spec=spec, schedule=sched, handler=handler)

    def job_names(self) -> list[str]:
        return list(self._jobs)

    async def start(self) -> bool:
        """Start one loop per job.  Returns False if already running."""
        if self.running:
            return False
        self._stopping = asyncio.Event()
        now = self._now()
        for job in self._jobs.values():
            job.next_run_at = now + timedelta(
                seconds=max(0.0, self._seconds_until_due(job, now))
            )
        self._loops = [
            asyncio.create_task(self._loop(job), name=f"clock:{job.name}")
            for job in self._jobs.values()
        ]
        logger.info("Clock driver started with %d job(s)", len(self._loops))
        return True

    async def stop(self, *, wait: bool = True, timeout: float | None = None) -> bool:
        """Halt future fires.  Returns False if it was not running."""
        if not self.running:
            return False
        assert self._stopping is not None
        self._stopping.set()
        await asyncio.gather(*self._loops, return_exceptions=True)
        self._loops = []
        for job in self._jobs.values():
            job.next_run_at = None

        pending = [t for t in self._in_flight.values() if not t.done()]
        if wait and pending:
            logger.info("Waiting for %d in-flight tick(s) to finish", len(pending))
            _, still_running = await asyncio.wait(pending, timeout=timeout)
            if still_running:
                logger.warning(
                    "%d tick(s) still running after stop timeout", len(still_running)
                )
        logger.info("Clock driver stopped")
        return True

    def states(self) -> list[JobState]:
        return [
            JobState(
                name=job.name,
                schedule=job.spec,
                next_run_at=job.next_run_at,
                last_fired_at=job.last_fired_at,
                in_flight=self._is_in_flight(job.name),
            )
            for job in self._jobs.values()
        ]

    def _is_in_flight(self, name: str) -> bool:
        task = self._in_flight.get(name)
        return task is not None and not task.done()

    def _seconds_until_due(self, job: _Job, last: datetime) -> float:
        return job.schedule.remaining_estimate(last).total_seconds()

    async def _loop(self, job: _Job) -> None:
        assert self._stopping is not None
        last = self._now()
        while not self._stopping.is_set():
            delay = max(0.0, self._seconds_until_due(job, last))
            job.next_run_at = self._now() + timedelta(seconds=delay)
            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=delay)
                return
            except TimeoutError:
                pass

            # Timers may wake a hair early; wait out the remainder.
            if self._seconds_until_due(job, last) > 0:
                continue

            last = self._now()
            self._fire(job, last)

    def _fire(self, job: _Job, fired_at: datetime) -> None:
        if self._is_in_flight(job.name):
            logger.warning("Skipping %s tick: previous tick still running", job.name)
            SCHEDULER_TICKS.labels(job=job.name, outcome=OUTCOME_SKIPPED).inc()
            return
        job.last_fired_at = fired_at
        self._in_flight[job.name] = asyncio.create_task(
            self._run(job), name=f"tick:{job.name}"
        )

    async def _run(self, job: _Job) -> None:
        try:
            await job.handler()
        except Exception:
            # Handlers report their own failures; this keeps the driver alive
            # if one raises anyway.
            logger.exception("Unhandled error in %s tick", job.name)
