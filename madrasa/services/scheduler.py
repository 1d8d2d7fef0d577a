"""The scheduler: engines, their jobs, and the clock that fires them.

A Scheduler is an ordinary object owned by whoever hosts it (the API's
lifespan keeps it on ``app.state.scheduler``; the worker holds it in a
local).  There is no module-level "started" flag: two Scheduler
instances are two independent schedulers.

Every job, whether fired by the clock, the CLI or the HTTP run endpoint,
goes through ``run_job``, which:

  - sets the job name on log records (``job_var``)
  - calls the engine and converts its result into a TickReport
  - turns an unexpected exception into an "error" report (never raises)
  - records tick metrics and the last-run history
"""

from __future__ import annotations

import logging
import time
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta
from functools import partial

from madrasa.core.clock import Clock
from madrasa.core.logging import job_var
from madrasa.core.metrics import (
    SCHEDULER_RUNNING,
    SCHEDULER_TICK_DURATION,
    SCHEDULER_TICKS,
)
from madrasa.models.tick import OUTCOME_ERROR, OUTCOME_OK, EngineResult, TickReport
from madrasa.repos.unit_of_work import Store
from madrasa.services.auto_launch import AutoLaunchMonitor
from madrasa.services.clock_driver import ClockDriver
from madrasa.services.errors import UnknownJobError
from madrasa.services.expiry_engine import ExpiryEngine
from madrasa.services.performance_evaluator import PerformanceEvaluator
from madrasa.services.release_engine import ReleaseEngine
from madrasa.services.reminders import ReminderEngine
from madrasa.services.run_history import InMemoryRunHistory, RunHistory

logger = logging.getLogger(__name__)

RELEASE_TASKS = "release-tasks"
EXPIRE_DAILY_TASKS = "expire-daily-tasks"
OVERDUE_FIXED_TASKS = "overdue-fixed-tasks"
DEADLINE_REMINDERS = "deadline-reminders"
EVALUATE_PERFORMANCE = "evaluate-performance"
AUTO_LAUNCH = "auto-launch"


@dataclass(frozen=True, slots=True)
class JobSpec:
    name: str
    cron: str | None = None
    every: timedelta | None = None


# In-flight ticks get this long to finish when the host process shuts down.
SHUTDOWN_TIMEOUT_SECONDS = 60.0

DEFAULT_JOBS: tuple[JobSpec, ...] = (
    JobSpec(RELEASE_TASKS, cron="*/5 * * * *"),
    JobSpec(EXPIRE_DAILY_TASKS, cron="0 * * * *"),
    JobSpec(DEADLINE_REMINDERS, cron="0 */6 * * *"),
    JobSpec(EVALUATE_PERFORMANCE, cron="0 */6 * * *"),
    JobSpec(AUTO_LAUNCH, cron="0 */12 * * *"),
    JobSpec(OVERDUE_FIXED_TASKS, cron="0 0 * * *"),
)


def _iso(value: datetime | None) -> str | None:
    return None if value is None else value.isoformat()


class Scheduler:
    def __init__(
        self,
        store: Store,
        clock: Clock,
        *,
        history: RunHistory | None = None,
        driver: ClockDriver | None = None,
        jobs: Iterable[JobSpec] = DEFAULT_JOBS,
    ) -> None:
        self._clock = clock
        self._history = history if history is not None else InMemoryRunHistory()
        self._driver = driver if driver is not None else ClockDriver(clock.tz, now=clock.now)
        self._started_at: datetime | None = None

        self.release = ReleaseEngine(store, clock)
        self.expiry = ExpiryEngine(store, clock)
        self.evaluator = PerformanceEvaluator(store, clock)
        self.auto_launch = AutoLaunchMonitor(store, clock)
        self.reminders = ReminderEngine(store, clock)

        self._handlers: dict[str, Callable[[], Awaitable[EngineResult]]] = {
            RELEASE_TASKS: self.release.run,
            EXPIRE_DAILY_TASKS: self.expiry.expire_daily_tasks,
            OVERDUE_FIXED_TASKS: self.expiry.mark_overdue_fixed_tasks,
            DEADLINE_REMINDERS: self.reminders.run,
            EVALUATE_PERFORMANCE: self.evaluator.run,
            AUTO_LAUNCH: self.auto_launch.run,
        }
        for spec in jobs:
            if spec.name not in self._handlers:
                raise UnknownJobError(spec.name)
            self._driver.register(
                spec.name, partial(self.run_job, spec.name), cron=spec.cron, every=spec.every
            )

    @property
    def running(self) -> bool:
        return self._driver.running

    def job_names(self) -> list[str]:
        return list(self._handlers)

    async def start(self) -> dict:
        """Idempotent: a second call reports "already running"."""
        if not await self._driver.start():
            logger.info("Scheduler start requested but it is already running")
            return {"started": False, "status": "already running"}
        self._started_at = self._clock.now()
        SCHEDULER_RUNNING.set(1)
        logger.info(
            "Scheduler started (timezone=%s, jobs=%s)",
            self._clock.tz.key,
            ", ".join(self._driver.job_names()),
        )
        return {"started": True, "status": "running"}

    async def stop(self, *, wait: bool = True, timeout: float | None = None) -> dict:
        """Halt future ticks; in-flight ticks are never cancelled."""
        if not await self._driver.stop(wait=wait, timeout=timeout):
            return {"stopped": False, "status": "not running"}
        self._started_at = None
        SCHEDULER_RUNNING.set(0)
        logger.info("Scheduler stopped")
        return {"stopped": True, "status": "stopped"}

    async def status(self) -> dict:
        now = self._clock.now()
        uptime = (
            (now - self._started_at).total_seconds()
            if self._started_at is not None
            else None
        )
        jobs = []
        for state in self._driver.states():
            last = await self._last_report(state.name)
            jobs.append(
                {
                    "name": state.name,
                    "schedule": state.schedule,
                    "next_run_at": _iso(state.next_run_at),
                    "in_flight": state.in_flight,
                    "last_run": None if last is None else last.to_json(),
                }
            )
        return {
            "running": self.running,
            "started_at": _iso(self._started_at),
            "uptime_seconds": None if uptime is None else round(uptime, 1),
            "timezone": self._clock.tz.key,
            "jobs": jobs,
        }

    async def _last_report(self, name: str) -> TickReport | None:
        try:
            return await self._history.last(name)
        except Exception:
            logger.warning("Could not read run history for %s", name, exc_info=True)
            return None

    async def run_job(self, name: str) -> TickReport:
        """Run one tick of ``name`` now and report what it did."""
        handler = self._handlers.get(name)
        if handler is None:
            raise UnknownJobError(name)

        token = job_var.set(name)
        try:
            started_at = self._clock.now()
            t0 = time.monotonic()
            try:
                result = await handler()
            except Exception as exc:
                logger.exception("Job %s raised", name)
                result = EngineResult(error=f"{type(exc).__name__}: {exc}")
            duration = time.monotonic() - t0

            outcome = OUTCOME_OK if result.error is None else OUTCOME_ERROR
            report = TickReport(
                job=name,
                outcome=outcome,
                started_at=started_at,
                finished_at=self._clock.now(),
                counts=dict(result.counts),
                error=result.error,
            )
            SCHEDULER_TICKS.labels(job=name, outcome=outcome).inc()
            SCHEDULER_TICK_DURATION.labels(job=name).observe(duration)
            logger.info(
                "Tick %s in %.2fs %s",
                outcome,
                duration,
                report.counts,
                extra={"outcome": outcome, "duration_ms": round(duration * 1000, 1)},
            )

            try:
                await self._history.record(report)
            except Exception:
                logger.warning("Could not record run history for %s", name, exc_info=True)
            return report
        finally:
            job_var.reset(token)
