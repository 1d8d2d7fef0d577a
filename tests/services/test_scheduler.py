from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from datetime import date, time
from uuid import uuid4

import pytest
from prometheus_client import REGISTRY

from madrasa.core.logging import job_var
from madrasa.services.errors import UnknownJobError
from madrasa.services.run_history import InMemoryRunHistory
from madrasa.services.scheduler import (
    DEFAULT_JOBS,
    RELEASE_TASKS,
    JobSpec,
    Scheduler,
)
from tests.factories import (
    FixedClock,
    at,
    launched_course,
    make_store,
    pending_task,
    run,
    schedule_entry,
)

NOW = at(2026, 3, 10, 12)


def _get_sample(name: str, labels: dict | None = None) -> float:
    value = REGISTRY.get_sample_value(name, labels=labels or {})
    return value if value is not None else 0.0


class UnreachableStore:
    """Every transaction fails as if the database host vanished."""

    @asynccontextmanager
    async def begin(self):
        raise ConnectionResetError("connection reset by peer")
        yield  # pragma: no cover

    async def ping(self) -> bool:
        raise ConnectionResetError("connection reset by peer")


def _scheduler(store=None, history=None) -> Scheduler:
    return Scheduler(
        store if store is not None else make_store(),
        FixedClock(NOW),
        history=history if history is not None else InMemoryRunHistory(),
    )


def test_default_jobs() -> None:
    schedules = {spec.name: spec.cron for spec in DEFAULT_JOBS}
    assert schedules == {
        "release-tasks": "*/5 * * * *",
        "expire-daily-tasks": "0 * * * *",
        "deadline-reminders": "0 */6 * * *",
        "evaluate-performance": "0 */6 * * *",
        "auto-launch": "0 */12 * * *",
        "overdue-fixed-tasks": "0 0 * * *",
    }


def test_run_job_reports_engine_counts_and_records_history() -> None:
    store = make_store()
    course = launched_course(date(2026, 3, 10))
    entry = schedule_entry(course, meeting_end=time(11, 0))
    store.db.put(course, entry, pending_task(course, uuid4(), entry))
    history = InMemoryRunHistory()
    scheduler = _scheduler(store, history)
    before = _get_sample("scheduler_ticks_total", {"job": RELEASE_TASKS, "outcome": "ok"})

    report = run(scheduler.run_job(RELEASE_TASKS))

    assert report.ok is True
    assert report.job == RELEASE_TASKS
    assert report.counts["released"] == 1
    assert run(history.last(RELEASE_TASKS)) == report
    after = _get_sample("scheduler_ticks_total", {"job": RELEASE_TASKS, "outcome": "ok"})
    assert after - before == 1


def test_run_job_turns_store_failure_into_error_report() -> None:
    scheduler = _scheduler(UnreachableStore())
    before = _get_sample(
        "scheduler_ticks_total", {"job": "auto-launch", "outcome": "error"}
    )

    report = run(scheduler.run_job("auto-launch"))

    assert report.ok is False
    assert report.outcome == "error"
    assert "connection was reset" in (report.error or "")
    after = _get_sample(
        "scheduler_ticks_total", {"job": "auto-launch", "outcome": "error"}
    )
    assert after - before == 1


def test_run_job_survives_an_engine_that_raises(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    scheduler = _scheduler()

    async def explode():
        raise RuntimeError("bug")

    monkeypatch.setitem(scheduler._handlers, RELEASE_TASKS, explode)

    report = run(scheduler.run_job(RELEASE_TASKS))

    assert report.outcome == "error"
    assert report.error == "RuntimeError: bug"


def test_run_job_sets_and_resets_job_context() -> None:
    scheduler = _scheduler()
    seen: list[str] = []

    async def spy():
        seen.append(job_var.get())
        return await scheduler.release.run()

    scheduler._handlers[RELEASE_TASKS] = spy
    run(scheduler.run_job(RELEASE_TASKS))

    assert seen == [RELEASE_TASKS]
    assert job_var.get() == "-"


def test_unknown_job() -> None:
    with pytest.raises(UnknownJobError):
        run(_scheduler().run_job("launch-rockets"))


def test_unknown_job_spec_is_rejected() -> None:
    with pytest.raises(UnknownJobError):
        Scheduler(
            make_store(),
            FixedClock(NOW),
            history=InMemoryRunHistory(),
            jobs=[JobSpec("launch-rockets", cron="* * * * *")],
        )


def test_start_stop_lifecycle() -> None:
    scheduler = _scheduler()

    async def scenario() -> list[dict]:
        results = [await scheduler.start(), await scheduler.start()]
        assert _get_sample("scheduler_running") == 1
        results += [await scheduler.stop(), await scheduler.stop()]
        assert _get_sample("scheduler_running") == 0
        return results

    assert asyncio.run(scenario()) == [
        {"started": True, "status": "running"},
        {"started": False, "status": "already running"},
        {"stopped": True, "status": "stopped"},
        {"stopped": False, "status": "not running"},
    ]


def test_status_lists_every_job_with_last_run() -> None:
    scheduler = _scheduler()
    run(scheduler.run_job("deadline-reminders"))

    status = run(scheduler.status())

    assert status["running"] is False
    assert status["timezone"] == "Africa/Cairo"
    assert status["uptime_seconds"] is None
    jobs = {j["name"]: j for j in status["jobs"]}
    assert set(jobs) == {spec.name for spec in DEFAULT_JOBS}
    assert jobs["release-tasks"]["schedule"] == "*/5 * * * *"
    assert jobs["deadline-reminders"]["last_run"]["outcome"] == "ok"
    assert jobs["auto-launch"]["last_run"] is None


def test_status_while_running_reports_next_fire_and_uptime() -> None:
    scheduler = _scheduler()

    async def scenario() -> dict:
        await scheduler.start()
        await asyncio.sleep(0)
        try:
            return await scheduler.status()
        finally:
            await scheduler.stop()

    status = asyncio.run(scenario())
    assert status["running"] is True
    assert status["started_at"] == NOW.isoformat()
    assert status["uptime_seconds"] == 0.0
    jobs = {j["name"]: j for j in status["jobs"]}
    # Pinned at 12:00, the next five-minute boundary is 12:05.
    assert jobs["release-tasks"]["next_run_at"].startswith("2026-03-10T12:05")


def test_two_schedulers_are_independent() -> None:
    first, second = _scheduler(), _scheduler()

    async def scenario() -> tuple[bool, bool]:
        await first.start()
        try:
            return first.running, second.running
        finally:
            await first.stop()

    assert asyncio.run(scenario()) == (True, False)
