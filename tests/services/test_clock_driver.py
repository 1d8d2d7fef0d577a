from __future__ import annotations

import asyncio
from datetime import timedelta
from zoneinfo import ZoneInfo

import pytest
from prometheus_client import REGISTRY

from madrasa.services.clock_driver import ClockDriver, _schedule_app, parse_cron
from tests.factories import CAIRO, at


def _get_sample(name: str, labels: dict | None = None) -> float:
    value = REGISTRY.get_sample_value(name, labels=labels or {})
    return value if value is not None else 0.0


def _seconds_until_next(expression: str, now) -> float:
    schedule = parse_cron(expression, app=_schedule_app(CAIRO), nowfun=lambda: now)
    return schedule.remaining_estimate(now).total_seconds()


async def _noop() -> None:
    return None


# ---- cron parsing ----


def test_hourly_cron_fires_at_the_top_of_the_hour() -> None:
    assert _seconds_until_next("0 * * * *", at(2026, 3, 10, 10, 15)) == 2700


def test_five_minute_cron_is_aligned_to_the_clock() -> None:
    assert _seconds_until_next("*/5 * * * *", at(2026, 3, 10, 10, 2)) == 180


def test_daily_cron_fires_at_local_midnight() -> None:
    assert _seconds_until_next("0 0 * * *", at(2026, 3, 10, 23, 0)) == 3600


@pytest.mark.parametrize("expression", ["* * * *", "0 * * * * *", ""])
def test_cron_needs_five_fields(expression: str) -> None:
    with pytest.raises(ValueError, match="5 fields"):
        parse_cron(expression, app=_schedule_app(CAIRO), nowfun=lambda: at(2026, 3, 10))


def test_cron_rejects_garbage_fields() -> None:
    with pytest.raises(ValueError, match="invalid cron expression"):
        parse_cron("61 * * * *", app=_schedule_app(CAIRO), nowfun=lambda: at(2026, 3, 10))


# ---- registration ----


def test_register_needs_exactly_one_schedule() -> None:
    driver = ClockDriver(CAIRO)
    with pytest.raises(ValueError, match="exactly one"):
        driver.register("job", _noop)
    with pytest.raises(ValueError, match="exactly one"):
        driver.register("job", _noop, cron="* * * * *", every=timedelta(minutes=1))


def test_register_rejects_duplicates_and_bad_intervals() -> None:
    driver = ClockDriver(CAIRO)
    driver.register("job", _noop, cron="*/5 * * * *")
    with pytest.raises(ValueError, match="already registered"):
        driver.register("job", _noop, cron="*/5 * * * *")
    with pytest.raises(ValueError, match="positive"):
        driver.register("other", _noop, every=timedelta(0))


def test_states_describe_schedules() -> None:
    driver = ClockDriver(CAIRO)
    driver.register("release", _noop, cron="*/5 * * * *")
    driver.register("heartbeat", _noop, every=timedelta(seconds=90))
    states = {s.name: s for s in driver.states()}
    assert states["release"].schedule == "*/5 * * * *"
    assert states["heartbeat"].schedule == "every 90s"
    assert states["release"].next_run_at is None
    assert states["release"].in_flight is False


# ---- running ----


def test_start_and_stop_are_idempotent() -> None:
    async def scenario() -> list[bool]:
        driver = ClockDriver(ZoneInfo("UTC"))
        driver.register("hourly", _noop, cron="0 * * * *")
        outcomes = [await driver.start(), await driver.start()]
        assert driver.running is True
        assert driver.states()[0].next_run_at is not None
        outcomes += [await driver.stop(), await driver.stop()]
        assert driver.running is False
        return outcomes

    assert asyncio.run(scenario()) == [True, False, True, False]


def test_next_run_is_known_as_soon_as_start_returns() -> None:
    now = at(2026, 3, 10, 10, 15)

    async def scenario() -> dict:
        driver = ClockDriver(CAIRO, now=lambda: now)
        driver.register("hourly", _noop, cron="0 * * * *")
        driver.register("release", _noop, cron="*/5 * * * *")
        await driver.start()
        try:
            return {s.name: s.next_run_at for s in driver.states()}
        finally:
            await driver.stop()

    next_runs = asyncio.run(scenario())
    assert next_runs["hourly"] == at(2026, 3, 10, 11, 0)
    assert next_runs["release"] == at(2026, 3, 10, 10, 20)


def test_register_while_running_is_rejected() -> None:
    async def scenario() -> None:
        driver = ClockDriver(ZoneInfo("UTC"))
        driver.register("hourly", _noop, cron="0 * * * *")
        await driver.start()
        try:
            with pytest.raises(RuntimeError):
                driver.register("late", _noop, cron="0 * * * *")
        finally:
            await driver.stop()

    asyncio.run(scenario())


def test_interval_job_fires_repeatedly() -> None:
    async def scenario() -> int:
        calls = 0

        async def handler() -> None:
            nonlocal calls
            calls += 1

        driver = ClockDriver(ZoneInfo("UTC"))
        driver.register("fast", handler, every=timedelta(milliseconds=20))
        await driver.start()
        await asyncio.sleep(0.2)
        await driver.stop()
        return calls

    assert asyncio.run(scenario()) >= 2


def test_overlapping_fire_is_skipped() -> None:
    before = _get_sample("scheduler_ticks_total", {"job": "slow", "outcome": "skipped"})

    async def scenario() -> tuple[int, bool]:
        gate = asyncio.Event()
        calls = 0

        async def handler() -> None:
            nonlocal calls
            calls += 1
            await gate.wait()

        driver = ClockDriver(ZoneInfo("UTC"))
        driver.register("slow", handler, every=timedelta(milliseconds=20))
        await driver.start()
        await asyncio.sleep(0.2)
        in_flight = driver.states()[0].in_flight
        gate.set()
        await driver.stop()
        return calls, in_flight

    calls, in_flight = asyncio.run(scenario())
    assert calls == 1
    assert in_flight is True
    after = _get_sample("scheduler_ticks_total", {"job": "slow", "outcome": "skipped"})
    assert after - before >= 1


def test_stop_waits_for_in_flight_tick() -> None:
    async def scenario() -> list[str]:
        events: list[str] = []
        started = asyncio.Event()

        async def handler() -> None:
            started.set()
            await asyncio.sleep(0.1)
            events.append("finished")

        driver = ClockDriver(ZoneInfo("UTC"))
        driver.register("work", handler, every=timedelta(milliseconds=10))
        await driver.start()
        await started.wait()
        await driver.stop()
        events.append("stopped")
        return events

    assert asyncio.run(scenario()) == ["finished", "stopped"]


def test_failing_handler_does_not_kill_the_driver() -> None:
    async def scenario() -> int:
        calls = 0

        async def handler() -> None:
            nonlocal calls
            calls += 1
            raise RuntimeError("boom")

        driver = ClockDriver(ZoneInfo("UTC"))
        driver.register("flaky", handler, every=timedelta(milliseconds=20))
        await driver.start()
        await asyncio.sleep(0.2)
        await driver.stop()
        return calls

    assert asyncio.run(scenario()) >= 2
