from __future__ import annotations

from datetime import datetime, timezone

from madrasa.models.tick import TickReport
from madrasa.services.run_history import (
    InMemoryRunHistory,
    RedisRunHistory,
    RunHistory,
    build_run_history,
)
from tests.factories import run

STARTED = datetime(2026, 3, 10, 10, 0, tzinfo=timezone.utc)


class FakeRedis:
    """The two redis.asyncio calls RedisRunHistory makes."""

    def __init__(self) -> None:
        self.data: dict[str, str] = {}
        self.ttl: dict[str, int] = {}

    async def set(self, key: str, value: str, ex: int | None = None) -> None:
        self.data[key] = value
        if ex is not None:
            self.ttl[key] = ex

    async def get(self, key: str) -> str | None:
        return self.data.get(key)


def _report(job: str = "release-tasks", outcome: str = "ok") -> TickReport:
    return TickReport(
        job=job,
        outcome=outcome,
        started_at=STARTED,
        finished_at=STARTED.replace(second=3),
        counts={"released": 2},
    )


def test_in_memory_history_keeps_latest() -> None:
    history = InMemoryRunHistory()
    assert isinstance(history, RunHistory)
    run(history.record(_report(outcome="error")))
    run(history.record(_report()))
    assert run(history.last("release-tasks")) == _report()
    assert run(history.last("auto-launch")) is None


def test_redis_history_round_trips_reports() -> None:
    redis = FakeRedis()
    history = RedisRunHistory(redis)

    run(history.record(_report()))

    assert "scheduler:last_run:release-tasks" in redis.data
    assert redis.ttl["scheduler:last_run:release-tasks"] == 7 * 24 * 3600
    assert run(history.last("release-tasks")) == _report()
    assert run(history.last("auto-launch")) is None


def test_build_picks_in_memory_without_redis(monkeypatch) -> None:
    monkeypatch.setattr("madrasa.db.redis.redis_pool", None)
    assert isinstance(build_run_history(), InMemoryRunHistory)


def test_build_picks_redis_when_configured(monkeypatch) -> None:
    redis = FakeRedis()
    monkeypatch.setattr("madrasa.db.redis.redis_pool", redis)

    history = build_run_history()
    run(history.record(_report()))

    assert isinstance(history, RedisRunHistory)
    assert "scheduler:last_run:release-tasks" in redis.data


def test_built_histories_are_independent(monkeypatch) -> None:
    monkeypatch.setattr("madrasa.db.redis.redis_pool", None)
    first, second = build_run_history(), build_run_history()
    run(first.record(_report()))
    assert run(second.last("release-tasks")) is None
