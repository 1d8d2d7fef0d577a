"""Last-run record per scheduler job.

The worker process runs the jobs; the API process answers /status.
Keeping the last TickReport of each job in Redis lets any process report
what happened most recently.  Without Redis the history is per process.

Same shape as the other Redis-backed services: a Protocol, an in-memory
implementation for tests and a Redis implementation.  build_run_history()
picks one by whether REDIS_URL is configured; each process entry point
calls it once and hands the result to its Scheduler.
"""

from __future__ import annotations

import json
from typing import Protocol, runtime_checkable

from madrasa.db import redis as redis_db
from madrasa.models.tick import TickReport


@runtime_checkable
class RunHistory(Protocol):
    async def record(self, report: TickReport) -> None: ...
    async def last(self, job: str) -> TickReport | None: ...


class InMemoryRunHistory:
    def __init__(self) -> None:
        self._reports: dict[str, TickReport] = {}

    async def record(self, report: TickReport) -> None:
        self._reports[report.job] = report

    async def last(self, job: str) -> TickReport | None:
        return self._reports.get(job)


class RedisRunHistory:
    _PREFIX = "scheduler:last_run:"
    # A job that has not reported in a week is not "last run" information
    _TTL_SECONDS = 7 * 24 * 3600

    def __init__(self, redis_client) -> None:
        self._redis = redis_client

    async def record(self, report: TickReport) -> None:
        await self._redis.set(
            f"{self._PREFIX}{report.job}",
            json.dumps(report.to_json()),
            ex=self._TTL_SECONDS,
        )

    async def last(self, job: str) -> TickReport | None:
        raw = await self._redis.get(f"{self._PREFIX}{job}")
        if raw is None:
            return None
        return TickReport.from_json(json.loads(raw))


def build_run_history() -> RunHistory:
    """RedisRunHistory when REDIS_URL is configured, otherwise in-memory."""
    if redis_db.redis_pool is not None:
        return RedisRunHistory(redis_db.redis_pool)
    return InMemoryRunHistory()
