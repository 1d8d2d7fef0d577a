from __future__ import annotations

import asyncio

import pytest

from madrasa import worker
from madrasa.services.scheduler import Scheduler


def test_worker_starts_and_stops_scheduler(monkeypatch: pytest.MonkeyPatch) -> None:
    seen: list[Scheduler] = []
    real_start = Scheduler.start

    async def spy_start(self: Scheduler) -> dict:
        seen.append(self)
        return await real_start(self)

    monkeypatch.setattr(Scheduler, "start", spy_start)

    async def main() -> None:
        stop = asyncio.Event()
        task = asyncio.create_task(worker.run_worker(stop))
        await asyncio.sleep(0.05)
        assert seen and seen[0].running
        stop.set()
        await asyncio.wait_for(task, timeout=5)

    asyncio.run(main())

    assert seen[0].running is False
