from __future__ import annotations

from collections import defaultdict

from madrasa import cli
from madrasa.models.tick import OUTCOME_ERROR, OUTCOME_OK, TickReport
from madrasa.services.scheduler import AUTO_LAUNCH, EVALUATE_PERFORMANCE, RELEASE_TASKS
from tests.factories import FixedClock, at, run


class FakeScheduler:
    """Answers run_job from a per-job script of outcomes, then ok."""

    def __init__(self, clock: FixedClock, script: dict[str, list[str]] | None = None):
        self._clock = clock
        self._script = {job: list(outcomes) for job, outcomes in (script or {}).items()}
        self.calls: dict[str, int] = defaultdict(int)

    async def run_job(self, name: str) -> TickReport:
        self.calls[name] += 1
        pending = self._script.get(name)
        outcome = pending.pop(0) if pending else OUTCOME_OK
        now = self._clock.now()
        return TickReport(
            job=name,
            outcome=outcome,
            started_at=now,
            finished_at=now,
            error="boom" if outcome == OUTCOME_ERROR else None,
        )


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def test_evaluation_skipped_off_the_four_hour_mark() -> None:
    clock = FixedClock(at(2025, 3, 10, 9, 15))
    scheduler = FakeScheduler(clock)

    code = run(cli.run_once(scheduler, clock, sleep=RecordingSleep()))  # type: ignore[arg-type]

    assert code == 0
    assert set(scheduler.calls) == {RELEASE_TASKS, AUTO_LAUNCH}


def test_evaluation_included_on_the_four_hour_mark() -> None:
    clock = FixedClock(at(2025, 3, 10, 8, 0))
    scheduler = FakeScheduler(clock)

    code = run(cli.run_once(scheduler, clock, sleep=RecordingSleep()))  # type: ignore[arg-type]

    assert code == 0
    assert set(scheduler.calls) == {RELEASE_TASKS, EVALUATE_PERFORMANCE, AUTO_LAUNCH}
    assert all(count == 1 for count in scheduler.calls.values())


def test_transient_failure_is_retried() -> None:
    clock = FixedClock(at(2025, 3, 10, 9, 0))
    scheduler = FakeScheduler(clock, {RELEASE_TASKS: [OUTCOME_ERROR, OUTCOME_ERROR]})
    sleep = RecordingSleep()

    code = run(cli.run_once(scheduler, clock, delay=2.5, sleep=sleep))  # type: ignore[arg-type]

    assert code == 0
    assert scheduler.calls[RELEASE_TASKS] == 3
    assert sleep.delays == [2.5, 2.5]


def test_exhausted_retries_fail_the_run() -> None:
    clock = FixedClock(at(2025, 3, 10, 9, 0))
    scheduler = FakeScheduler(clock, {AUTO_LAUNCH: [OUTCOME_ERROR] * 5})
    sleep = RecordingSleep()

    code = run(cli.run_once(scheduler, clock, sleep=sleep))  # type: ignore[arg-type]

    assert code == 1
    assert scheduler.calls[AUTO_LAUNCH] == cli.MAX_RETRIES
    assert scheduler.calls[RELEASE_TASKS] == 1
    # No sleep after the last attempt
    assert sleep.delays == [cli.RETRY_DELAY_SECONDS] * (cli.MAX_RETRIES - 1)
