from __future__ import annotations

from datetime import date, time
from uuid import uuid4

import pytest
from prometheus_client import REGISTRY

from madrasa.models.course import COURSE_PUBLISHED
from madrasa.models.notification import NEW_TASK
from madrasa.models.task import STATUS_ACTIVE, STATUS_PENDING
from madrasa.repos.schedule_repo import InMemoryScheduleRepo
from madrasa.services.release_engine import ReleaseEngine
from tests.factories import (
    FixedClock,
    at,
    launched_course,
    make_store,
    pending_task,
    run,
    schedule_entry,
)


def _get_sample(name: str, labels: dict | None = None) -> float:
    value = REGISTRY.get_sample_value(name, labels=labels or {})
    return value if value is not None else 0.0


def _seed_meeting_day():
    store = make_store()
    course = launched_course(date(2026, 3, 10))
    entry = schedule_entry(course, day_number=1, meeting_end=time(11, 0))
    alice, bob = uuid4(), uuid4()
    tasks = [
        pending_task(course, alice, entry),
        pending_task(course, alice, entry, task_type="daily_quiz"),
        pending_task(course, bob, entry),
    ]
    store.db.put(course, entry, *tasks)
    return store, entry, tasks, {alice, bob}


def test_tasks_stay_hidden_until_meeting_ends() -> None:
    store, entry, tasks, _ = _seed_meeting_day()
    clock = FixedClock(at(2026, 3, 10, 10, 55))

    result = run(ReleaseEngine(store, clock).run())

    assert result.error is None
    assert result.counts.get("released", 0) == 0
    assert all(store.db.tasks[t.id].status == STATUS_PENDING for t in tasks)
    assert store.db.schedules[entry.id].tasks_released is False


def test_release_after_meeting_end_activates_and_notifies_once_per_user() -> None:
    store, entry, tasks, users = _seed_meeting_day()
    clock = FixedClock(at(2026, 3, 10, 11, 5))
    before = _get_sample("tasks_released_total")

    result = run(ReleaseEngine(store, clock).run())

    assert result.error is None
    assert result.counts["released"] == 3
    assert result.counts["notified"] == 2
    for task in tasks:
        released = store.db.tasks[task.id]
        assert released.is_active is True
        assert released.status == STATUS_ACTIVE
        assert released.released_at == clock.now()
    assert store.db.schedules[entry.id].tasks_released is True

    notices = [n for n in store.db.notifications if n.type == NEW_TASK]
    assert {n.user_id for n in notices} == users
    assert _get_sample("tasks_released_total") - before == 3


def test_release_is_idempotent() -> None:
    store, _, _, _ = _seed_meeting_day()
    clock = FixedClock(at(2026, 3, 10, 11, 5))
    engine = ReleaseEngine(store, clock)

    run(engine.run())
    clock.advance(minutes=5)
    second = run(engine.run())

    assert second.counts.get("released", 0) == 0
    assert second.counts["entries"] == 0
    assert len(store.db.notifications) == 2


def test_past_days_are_caught_up() -> None:
    store = make_store()
    course = launched_course(date(2026, 3, 1))
    entries = [schedule_entry(course, d, meeting_end=time(20, 0)) for d in (1, 2, 3)]
    store.db.put(course, *entries, *(pending_task(course, uuid4(), e) for e in entries))

    result = run(ReleaseEngine(store, FixedClock(at(2026, 3, 10, 8))).run())

    assert result.counts["entries"] == 3
    assert result.counts["released"] == 3
    assert all(store.db.schedules[e.id].tasks_released for e in entries)


def test_unlaunched_courses_are_not_released() -> None:
    store = make_store()
    course = launched_course(
        date(2026, 3, 1), is_launched=False, status=COURSE_PUBLISHED
    )
    entry = schedule_entry(course)
    task = pending_task(course, uuid4(), entry)
    store.db.put(course, entry, task)

    result = run(ReleaseEngine(store, FixedClock(at(2026, 3, 10, 12))).run())

    assert result.counts["entries"] == 0
    assert store.db.tasks[task.id].status == STATUS_PENDING


def test_entry_without_tasks_is_still_marked_released() -> None:
    store = make_store()
    course = launched_course(date(2026, 3, 1))
    entry = schedule_entry(course)
    store.db.put(course, entry)

    result = run(ReleaseEngine(store, FixedClock(at(2026, 3, 10, 12))).run())

    assert result.counts["released"] == 0
    assert store.db.schedules[entry.id].tasks_released is True
    assert store.db.notifications == []


def test_failure_mid_entry_rolls_back_activation(monkeypatch: pytest.MonkeyPatch) -> None:
    store, entry, tasks, _ = _seed_meeting_day()
    clock = FixedClock(at(2026, 3, 10, 11, 5))

    async def dropped_connection(self, schedule_id):
        raise ConnectionResetError("connection reset by peer")

    monkeypatch.setattr(InMemoryScheduleRepo, "mark_released", dropped_connection)

    result = run(ReleaseEngine(store, clock).run())

    assert result.error is not None
    assert result.counts.get("released", 0) == 0
    assert all(store.db.tasks[t.id].is_active is False for t in tasks)
    assert all(store.db.tasks[t.id].status == STATUS_PENDING for t in tasks)
    assert store.db.schedules[entry.id].tasks_released is False
    assert store.db.notifications == []

    # The entry stays eligible for the next tick.
    monkeypatch.undo()
    retry = run(ReleaseEngine(store, clock).run())
    assert retry.counts["released"] == 3
    assert store.db.schedules[entry.id].tasks_released is True


def test_lost_release_race_rolls_back(monkeypatch: pytest.MonkeyPatch) -> None:
    store, entry, tasks, _ = _seed_meeting_day()

    async def already_released(self, schedule_id):
        return False

    monkeypatch.setattr(InMemoryScheduleRepo, "mark_released", already_released)

    result = run(ReleaseEngine(store, FixedClock(at(2026, 3, 10, 11, 5))).run())

    assert result.error is None
    assert result.counts["conflicts"] == 1
    assert all(store.db.tasks[t.id].status == STATUS_PENDING for t in tasks)
    assert store.db.notifications == []
