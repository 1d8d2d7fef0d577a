from __future__ import annotations

from datetime import date
from uuid import uuid4

import pytest

from madrasa.models.task import STATUS_ACTIVE, STATUS_EXPIRED, TaskPenalty
from tests.factories import (
    active_task,
    at,
    enrollment,
    launched_course,
    make_store,
    pending_task,
    run,
    schedule_entry,
)


def test_commit_keeps_changes() -> None:
    store = make_store()
    course = launched_course(date(2026, 3, 1))
    entry = schedule_entry(course)
    task = pending_task(course, uuid4(), entry)
    store.db.put(course, entry, task)

    async def scenario() -> None:
        async with store.begin() as uow:
            await uow.tasks.activate_for_schedule(entry.id, at(2026, 3, 1, 12))
            assert await uow.schedules.mark_released(entry.id) is True

    run(scenario())
    assert store.db.tasks[task.id].status == STATUS_ACTIVE
    assert store.db.schedules[entry.id].tasks_released is True


def test_exception_rolls_back_every_table() -> None:
    store = make_store()
    course = launched_course(date(2026, 3, 1))
    task = active_task(course, uuid4(), due=at(2026, 3, 1))
    store.db.put(course, task)

    async def scenario() -> None:
        async with store.begin() as uow:
            await uow.penalties.add(
                TaskPenalty.new(
                    task=task,
                    penalty_percentage=10,
                    penalty_reason="late",
                    applied_at=at(2026, 3, 2),
                )
            )
            await uow.tasks.set_status(task.id, STATUS_EXPIRED)
            raise RuntimeError("boom")

    with pytest.raises(RuntimeError):
        run(scenario())
    assert store.db.penalties == {}
    assert store.db.tasks[task.id].status == STATUS_ACTIVE


def test_penalty_add_is_unique_per_task_and_user() -> None:
    store = make_store()
    course = launched_course(date(2026, 3, 1))
    task = active_task(course, uuid4(), due=at(2026, 3, 1))

    def penalty() -> TaskPenalty:
        return TaskPenalty.new(
            task=task, penalty_percentage=10, penalty_reason="late", applied_at=at(2026, 3, 2)
        )

    async def scenario() -> tuple[bool, bool]:
        async with store.begin() as uow:
            first = await uow.penalties.add(penalty())
            second = await uow.penalties.add(penalty())
        return first, second

    assert run(scenario()) == (True, False)


def test_set_status_only_moves_active_tasks() -> None:
    store = make_store()
    course = launched_course(date(2026, 3, 1))
    task = pending_task(course, uuid4())
    store.db.put(course, task)

    async def scenario() -> bool:
        async with store.begin() as uow:
            return await uow.tasks.set_status(task.id, STATUS_EXPIRED)

    assert run(scenario()) is False


def test_enrollment_penalty_merges_into_grade() -> None:
    store = make_store()
    course = launched_course(date(2026, 3, 1))
    member = enrollment(course)
    store.db.put(course, member)

    async def scenario() -> tuple[float | None, float | None]:
        async with store.begin() as uow:
            first = await uow.enrollments.add_penalty(member.user_id, course.id, 10)
            second = await uow.enrollments.add_penalty(member.user_id, course.id, 15)
        return first, second

    assert run(scenario()) == (10.0, 25.0)
    assert store.db.enrollments[(member.user_id, course.id)].grade == {"penalty_total": 25.0}


def test_enrollment_penalty_without_enrollment_returns_none() -> None:
    store = make_store()

    async def scenario() -> float | None:
        async with store.begin() as uow:
            return await uow.enrollments.add_penalty(uuid4(), uuid4(), 10)

    assert run(scenario()) is None


def test_put_rejects_unknown_records() -> None:
    with pytest.raises(TypeError):
        make_store().db.put(object())
