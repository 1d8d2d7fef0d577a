from __future__ import annotations

from dataclasses import replace
from datetime import date, datetime, time, timedelta
from uuid import uuid4

from madrasa.models.course import CapacityTier
from madrasa.models.enrollment import ENROLLMENT_ACTIVE, ENROLLMENT_WAITING_START
from madrasa.models.task import (
    FREQUENCY_WEEKLY,
    STATUS_PENDING,
    SUBMISSION_COMPLETED,
    TaskPenalty,
    TaskSubmission,
    TaskTemplate,
)
from madrasa.repos.routines import overall_score, task_due_date
from tests.factories import (
    CAIRO,
    active_task,
    at,
    enrollment,
    launched_course,
    make_store,
    pending_task,
    published_course,
    run,
    schedule_entry,
)


def _submission(task, *, score: float | None, submitted_at: datetime) -> TaskSubmission:
    return TaskSubmission(
        id=uuid4(),
        task_id=task.id,
        user_id=task.assigned_to,
        status=SUBMISSION_COMPLETED,
        submitted_at=submitted_at,
        score=score,
    )


def test_overall_score_weights_and_floor() -> None:
    assert overall_score(100, 100, 100, 0) == 100.0
    assert overall_score(50, 80, 100, 0) == 72.0
    assert overall_score(10, 10, 10, 50) == 0.0


def test_task_due_date_counts_from_meeting_end() -> None:
    due = task_due_date(date(2026, 3, 10), time(20, 0), 24, CAIRO)
    assert due == at(2026, 3, 11, 20)
    assert task_due_date(date(2026, 3, 10), None, 12, CAIRO) == at(2026, 3, 10, 12)


def test_calculate_user_performance() -> None:
    store = make_store()
    course = launched_course(date(2026, 3, 1))
    member = enrollment(course)
    user = member.user_id
    due = at(2026, 3, 5, 12)

    on_time = active_task(course, user, due=due)
    late = active_task(course, user, due=due)
    missed = active_task(course, user, due=due)
    unreleased = pending_task(course, user)
    store.db.put(
        course,
        member,
        on_time,
        late,
        missed,
        unreleased,
        _submission(on_time, score=90, submitted_at=due - timedelta(hours=1)),
        _submission(late, score=70, submitted_at=due + timedelta(hours=1)),
        TaskPenalty.new(
            task=missed, penalty_percentage=10, penalty_reason="x", applied_at=due
        ),
    )

    async def scenario() -> dict:
        async with store.begin() as uow:
            return await uow.routines.calculate_user_performance(user, course.id)

    payload = run(scenario())
    assert payload["total_tasks"] == 3
    assert payload["completed_tasks"] == 2
    assert payload["task_completion_rate"] == 66.67
    assert payload["average_grade"] == 80.0
    assert payload["on_time_completion_rate"] == 50.0
    assert payload["penalty_total"] == 10.0
    # 0.4*66.67 + 0.4*80 + 0.2*50 - 10
    assert payload["overall_score"] == 58.67


def test_calculate_user_performance_without_enrollment() -> None:
    store = make_store()

    async def scenario() -> dict:
        async with store.begin() as uow:
            return await uow.routines.calculate_user_performance(uuid4(), uuid4())

    assert run(scenario()) == {"error": "enrollment not found"}


def test_check_auto_launch_counts_waiting_and_active() -> None:
    store = make_store()
    course = published_course(date(2026, 3, 11), {3: CapacityTier(min=2)}, on_min=True)
    store.db.put(
        course,
        enrollment(course, status=ENROLLMENT_WAITING_START),
        enrollment(course, status=ENROLLMENT_ACTIVE),
    )

    async def scenario(today: date) -> bool:
        async with store.begin() as uow:
            return await uow.routines.check_auto_launch_conditions(course.id, today)

    assert run(scenario(date(2026, 3, 10))) is True
    assert run(scenario(date(2026, 3, 8))) is False


def test_check_auto_launch_rejects_launched_course() -> None:
    store = make_store()
    course = published_course(date(2026, 3, 11), {3: CapacityTier(min=1)}, on_min=True)
    store.db.put(replace(course, is_launched=True), enrollment(course))

    async def scenario() -> bool:
        async with store.begin() as uow:
            return await uow.routines.check_auto_launch_conditions(
                course.id, date(2026, 3, 10)
            )

    assert run(scenario()) is False


def test_generate_daily_tasks_is_idempotent() -> None:
    store = make_store()
    course = launched_course(date(2026, 3, 1))
    days = [schedule_entry(course, d, meeting_end=time(20, 0)) for d in range(1, 8)]
    daily = TaskTemplate(
        id=uuid4(),
        course_id=course.id,
        level_number=3,
        task_type="daily_reading",
        title="ورد اليوم {day}",
        due_hours=24,
    )
    weekly = TaskTemplate(
        id=uuid4(),
        course_id=course.id,
        level_number=3,
        task_type="weekly_report",
        title="تقرير الأسبوع {week}",
        frequency=FREQUENCY_WEEKLY,
        due_hours=48,
    )
    teacher = enrollment(course, level=2)
    student = enrollment(course, level=3)
    store.db.put(course, *days, daily, weekly, teacher, student)

    async def scenario() -> int:
        async with store.begin() as uow:
            return await uow.routines.generate_daily_tasks_for_course(course.id)

    # 7 daily + 2 weekly (day 1 and day 7), student level only
    assert run(scenario()) == 9
    assert run(scenario()) == 0

    tasks = list(store.db.tasks.values())
    assert {t.assigned_to for t in tasks} == {student.user_id}
    assert all(t.status == STATUS_PENDING and not t.is_active for t in tasks)
    day_one = next(t for t in tasks if t.schedule_id == days[0].id and t.template_id == daily.id)
    assert day_one.title == "ورد اليوم 1"
    assert day_one.due_date == at(2026, 3, 2, 20)
