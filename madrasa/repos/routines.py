"""Store-side routines the engines treat as black boxes.

In Postgres these are plpgsql functions created by the Alembic migration
``b7e2c41f9a10_scheduler_routines``:

  calculate_user_performance(user uuid, course uuid) → jsonb
  check_auto_launch_conditions(course uuid, today date) → boolean
  generate_daily_tasks_for_course(course uuid, tz text) → integer

InMemoryRoutines computes the same contracts in Python over the
in-memory tables, so every engine runs unchanged against either store.

Performance payload
-------------------
Only released (``is_active``) tasks count.

  task_completion_rate     completed / total × 100
  average_grade            mean of score / max_score × 100 over graded
                           completed submissions
  on_time_completion_rate  completed with no due date, or submitted by
                           the due date, / completed × 100
  penalty_total            sum of the user's penalty percentages
  overall_score            max(0, 0.4·completion + 0.4·grade
                                   + 0.2·timeliness − penalty_total)
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta
from typing import TYPE_CHECKING, Protocol
from uuid import UUID
from zoneinfo import ZoneInfo

from madrasa.models.enrollment import ENROLLMENT_ACTIVE, ENROLLMENT_WAITING_START
from madrasa.models.task import (
    STATUS_COMPLETED,
    SUBMISSION_COMPLETED,
    Task,
    TaskSubmission,
)

if TYPE_CHECKING:
    from madrasa.repos.unit_of_work import InMemoryDatabase

COMPLETION_WEIGHT = 0.4
QUALITY_WEIGHT = 0.4
TIMELINESS_WEIGHT = 0.2


class Routines(Protocol):
    async def calculate_user_performance(self, user_id: UUID, course_id: UUID) -> dict: ...
    async def check_auto_launch_conditions(self, course_id: UUID, today: date) -> bool: ...
    async def generate_daily_tasks_for_course(self, course_id: UUID) -> int: ...


def overall_score(
    completion_rate: float,
    average_grade: float,
    on_time_rate: float,
    penalty_total: float,
) -> float:
    raw = (
        COMPLETION_WEIGHT * completion_rate
        + QUALITY_WEIGHT * average_grade
        + TIMELINESS_WEIGHT * on_time_rate
        - penalty_total
    )
    return round(max(0.0, raw), 2)


def _pct(part: float, whole: float) -> float:
    return round(part / whole * 100, 2) if whole else 0.0


def performance_payload(
    *,
    level_number: int,
    tasks: list[Task],
    submissions: dict[UUID, TaskSubmission],
    penalty_total: float,
) -> dict:
    """Build the payload from a user's released tasks.

    ``submissions`` maps task id → that user's completed submission.
    """
    completed = [t for t in tasks if t.status == STATUS_COMPLETED or t.id in submissions]

    grades = []
    on_time = 0
    for task in completed:
        sub = submissions.get(task.id)
        if sub is not None and sub.score is not None and task.max_score > 0:
            grades.append(sub.score / task.max_score * 100)
        if task.due_date is None or (sub is not None and sub.submitted_at <= task.due_date):
            on_time += 1

    completion_rate = _pct(len(completed), len(tasks))
    average_grade = round(sum(grades) / len(grades), 2) if grades else 0.0
    on_time_rate = _pct(on_time, len(completed))

    return {
        "level_number": level_number,
        "total_tasks": len(tasks),
        "completed_tasks": len(completed),
        "task_completion_rate": completion_rate,
        "average_grade": average_grade,
        "on_time_completion_rate": on_time_rate,
        "penalty_total": float(penalty_total),
        "overall_score": overall_score(
            completion_rate, average_grade, on_time_rate, penalty_total
        ),
    }


def task_due_date(
    day: date, meeting_end: time | None, due_hours: int, tz: ZoneInfo
) -> datetime:
    start = datetime.combine(day, meeting_end or time(0, 0), tzinfo=tz)
    return start + timedelta(hours=due_hours)


class InMemoryRoutines:
    def __init__(self, db: InMemoryDatabase, tz: ZoneInfo) -> None:
        self._db = db
        self._tz = tz

    async def calculate_user_performance(self, user_id: UUID, course_id: UUID) -> dict:
        enrollment = self._db.enrollments.get((user_id, course_id))
        if enrollment is None:
            return {"error": "enrollment not found"}

        tasks = [
            t
            for t in self._db.tasks.values()
            if t.course_id == course_id and t.assigned_to == user_id and t.is_active
        ]
        task_ids = {t.id for t in tasks}
        submissions = {
            s.task_id: s
            for s in self._db.submissions.values()
            if s.user_id == user_id
            and s.task_id in task_ids
            and s.status == SUBMISSION_COMPLETED
        }
        penalty_total = sum(
            p.penalty_percentage
            for p in self._db.penalties.values()
            if p.user_id == user_id and p.course_id == course_id
        )
        return performance_payload(
            level_number=enrollment.level_number,
            tasks=tasks,
            submissions=submissions,
            penalty_total=penalty_total,
        )

    async def check_auto_launch_conditions(self, course_id: UUID, today: date) -> bool:
        course = self._db.courses.get(course_id)
        if course is None or not course.is_launch_candidate:
            return False

        counts: dict[int, int] = {}
        for e in self._db.enrollments.values():
            if e.course_id == course_id and e.status in (
                ENROLLMENT_ACTIVE,
                ENROLLMENT_WAITING_START,
            ):
                counts[e.level_number] = counts.get(e.level_number, 0) + 1
        return course.launch_reason(counts, today) is not None

    async def generate_daily_tasks_for_course(self, course_id: UUID) -> int:
        course = self._db.courses.get(course_id)
        if course is None:
            return 0

        templates = [t for t in self._db.templates.values() if t.course_id == course_id]
        entries = sorted(
            (s for s in self._db.schedules.values() if s.course_id == course_id),
            key=lambda s: s.day_number,
        )
        members = [
            e
            for e in self._db.enrollments.values()
            if e.course_id == course_id and e.status == ENROLLMENT_ACTIVE
        ]
        existing = {
            (t.template_id, t.schedule_id, t.assigned_to)
            for t in self._db.tasks.values()
            if t.course_id == course_id
        }

        created = 0
        for entry in entries:
            day = entry.effective_date(course.start_date)
            if day is None:
                continue
            for template in templates:
                if not template.applies_to_day(entry.day_number):
                    continue
                for member in members:
                    if member.level_number != template.level_number:
                        continue
                    key = (template.id, entry.id, member.user_id)
                    if key in existing:
                        continue
                    task = Task.new(
                        course_id=course_id,
                        assigned_to=member.user_id,
                        task_type=template.task_type,
                        title=template.render_title(entry.day_number),
                        due_date=task_due_date(
                            day, entry.meeting_end_time, template.due_hours, self._tz
                        ),
                        schedule_id=entry.id,
                        max_score=template.max_score,
                        template_id=template.id,
                        level_number=template.level_number,
                    )
                    self._db.tasks[task.id] = task
                    existing.add(key)
                    created += 1
        return created
