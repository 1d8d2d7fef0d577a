from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID, uuid4

# Task types issued every course day
DAILY_READING = "daily_reading"
DAILY_QUIZ = "daily_quiz"
DAILY_EVALUATION = "daily_evaluation"
DAILY_MONITORING = "daily_monitoring"

# Task types with a fixed deadline
HOMEWORK = "homework"
EXAM = "exam"
PREPARATION = "preparation"
WEEKLY_REPORT = "weekly_report"
WEEKLY_EVALUATION = "weekly_evaluation"

DAILY_TASK_TYPES = frozenset(
    {DAILY_READING, DAILY_QUIZ, DAILY_EVALUATION, DAILY_MONITORING}
)
FIXED_TASK_TYPES = frozenset(
    {HOMEWORK, EXAM, PREPARATION, WEEKLY_REPORT, WEEKLY_EVALUATION}
)

# pending → active → completed | expired | overdue
STATUS_PENDING = "pending"
STATUS_ACTIVE = "active"
STATUS_COMPLETED = "completed"
STATUS_EXPIRED = "expired"
STATUS_OVERDUE = "overdue"

TERMINAL_STATUSES = frozenset({STATUS_COMPLETED, STATUS_EXPIRED, STATUS_OVERDUE})

SUBMISSION_COMPLETED = "completed"

FREQUENCY_DAILY = "daily"
FREQUENCY_WEEKLY = "weekly"


@dataclass(frozen=True, slots=True)
class Task:
    id: UUID
    course_id: UUID
    assigned_to: UUID
    task_type: str
    title: str
    due_date: datetime | None = None
    schedule_id: UUID | None = None
    is_active: bool = False
    status: str = STATUS_PENDING
    max_score: int = 100
    released_at: datetime | None = None
    template_id: UUID | None = None
    level_number: int | None = None

    @property
    def is_daily(self) -> bool:
        return self.task_type in DAILY_TASK_TYPES

    @staticmethod
    def new(
        *,
        course_id: UUID,
        assigned_to: UUID,
        task_type: str,
        title: str,
        due_date: datetime | None = None,
        schedule_id: UUID | None = None,
        max_score: int = 100,
        template_id: UUID | None = None,
        level_number: int | None = None,
    ) -> Task:
        return Task(
            id=uuid4(),
            course_id=course_id,
            assigned_to=assigned_to,
            task_type=task_type,
            title=title,
            due_date=due_date,
            schedule_id=schedule_id,
            max_score=max_score,
            template_id=template_id,
            level_number=level_number,
        )


@dataclass(frozen=True, slots=True)
class TaskTemplate:
    """Blueprint used to instantiate tasks when a course launches.

    Daily templates produce one task per schedule entry; weekly ones only
    on day 1 and on every seventh day.  ``title`` may contain ``{day}``
    and ``{week}`` placeholders.
    """

    id: UUID
    course_id: UUID
    level_number: int
    task_type: str
    title: str
    frequency: str = FREQUENCY_DAILY
    due_hours: int = 24
    max_score: int = 100
    description: str = ""

    def applies_to_day(self, day_number: int) -> bool:
        if self.frequency == FREQUENCY_WEEKLY:
            return day_number == 1 or day_number % 7 == 0
        return True

    def render_title(self, day_number: int) -> str:
        week = (day_number - 1) // 7 + 1
        return self.title.replace("{day}", str(day_number)).replace(
            "{week}", str(week)
        )


@dataclass(frozen=True, slots=True)
class TaskSubmission:
    id: UUID
    task_id: UUID
    user_id: UUID
    status: str
    submitted_at: datetime
    score: float | None = None


@dataclass(frozen=True, slots=True)
class TaskPenalty:
    id: UUID
    task_id: UUID
    user_id: UUID
    course_id: UUID
    penalty_percentage: int
    penalty_reason: str
    applied_at: datetime

    @staticmethod
    def new(
        *,
        task: Task,
        penalty_percentage: int,
        penalty_reason: str,
        applied_at: datetime,
    ) -> TaskPenalty:
        return TaskPenalty(
            id=uuid4(),
            task_id=task.id,
            user_id=task.assigned_to,
            course_id=task.course_id,
            penalty_percentage=penalty_percentage,
            penalty_reason=penalty_reason,
            applied_at=applied_at,
        )
