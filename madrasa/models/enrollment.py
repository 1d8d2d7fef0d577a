from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from uuid import UUID

ENROLLMENT_WAITING_START = "waiting_start"
ENROLLMENT_ACTIVE = "active"

LEVEL_SUPERVISOR = 1
LEVEL_TEACHER = 2
LEVEL_STUDENT = 3

# (lower bound inclusive, label), highest first
_PERFORMANCE_LEVELS = (
    (90.0, "ممتاز"),
    (80.0, "جيد جداً"),
    (70.0, "جيد"),
    (60.0, "مقبول"),
)
_PERFORMANCE_FLOOR = "يحتاج تحسين"


def performance_level(overall_score: float) -> str:
    for bound, label in _PERFORMANCE_LEVELS:
        if overall_score >= bound:
            return label
    return _PERFORMANCE_FLOOR


@dataclass(frozen=True, slots=True)
class Enrollment:
    user_id: UUID
    course_id: UUID
    level_number: int = LEVEL_STUDENT
    status: str = ENROLLMENT_WAITING_START
    grade: dict = field(default_factory=dict)

    @property
    def penalty_total(self) -> float:
        return float(self.grade.get("penalty_total", 0) or 0)


@dataclass(frozen=True, slots=True)
class PerformanceEvaluation:
    """One row per (user, course, evaluation_date); re-runs update it."""

    user_id: UUID
    course_id: UUID
    evaluation_date: date
    level_number: int
    task_completion_score: float
    quality_score: float
    timeliness_score: float
    overall_score: float
    performance_data: dict
    updated_at: datetime
