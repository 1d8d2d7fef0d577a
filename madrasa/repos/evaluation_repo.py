from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

from madrasa.models.enrollment import PerformanceEvaluation

if TYPE_CHECKING:
    from madrasa.repos.unit_of_work import InMemoryDatabase


class EvaluationRepo(Protocol):
    async def upsert(self, evaluation: PerformanceEvaluation) -> None:
        """Insert, or update the row for the same (user, course, date)."""
        ...


class InMemoryEvaluationRepo:
    def __init__(self, db: InMemoryDatabase) -> None:
        self._db = db

    async def upsert(self, evaluation: PerformanceEvaluation) -> None:
        key = (evaluation.user_id, evaluation.course_id, evaluation.evaluation_date)
        self._db.evaluations[key] = evaluation
