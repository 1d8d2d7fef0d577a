"""PostgreSQL implementation of EvaluationRepo."""

from __future__ import annotations

from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from madrasa.db.tables import PerformanceEvaluationRow
from madrasa.models.enrollment import PerformanceEvaluation


class PgEvaluationRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def upsert(self, evaluation: PerformanceEvaluation) -> None:
        values = {
            "level_number": evaluation.level_number,
            "task_completion_score": evaluation.task_completion_score,
            "quality_score": evaluation.quality_score,
            "timeliness_score": evaluation.timeliness_score,
            "overall_score": evaluation.overall_score,
            "performance_data": evaluation.performance_data,
            "updated_at": evaluation.updated_at,
        }
        stmt = insert(PerformanceEvaluationRow).values(
            user_id=evaluation.user_id,
            course_id=evaluation.course_id,
            evaluation_date=evaluation.evaluation_date,
            **values,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["user_id", "course_id", "evaluation_date"],
            set_=values,
        )
        await self._session.execute(stmt)
