"""PostgreSQL implementation of PenaltyRepo."""

from __future__ import annotations

from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from madrasa.db.tables import TaskPenaltyRow
from madrasa.models.task import TaskPenalty


class PgPenaltyRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def add(self, penalty: TaskPenalty) -> bool:
        stmt = (
            insert(TaskPenaltyRow)
            .values(
                id=penalty.id,
                task_id=penalty.task_id,
                user_id=penalty.user_id,
                course_id=penalty.course_id,
                penalty_percentage=penalty.penalty_percentage,
                penalty_reason=penalty.penalty_reason,
                applied_at=penalty.applied_at,
            )
            .on_conflict_do_nothing(index_elements=["task_id", "user_id"])
            .returning(TaskPenaltyRow.id)
        )
        inserted = (await self._session.execute(stmt)).scalar_one_or_none()
        return inserted is not None
