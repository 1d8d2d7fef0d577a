"""PostgreSQL implementation of TaskRepo."""

from __future__ import annotations

from collections.abc import Collection
from datetime import datetime
from uuid import UUID

from sqlalchemy import case, exists, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from madrasa.db.tables import TaskPenaltyRow, TaskRow, TaskSubmissionRow
from madrasa.models.task import (
    STATUS_ACTIVE,
    STATUS_PENDING,
    SUBMISSION_COMPLETED,
    Task,
)

_has_completed_submission = exists().where(
    TaskSubmissionRow.task_id == TaskRow.id,
    TaskSubmissionRow.user_id == TaskRow.assigned_to,
    TaskSubmissionRow.status == SUBMISSION_COMPLETED,
)

_has_penalty = exists().where(
    TaskPenaltyRow.task_id == TaskRow.id,
    TaskPenaltyRow.user_id == TaskRow.assigned_to,
)


def _expiry_filter(task_types: Collection[str], now: datetime) -> tuple:
    return (
        TaskRow.task_type.in_(list(task_types)),
        TaskRow.is_active.is_(True),
        TaskRow.status == STATUS_ACTIVE,
        TaskRow.due_date < now,
        ~_has_completed_submission,
        ~_has_penalty,
    )


class PgTaskRepo:
    """Satisfies the TaskRepo Protocol using PostgreSQL via SQLAlchemy."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, task_id: UUID) -> Task | None:
        row = await self._session.get(TaskRow, task_id)
        return None if row is None else _row_to_task(row)

    async def activate_for_schedule(
        self, schedule_id: UUID, released_at: datetime
    ) -> list[Task]:
        stmt = (
            update(TaskRow)
            .where(TaskRow.schedule_id == schedule_id, TaskRow.is_active.is_(False))
            .values(
                is_active=True,
                released_at=released_at,
                status=case(
                    (TaskRow.status == STATUS_PENDING, STATUS_ACTIVE),
                    else_=TaskRow.status,
                ),
            )
            .returning(TaskRow)
            .execution_options(synchronize_session=False)
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_task(r) for r in rows]

    async def list_expiry_candidates(
        self, task_types: Collection[str], now: datetime
    ) -> list[Task]:
        stmt = (
            select(TaskRow)
            .where(*_expiry_filter(task_types, now))
            .order_by(TaskRow.due_date)
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_task(r) for r in rows]

    async def lock_expiry_candidate(
        self, task_id: UUID, task_types: Collection[str], now: datetime
    ) -> Task | None:
        # Re-check under a row lock; a concurrent tick holding the row
        # makes this one skip it instead of waiting.
        stmt = (
            select(TaskRow)
            .where(TaskRow.id == task_id, *_expiry_filter(task_types, now))
            .with_for_update(of=TaskRow, skip_locked=True)
        )
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        return None if row is None else _row_to_task(row)

    async def set_status(self, task_id: UUID, status: str) -> bool:
        stmt = (
            update(TaskRow)
            .where(TaskRow.id == task_id, TaskRow.status == STATUS_ACTIVE)
            .values(status=status)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        return result.rowcount == 1

    async def list_due_between(self, start: datetime, end: datetime) -> list[Task]:
        stmt = (
            select(TaskRow)
            .where(
                TaskRow.is_active.is_(True),
                TaskRow.status == STATUS_ACTIVE,
                TaskRow.due_date > start,
                TaskRow.due_date <= end,
                ~_has_completed_submission,
            )
            .order_by(TaskRow.due_date)
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_task(r) for r in rows]


def _row_to_task(row: TaskRow) -> Task:
    return Task(
        id=row.id,
        course_id=row.course_id,
        assigned_to=row.assigned_to,
        task_type=row.task_type,
        title=row.title,
        due_date=row.due_date,
        schedule_id=row.schedule_id,
        is_active=row.is_active,
        status=row.status,
        max_score=row.max_score,
        released_at=row.released_at,
        template_id=row.template_id,
        level_number=row.level_number,
    )
