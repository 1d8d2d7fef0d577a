"""PostgreSQL implementation of EnrollmentRepo."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from madrasa.db.tables import CourseRow, EnrollmentRow
from madrasa.models.enrollment import (
    ENROLLMENT_ACTIVE,
    ENROLLMENT_WAITING_START,
    Enrollment,
)


class PgEnrollmentRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    def _by_key(self, user_id: UUID, course_id: UUID):
        return (EnrollmentRow.user_id == user_id, EnrollmentRow.course_id == course_id)

    async def get(self, user_id: UUID, course_id: UUID) -> Enrollment | None:
        stmt = select(EnrollmentRow).where(*self._by_key(user_id, course_id))
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        return None if row is None else _row_to_enrollment(row)

    async def add_penalty(
        self, user_id: UUID, course_id: UUID, percentage: int
    ) -> float | None:
        stmt = (
            select(EnrollmentRow)
            .where(*self._by_key(user_id, course_id))
            .with_for_update()
        )
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        if row is None:
            return None
        grade = dict(row.grade or {})
        total = float(grade.get("penalty_total", 0) or 0) + percentage
        grade["penalty_total"] = total
        row.grade = grade
        await self._session.flush()
        return total

    async def set_grade(self, user_id: UUID, course_id: UUID, grade: dict) -> None:
        stmt = (
            update(EnrollmentRow)
            .where(*self._by_key(user_id, course_id))
            .values(grade=grade)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        if result.rowcount == 0:
            raise KeyError("enrollment not found")

    async def list_active_in_launched_courses(self) -> list[Enrollment]:
        stmt = (
            select(EnrollmentRow)
            .join(CourseRow, CourseRow.id == EnrollmentRow.course_id)
            .where(
                EnrollmentRow.status == ENROLLMENT_ACTIVE,
                CourseRow.is_launched.is_(True),
            )
            .order_by(EnrollmentRow.course_id, EnrollmentRow.user_id)
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_enrollment(r) for r in rows]

    async def list_active(self, course_id: UUID) -> list[Enrollment]:
        stmt = select(EnrollmentRow).where(
            EnrollmentRow.course_id == course_id,
            EnrollmentRow.status == ENROLLMENT_ACTIVE,
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_enrollment(r) for r in rows]

    async def activate_waiting(self, course_id: UUID) -> int:
        stmt = (
            update(EnrollmentRow)
            .where(
                EnrollmentRow.course_id == course_id,
                EnrollmentRow.status == ENROLLMENT_WAITING_START,
            )
            .values(status=ENROLLMENT_ACTIVE)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        return result.rowcount

    async def count_by_level(self, course_id: UUID) -> dict[int, int]:
        stmt = (
            select(EnrollmentRow.level_number, func.count())
            .where(
                EnrollmentRow.course_id == course_id,
                EnrollmentRow.status.in_([ENROLLMENT_ACTIVE, ENROLLMENT_WAITING_START]),
            )
            .group_by(EnrollmentRow.level_number)
        )
        rows = (await self._session.execute(stmt)).all()
        return {level: count for level, count in rows}


def _row_to_enrollment(row: EnrollmentRow) -> Enrollment:
    return Enrollment(
        user_id=row.user_id,
        course_id=row.course_id,
        level_number=row.level_number,
        status=row.status,
        grade=dict(row.grade or {}),
    )
