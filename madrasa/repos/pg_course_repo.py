"""PostgreSQL implementation of CourseRepo."""

from __future__ import annotations

from datetime import date, datetime
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from madrasa.db.tables import CourseAutoLaunchLogRow, CourseRow
from madrasa.models.course import (
    COURSE_ACTIVE,
    COURSE_PUBLISHED,
    AutoLaunchRecord,
    AutoLaunchSettings,
    Course,
    parse_participant_config,
)


class PgCourseRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, course_id: UUID) -> Course | None:
        row = await self._session.get(CourseRow, course_id)
        return None if row is None else _row_to_course(row)

    async def list_launch_candidates(self, today: date) -> list[Course]:
        stmt = (
            select(CourseRow)
            .where(
                CourseRow.is_published.is_(True),
                CourseRow.is_launched.is_(False),
                CourseRow.status == COURSE_PUBLISHED,
                CourseRow.start_date >= today,
            )
            .order_by(CourseRow.start_date)
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_course(r) for r in rows]

    async def mark_launched(self, course_id: UUID, launched_at: datetime) -> bool:
        stmt = (
            update(CourseRow)
            .where(CourseRow.id == course_id, CourseRow.is_launched.is_(False))
            .values(is_launched=True, status=COURSE_ACTIVE, launched_at=launched_at)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        return result.rowcount == 1

    async def add_launch_record(self, record: AutoLaunchRecord) -> None:
        self._session.add(
            CourseAutoLaunchLogRow(
                id=record.id,
                course_id=record.course_id,
                launch_reason=record.launch_reason,
                participants_count=record.participants_count,
                launched_at=record.launched_at,
            )
        )
        await self._session.flush()


def _row_to_course(row: CourseRow) -> Course:
    return Course(
        id=row.id,
        name=row.name,
        start_date=row.start_date,
        status=row.status,
        is_published=row.is_published,
        is_launched=row.is_launched,
        duration_days=row.duration_days,
        participant_config=parse_participant_config(row.participant_config),
        auto_launch=AutoLaunchSettings.from_json(row.auto_launch_settings),
        launched_at=row.launched_at,
    )
