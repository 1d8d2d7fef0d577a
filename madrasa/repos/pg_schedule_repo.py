"""PostgreSQL implementation of ScheduleRepo."""

from __future__ import annotations

from datetime import date, time
from uuid import UUID

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from madrasa.db.tables import CourseRow, CourseScheduleRow
from madrasa.models.course import CourseSchedule

# scheduled_date, or the course start shifted by (day_number - 1) days
_effective_date = func.coalesce(
    CourseScheduleRow.scheduled_date,
    CourseRow.start_date + (CourseScheduleRow.day_number - 1),
)


class PgScheduleRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def list_releasable(self, today: date, now_time: time) -> list[CourseSchedule]:
        stmt = (
            select(CourseScheduleRow)
            .join(CourseRow, CourseRow.id == CourseScheduleRow.course_id)
            .where(
                CourseRow.is_launched.is_(True),
                CourseScheduleRow.tasks_released.is_(False),
                or_(
                    _effective_date < today,
                    and_(
                        _effective_date == today,
                        or_(
                            CourseScheduleRow.meeting_end_time.is_(None),
                            CourseScheduleRow.meeting_end_time <= now_time,
                        ),
                    ),
                ),
            )
            .order_by(_effective_date, CourseScheduleRow.day_number)
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_schedule(r) for r in rows]

    async def mark_released(self, schedule_id: UUID) -> bool:
        stmt = (
            update(CourseScheduleRow)
            .where(
                CourseScheduleRow.id == schedule_id,
                CourseScheduleRow.tasks_released.is_(False),
            )
            .values(tasks_released=True)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        return result.rowcount == 1


def _row_to_schedule(row: CourseScheduleRow) -> CourseSchedule:
    return CourseSchedule(
        id=row.id,
        course_id=row.course_id,
        day_number=row.day_number,
        scheduled_date=row.scheduled_date,
        meeting_start_time=row.meeting_start_time,
        meeting_end_time=row.meeting_end_time,
        tasks_released=row.tasks_released,
    )
