"""Calls into the plpgsql routines installed by the Alembic migrations."""

from __future__ import annotations

from datetime import date
from uuid import UUID

from sqlalchemy import Boolean, Integer, func, select
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.asyncio import AsyncSession


class PgRoutines:
    def __init__(self, session: AsyncSession, timezone: str) -> None:
        self._session = session
        self._timezone = timezone

    async def calculate_user_performance(self, user_id: UUID, course_id: UUID) -> dict:
        stmt = select(func.calculate_user_performance(user_id, course_id, type_=JSONB))
        payload = (await self._session.execute(stmt)).scalar_one()
        return dict(payload or {})

    async def check_auto_launch_conditions(self, course_id: UUID, today: date) -> bool:
        stmt = select(func.check_auto_launch_conditions(course_id, today, type_=Boolean))
        return bool((await self._session.execute(stmt)).scalar_one())

    async def generate_daily_tasks_for_course(self, course_id: UUID) -> int:
        stmt = select(
            func.generate_daily_tasks_for_course(
                course_id, self._timezone, type_=Integer
            )
        )
        return int((await self._session.execute(stmt)).scalar_one() or 0)
