"""PostgreSQL unit of work: one AsyncSession, one transaction."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from madrasa.repos.pg_course_repo import PgCourseRepo
from madrasa.repos.pg_enrollment_repo import PgEnrollmentRepo
from madrasa.repos.pg_evaluation_repo import PgEvaluationRepo
from madrasa.repos.pg_notification_repo import PgNotificationRepo
from madrasa.repos.pg_penalty_repo import PgPenaltyRepo
from madrasa.repos.pg_routines import PgRoutines
from madrasa.repos.pg_schedule_repo import PgScheduleRepo
from madrasa.repos.pg_task_repo import PgTaskRepo


class PgUnitOfWork:
    def __init__(self, session: AsyncSession, timezone: str) -> None:
        self.session = session
        self.tasks = PgTaskRepo(session)
        self.schedules = PgScheduleRepo(session)
        self.penalties = PgPenaltyRepo(session)
        self.enrollments = PgEnrollmentRepo(session)
        self.evaluations = PgEvaluationRepo(session)
        self.courses = PgCourseRepo(session)
        self.notifications = PgNotificationRepo(session)
        self.routines = PgRoutines(session, timezone)


class PgStore:
    """Satisfies the Store Protocol using PostgreSQL via SQLAlchemy."""

    def __init__(
        self, session_factory: async_sessionmaker[AsyncSession], timezone: str
    ) -> None:
        self._session_factory = session_factory
        self._timezone = timezone

    @asynccontextmanager
    async def begin(self) -> AsyncIterator[PgUnitOfWork]:
        """Commits on success, rolls back on exception."""
        async with self._session_factory() as session:
            try:
                yield PgUnitOfWork(session, self._timezone)
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def ping(self) -> bool:
        async with self._session_factory() as session:
            await session.execute(text("SELECT 1"))
        return True
