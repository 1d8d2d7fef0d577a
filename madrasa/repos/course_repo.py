from __future__ import annotations

from dataclasses import replace
from datetime import date, datetime
from typing import TYPE_CHECKING, Protocol
from uuid import UUID

from madrasa.models.course import COURSE_ACTIVE, AutoLaunchRecord, Course

if TYPE_CHECKING:
    from madrasa.repos.unit_of_work import InMemoryDatabase


class CourseRepo(Protocol):
    async def get(self, course_id: UUID) -> Course | None: ...
    async def list_launch_candidates(self, today: date) -> list[Course]: ...
    async def mark_launched(self, course_id: UUID, launched_at: datetime) -> bool: ...
    async def add_launch_record(self, record: AutoLaunchRecord) -> None: ...


class InMemoryCourseRepo:
    def __init__(self, db: InMemoryDatabase) -> None:
        self._db = db

    async def get(self, course_id: UUID) -> Course | None:
        return self._db.courses.get(course_id)

    async def list_launch_candidates(self, today: date) -> list[Course]:
        candidates = [
            c
            for c in self._db.courses.values()
            if c.is_launch_candidate and c.start_date is not None and c.start_date >= today
        ]
        return sorted(candidates, key=lambda c: c.start_date)  # type: ignore[arg-type, return-value]

    async def mark_launched(self, course_id: UUID, launched_at: datetime) -> bool:
        course = self._db.courses.get(course_id)
        if course is None or course.is_launched:
            return False
        self._db.courses[course_id] = replace(
            course, is_launched=True, status=COURSE_ACTIVE, launched_at=launched_at
        )
        return True

    async def add_launch_record(self, record: AutoLaunchRecord) -> None:
        self._db.launch_log.append(record)
