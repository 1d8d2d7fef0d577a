from __future__ import annotations

from dataclasses import replace
from datetime import date, time
from typing import TYPE_CHECKING, Protocol
from uuid import UUID

from madrasa.models.course import CourseSchedule

if TYPE_CHECKING:
    from madrasa.repos.unit_of_work import InMemoryDatabase


class ScheduleRepo(Protocol):
    async def list_releasable(self, today: date, now_time: time) -> list[CourseSchedule]:
        """Unreleased entries of launched courses whose meeting is over.

        An entry dated before today is always releasable; today's entry
        once ``meeting_end_time`` has passed or when it has none.
        """
        ...

    async def mark_released(self, schedule_id: UUID) -> bool:
        """Set ``tasks_released``; False when it was already set."""
        ...


class InMemoryScheduleRepo:
    def __init__(self, db: InMemoryDatabase) -> None:
        self._db = db

    async def list_releasable(self, today: date, now_time: time) -> list[CourseSchedule]:
        entries: list[tuple[date, CourseSchedule]] = []
        for entry in self._db.schedules.values():
            course = self._db.courses.get(entry.course_id)
            if course is None or not course.is_launched:
                continue
            if not entry.is_releasable(course.start_date, today, now_time):
                continue
            effective = entry.effective_date(course.start_date)
            entries.append((effective, entry))  # type: ignore[arg-type]
        entries.sort(key=lambda pair: (pair[0], pair[1].day_number))
        return [entry for _, entry in entries]

    async def mark_released(self, schedule_id: UUID) -> bool:
        entry = self._db.schedules.get(schedule_id)
        if entry is None or entry.tasks_released:
            return False
        self._db.schedules[schedule_id] = replace(entry, tasks_released=True)
        return True
