from __future__ import annotations

from collections import Counter
from dataclasses import replace
from typing import TYPE_CHECKING, Protocol
from uuid import UUID

from madrasa.models.enrollment import (
    ENROLLMENT_ACTIVE,
    ENROLLMENT_WAITING_START,
    Enrollment,
)

if TYPE_CHECKING:
    from madrasa.repos.unit_of_work import InMemoryDatabase


class EnrollmentRepo(Protocol):
    async def get(self, user_id: UUID, course_id: UUID) -> Enrollment | None: ...
    async def add_penalty(
        self, user_id: UUID, course_id: UUID, percentage: int
    ) -> float | None: ...
    async def set_grade(self, user_id: UUID, course_id: UUID, grade: dict) -> None: ...
    async def list_active_in_launched_courses(self) -> list[Enrollment]: ...
    async def list_active(self, course_id: UUID) -> list[Enrollment]: ...
    async def activate_waiting(self, course_id: UUID) -> int: ...
    async def count_by_level(self, course_id: UUID) -> dict[int, int]: ...


class InMemoryEnrollmentRepo:
    def __init__(self, db: InMemoryDatabase) -> None:
        self._db = db

    async def get(self, user_id: UUID, course_id: UUID) -> Enrollment | None:
        return self._db.enrollments.get((user_id, course_id))

    async def add_penalty(
        self, user_id: UUID, course_id: UUID, percentage: int
    ) -> float | None:
        """Merge ``penalty_total += percentage`` into the grade blob.

        Returns the new total, or None when the user is not enrolled.
        """
        e = self._db.enrollments.get((user_id, course_id))
        if e is None:
            return None
        total = e.penalty_total + percentage
        self._db.enrollments[(user_id, course_id)] = replace(
            e, grade={**e.grade, "penalty_total": total}
        )
        return total

    async def set_grade(self, user_id: UUID, course_id: UUID, grade: dict) -> None:
        e = self._db.enrollments.get((user_id, course_id))
        if e is None:
            raise KeyError("enrollment not found")
        self._db.enrollments[(user_id, course_id)] = replace(e, grade=dict(grade))

    async def list_active_in_launched_courses(self) -> list[Enrollment]:
        result = []
        for e in self._db.enrollments.values():
            course = self._db.courses.get(e.course_id)
            if e.status == ENROLLMENT_ACTIVE and course is not None and course.is_launched:
                result.append(e)
        return result

    async def list_active(self, course_id: UUID) -> list[Enrollment]:
        return [
            e
            for e in self._db.enrollments.values()
            if e.course_id == course_id and e.status == ENROLLMENT_ACTIVE
        ]

    async def activate_waiting(self, course_id: UUID) -> int:
        moved = 0
        for key, e in list(self._db.enrollments.items()):
            if e.course_id == course_id and e.status == ENROLLMENT_WAITING_START:
                self._db.enrollments[key] = replace(e, status=ENROLLMENT_ACTIVE)
                moved += 1
        return moved

    async def count_by_level(self, course_id: UUID) -> dict[int, int]:
        counts = Counter(
            e.level_number
            for e in self._db.enrollments.values()
            if e.course_id == course_id
            and e.status in (ENROLLMENT_ACTIVE, ENROLLMENT_WAITING_START)
        )
        return dict(counts)
