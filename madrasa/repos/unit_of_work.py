"""Unit of work: one transaction, every repo bound to it.

Engines never touch sessions or tables directly.  They open a unit of
work, call repo methods, and leave the block:

    async with store.begin() as uow:
        tasks = await uow.tasks.activate_for_schedule(entry.id, now)
        await uow.schedules.mark_released(entry.id)

Leaving normally commits.  Any exception rolls back everything done
inside the block and propagates.

InMemoryStore mirrors PgStore for tests and local runs.  Transactions
are serialized with an asyncio.Lock and rolled back by restoring a
snapshot of the tables taken at ``begin()``.  Records are frozen
dataclasses, so a shallow copy of each table is a full snapshot.
"""

from __future__ import annotations

import asyncio
import copy
import logging
from collections.abc import AsyncIterator
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from dataclasses import dataclass, field, fields
from datetime import date
from typing import Protocol
from uuid import UUID
from zoneinfo import ZoneInfo

from madrasa.models.course import AutoLaunchRecord, Course, CourseSchedule
from madrasa.models.enrollment import Enrollment, PerformanceEvaluation
from madrasa.models.notification import Notification
from madrasa.models.task import Task, TaskPenalty, TaskSubmission, TaskTemplate
from madrasa.repos.course_repo import CourseRepo, InMemoryCourseRepo
from madrasa.repos.enrollment_repo import EnrollmentRepo, InMemoryEnrollmentRepo
from madrasa.repos.evaluation_repo import EvaluationRepo, InMemoryEvaluationRepo
from madrasa.repos.notification_repo import (
    InMemoryNotificationRepo,
    NotificationRepo,
)
from madrasa.repos.penalty_repo import InMemoryPenaltyRepo, PenaltyRepo
from madrasa.repos.routines import InMemoryRoutines, Routines
from madrasa.repos.schedule_repo import InMemoryScheduleRepo, ScheduleRepo
from madrasa.repos.task_repo import InMemoryTaskRepo, TaskRepo

logger = logging.getLogger(__name__)


class UnitOfWork(Protocol):
    tasks: TaskRepo
    schedules: ScheduleRepo
    penalties: PenaltyRepo
    enrollments: EnrollmentRepo
    evaluations: EvaluationRepo
    courses: CourseRepo
    notifications: NotificationRepo
    routines: Routines


class Store(Protocol):
    def begin(self) -> AbstractAsyncContextManager[UnitOfWork]: ...
    async def ping(self) -> bool: ...


@dataclass
class InMemoryDatabase:
    courses: dict[UUID, Course] = field(default_factory=dict)
    schedules: dict[UUID, CourseSchedule] = field(default_factory=dict)
    templates: dict[UUID, TaskTemplate] = field(default_factory=dict)
    tasks: dict[UUID, Task] = field(default_factory=dict)
    submissions: dict[UUID, TaskSubmission] = field(default_factory=dict)
    # keyed (task_id, user_id): the uniqueness the penalty guard relies on
    penalties: dict[tuple[UUID, UUID], TaskPenalty] = field(default_factory=dict)
    # keyed (user_id, course_id)
    enrollments: dict[tuple[UUID, UUID], Enrollment] = field(default_factory=dict)
    # keyed (user_id, course_id, evaluation_date)
    evaluations: dict[tuple[UUID, UUID, date], PerformanceEvaluation] = field(
        default_factory=dict
    )
    notifications: list[Notification] = field(default_factory=list)
    launch_log: list[AutoLaunchRecord] = field(default_factory=list)

    def snapshot(self) -> InMemoryDatabase:
        return InMemoryDatabase(
            **{f.name: copy.copy(getattr(self, f.name)) for f in fields(self)}
        )

    def restore(self, snapshot: InMemoryDatabase) -> None:
        for f in fields(self):
            setattr(self, f.name, getattr(snapshot, f.name))

    def put(self, *records: object) -> None:
        """Insert or replace records regardless of type (test seeding)."""
        for record in records:
            if isinstance(record, Notification):
                self.notifications.append(record)
                continue
            if isinstance(record, AutoLaunchRecord):
                self.launch_log.append(record)
                continue

            keyed = _KEYED_TABLES.get(type(record))
            if keyed is None:
                raise TypeError(f"cannot store {type(record).__name__}")
            table, key = keyed
            getattr(self, table)[key(record)] = record


_KEYED_TABLES = {
    Course: ("courses", lambda r: r.id),
    CourseSchedule: ("schedules", lambda r: r.id),
    TaskTemplate: ("templates", lambda r: r.id),
    Task: ("tasks", lambda r: r.id),
    TaskSubmission: ("submissions", lambda r: r.id),
    TaskPenalty: ("penalties", lambda r: (r.task_id, r.user_id)),
    Enrollment: ("enrollments", lambda r: (r.user_id, r.course_id)),
    PerformanceEvaluation: (
        "evaluations",
        lambda r: (r.user_id, r.course_id, r.evaluation_date),
    ),
}


class InMemoryUnitOfWork:
    def __init__(self, db: InMemoryDatabase, tz: ZoneInfo) -> None:
        self.tasks = InMemoryTaskRepo(db)
        self.schedules = InMemoryScheduleRepo(db)
        self.penalties = InMemoryPenaltyRepo(db)
        self.enrollments = InMemoryEnrollmentRepo(db)
        self.evaluations = InMemoryEvaluationRepo(db)
        self.courses = InMemoryCourseRepo(db)
        self.notifications = InMemoryNotificationRepo(db)
        self.routines = InMemoryRoutines(db, tz)


class InMemoryStore:
    """In-memory store for tests; no Postgres needed."""

    def __init__(
        self, db: InMemoryDatabase | None = None, *, tz: str | ZoneInfo = "UTC"
    ) -> None:
        self.db = db if db is not None else InMemoryDatabase()
        self._tz = tz if isinstance(tz, ZoneInfo) else ZoneInfo(tz)
        self._lock = asyncio.Lock()

    @asynccontextmanager
    async def begin(self) -> AsyncIterator[InMemoryUnitOfWork]:
        async with self._lock:
            snapshot = self.db.snapshot()
            try:
                yield InMemoryUnitOfWork(self.db, self._tz)
            except BaseException:
                self.db.restore(snapshot)
                raise

    async def ping(self) -> bool:
        return True
