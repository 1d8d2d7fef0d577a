from __future__ import annotations

from collections.abc import Collection
from dataclasses import replace
from datetime import datetime
from typing import TYPE_CHECKING, Protocol
from uuid import UUID

from madrasa.models.task import (
    STATUS_ACTIVE,
    STATUS_PENDING,
    SUBMISSION_COMPLETED,
    Task,
)

if TYPE_CHECKING:
    from madrasa.repos.unit_of_work import InMemoryDatabase


class TaskRepo(Protocol):
    async def get(self, task_id: UUID) -> Task | None: ...
    async def activate_for_schedule(
        self, schedule_id: UUID, released_at: datetime
    ) -> list[Task]: ...
    async def list_expiry_candidates(
        self, task_types: Collection[str], now: datetime
    ) -> list[Task]: ...
    async def lock_expiry_candidate(
        self, task_id: UUID, task_types: Collection[str], now: datetime
    ) -> Task | None: ...
    async def set_status(self, task_id: UUID, status: str) -> bool: ...
    async def list_due_between(self, start: datetime, end: datetime) -> list[Task]: ...


class InMemoryTaskRepo:
    def __init__(self, db: InMemoryDatabase) -> None:
        self._db = db

    async def get(self, task_id: UUID) -> Task | None:
        return self._db.tasks.get(task_id)

    async def activate_for_schedule(
        self, schedule_id: UUID, released_at: datetime
    ) -> list[Task]:
        activated: list[Task] = []
        for task in list(self._db.tasks.values()):
            if task.schedule_id != schedule_id or task.is_active:
                continue
            updated = replace(
                task,
                is_active=True,
                status=STATUS_ACTIVE if task.status == STATUS_PENDING else task.status,
                released_at=released_at,
            )
            self._db.tasks[task.id] = updated
            activated.append(updated)
        return activated

    def _has_completed_submission(self, task: Task) -> bool:
        return any(
            s.task_id == task.id
            and s.user_id == task.assigned_to
            and s.status == SUBMISSION_COMPLETED
            for s in self._db.submissions.values()
        )

    def _is_expiry_candidate(
        self, task: Task, task_types: Collection[str], now: datetime
    ) -> bool:
        return (
            task.task_type in task_types
            and task.is_active
            and task.status == STATUS_ACTIVE
            and task.due_date is not None
            and task.due_date < now
            and not self._has_completed_submission(task)
            and (task.id, task.assigned_to) not in self._db.penalties
        )

    async def list_expiry_candidates(
        self, task_types: Collection[str], now: datetime
    ) -> list[Task]:
        candidates = [
            t
            for t in self._db.tasks.values()
            if self._is_expiry_candidate(t, task_types, now)
        ]
        return sorted(candidates, key=lambda t: t.due_date)  # type: ignore[arg-type, return-value]

    async def lock_expiry_candidate(
        self, task_id: UUID, task_types: Collection[str], now: datetime
    ) -> Task | None:
        # Transactions are already serialized by the store lock
        task = self._db.tasks.get(task_id)
        if task is None or not self._is_expiry_candidate(task, task_types, now):
            return None
        return task

    async def set_status(self, task_id: UUID, status: str) -> bool:
        task = self._db.tasks.get(task_id)
        if task is None or task.status != STATUS_ACTIVE:
            return False
        self._db.tasks[task_id] = replace(task, status=status)
        return True

    async def list_due_between(self, start: datetime, end: datetime) -> list[Task]:
        due = [
            t
            for t in self._db.tasks.values()
            if t.is_active
            and t.status == STATUS_ACTIVE
            and t.due_date is not None
            and start < t.due_date <= end
            and not self._has_completed_submission(t)
        ]
        return sorted(due, key=lambda t: t.due_date)  # type: ignore[arg-type, return-value]
