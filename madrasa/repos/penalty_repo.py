from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

from madrasa.models.task import TaskPenalty

if TYPE_CHECKING:
    from madrasa.repos.unit_of_work import InMemoryDatabase


class PenaltyRepo(Protocol):
    async def add(self, penalty: TaskPenalty) -> bool:
        """Insert unless (task_id, user_id) already has a penalty."""
        ...


class InMemoryPenaltyRepo:
    def __init__(self, db: InMemoryDatabase) -> None:
        self._db = db

    async def add(self, penalty: TaskPenalty) -> bool:
        key = (penalty.task_id, penalty.user_id)
        if key in self._db.penalties:
            return False
        self._db.penalties[key] = penalty
        return True
