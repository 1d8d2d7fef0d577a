from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Protocol
from uuid import UUID

from madrasa.models.notification import Notification

if TYPE_CHECKING:
    from madrasa.repos.unit_of_work import InMemoryDatabase


class NotificationRepo(Protocol):
    async def add_many(self, notifications: list[Notification]) -> None: ...
    async def exists_since(
        self, user_id: UUID, type: str, related_id: UUID, since: datetime
    ) -> bool: ...


class InMemoryNotificationRepo:
    def __init__(self, db: InMemoryDatabase) -> None:
        self._db = db

    async def add_many(self, notifications: list[Notification]) -> None:
        self._db.notifications.extend(notifications)

    async def exists_since(
        self, user_id: UUID, type: str, related_id: UUID, since: datetime
    ) -> bool:
        return any(
            n.user_id == user_id
            and n.type == type
            and n.related_id == related_id
            and n.created_at >= since
            for n in self._db.notifications
        )
