"""PostgreSQL implementation of NotificationRepo."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import exists, select
from sqlalchemy.ext.asyncio import AsyncSession

from madrasa.db.tables import NotificationRow
from madrasa.models.notification import Notification


class PgNotificationRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def add_many(self, notifications: list[Notification]) -> None:
        self._session.add_all(
            NotificationRow(
                id=n.id,
                user_id=n.user_id,
                type=n.type,
                title=n.title,
                message=n.message,
                related_id=n.related_id,
                created_at=n.created_at,
            )
            for n in notifications
        )
        await self._session.flush()

    async def exists_since(
        self, user_id: UUID, type: str, related_id: UUID, since: datetime
    ) -> bool:
        stmt = select(
            exists().where(
                NotificationRow.user_id == user_id,
                NotificationRow.type == type,
                NotificationRow.related_id == related_id,
                NotificationRow.created_at >= since,
            )
        )
        return bool((await self._session.execute(stmt)).scalar())
