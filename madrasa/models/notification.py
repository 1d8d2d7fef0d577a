from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID, uuid4

NEW_TASK = "new_task"
PENALTY_APPLIED = "penalty_applied"
DEADLINE_REMINDER = "deadline_reminder"
COURSE_AUTO_LAUNCHED = "course_auto_launched"


@dataclass(frozen=True, slots=True)
class Notification:
    id: UUID
    user_id: UUID
    type: str
    title: str
    message: str
    created_at: datetime
    related_id: UUID | None = None

    @staticmethod
    def new(
        *,
        user_id: UUID,
        type: str,
        title: str,
        message: str,
        created_at: datetime,
        related_id: UUID | None = None,
    ) -> Notification:
        return Notification(
            id=uuid4(),
            user_id=user_id,
            type=type,
            title=title,
            message=message,
            created_at=created_at,
            related_id=related_id,
        )
