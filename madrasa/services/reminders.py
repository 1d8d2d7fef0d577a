"""Deadline reminders for active tasks due within the next day."""

from __future__ import annotations

import logging
from datetime import timedelta

from madrasa.core.clock import Clock
from madrasa.db.errors import log_store_failure
from madrasa.models.notification import DEADLINE_REMINDER, Notification
from madrasa.models.tick import EngineResult
from madrasa.repos.unit_of_work import Store
from madrasa.services.notifications import deadline_reminder_notice, record_delivered

logger = logging.getLogger(__name__)

REMINDER_WINDOW = timedelta(hours=24)
# A task gets at most one reminder per cooldown, however often the job runs.
REMINDER_COOLDOWN = timedelta(hours=12)


class ReminderEngine:
    def __init__(self, store: Store, clock: Clock) -> None:
        self._store = store
        self._clock = clock

    async def run(self) -> EngineResult:
        result = EngineResult()
        now = self._clock.now()
        notices: list[Notification] = []

        try:
            async with self._store.begin() as uow:
                tasks = await uow.tasks.list_due_between(now, now + REMINDER_WINDOW)
                for task in tasks:
                    already = await uow.notifications.exists_since(
                        task.assigned_to,
                        DEADLINE_REMINDER,
                        task.id,
                        now - REMINDER_COOLDOWN,
                    )
                    if already:
                        result.bump("skipped")
                        continue
                    notices.append(deadline_reminder_notice(task=task, now=now))
                if notices:
                    await uow.notifications.add_many(notices)
        except Exception as exc:
            result.error = log_store_failure(logger, "Sending deadline reminders", exc)
            return result

        record_delivered(notices)
        result.bump("reminded", len(notices))
        if notices:
            logger.info("Sent %d deadline reminder(s)", len(notices))
        return result
