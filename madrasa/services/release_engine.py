"""Task release: activate a course day's tasks once its meeting is over.

Each tick:
  1. lists unreleased schedule entries of launched courses that are due
     (dated before today, or today with the meeting end time passed or
     no meeting configured)
  2. per entry, in ONE transaction:
       - activate every still-inactive task on the entry
       - set the entry's tasks_released flag (guarded: must still be false)
       - one "new_task" notification per distinct assignee

Either all of an entry's tasks activate and the flag is set, or nothing
is committed and the entry stays eligible for the next tick.  Tasks
already active are never touched again, so their assignees are never
re-notified.
"""

from __future__ import annotations

import logging
from collections import Counter

from madrasa.core.clock import Clock
from madrasa.core.metrics import TASKS_RELEASED
from madrasa.db.errors import log_store_failure
from madrasa.models.course import CourseSchedule
from madrasa.models.notification import Notification
from madrasa.models.tick import EngineResult
from madrasa.repos.unit_of_work import Store
from madrasa.services.errors import ReleaseConflictError
from madrasa.services.notifications import new_tasks_notice, record_delivered

logger = logging.getLogger(__name__)


class ReleaseEngine:
    def __init__(self, store: Store, clock: Clock) -> None:
        self._store = store
        self._clock = clock

    async def run(self) -> EngineResult:
        result = EngineResult()
        now = self._clock.now()

        try:
            async with self._store.begin() as uow:
                entries = await uow.schedules.list_releasable(
                    now.date(), now.time().replace(tzinfo=None)
                )
        except Exception as exc:
            result.error = log_store_failure(logger, "Listing releasable entries", exc)
            return result

        result.bump("entries", len(entries))
        for entry in entries:
            try:
                released, notices = await self._release_entry(entry)
            except ReleaseConflictError as exc:
                logger.warning("Skipped schedule entry %s: %s", entry.id, exc)
                result.bump("conflicts")
                continue
            except Exception as exc:
                result.error = log_store_failure(
                    logger, f"Releasing schedule entry {entry.id}", exc
                )
                break

            TASKS_RELEASED.inc(released)
            record_delivered(notices)
            result.bump("released", released)
            result.bump("notified", len(notices))
            logger.info(
                "Released %d task(s) for course=%s day=%d, notified %d user(s)",
                released,
                entry.course_id,
                entry.day_number,
                len(notices),
            )

        return result

    async def _release_entry(
        self, entry: CourseSchedule
    ) -> tuple[int, list[Notification]]:
        now = self._clock.now()
        async with self._store.begin() as uow:
            tasks = await uow.tasks.activate_for_schedule(entry.id, now)
            if not await uow.schedules.mark_released(entry.id):
                raise ReleaseConflictError(
                    f"schedule entry {entry.id} was released by another tick"
                )

            per_user = Counter(t.assigned_to for t in tasks)
            notices = [
                new_tasks_notice(
                    user_id=user_id,
                    course_id=entry.course_id,
                    day_number=entry.day_number,
                    count=count,
                    now=now,
                )
                for user_id, count in per_user.items()
            ]
            if notices:
                await uow.notifications.add_many(notices)

        return len(tasks), notices
