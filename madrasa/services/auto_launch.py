"""Auto-launch of published courses that reached their enrollment thresholds.

Candidates: published, not launched, status "published", start date not
passed.  For each candidate, in ONE transaction:

  1. check_auto_launch_conditions(course, today) must hold
  2. flip is_launched/status/launched_at (guarded on is_launched = false;
     losing that race raises LaunchConflictError and rolls back)
  3. waiting_start enrollments → active
  4. generate_daily_tasks_for_course(course), once
  5. append to course_auto_launch_log
  6. notify every actively-enrolled user

Any error rolls back the whole launch; the course stays a candidate.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime
from uuid import UUID

from madrasa.core.clock import Clock
from madrasa.core.metrics import COURSES_LAUNCHED
from madrasa.db.errors import is_transient, log_store_failure
from madrasa.models.course import AutoLaunchRecord, Course
from madrasa.models.notification import Notification
from madrasa.models.tick import EngineResult
from madrasa.repos.unit_of_work import Store
from madrasa.services.errors import LaunchConflictError
from madrasa.services.notifications import course_launched_notice, record_delivered

logger = logging.getLogger(__name__)

# Recorded when the store predicate passes but no single trigger explains it
# (e.g. the course's thresholds changed between the two reads).
_FALLBACK_REASON = "conditions_met"


@dataclass(frozen=True, slots=True)
class LaunchOutcome:
    course: Course
    reason: str
    activated_enrollments: int
    generated_tasks: int
    notices: list[Notification]


class AutoLaunchMonitor:
    def __init__(self, store: Store, clock: Clock) -> None:
        self._store = store
        self._clock = clock

    async def run(self) -> EngineResult:
        result = EngineResult()
        now = self._clock.now()
        today = now.date()

        try:
            async with self._store.begin() as uow:
                candidates = await uow.courses.list_launch_candidates(today)
        except Exception as exc:
            result.error = log_store_failure(logger, "Listing launch candidates", exc)
            return result

        result.bump("candidates", len(candidates))
        for candidate in candidates:
            try:
                outcome = await self._try_launch(candidate.id, today, now)
            except LaunchConflictError as exc:
                logger.warning("Skipped course %s: %s", candidate.id, exc)
                result.bump("conflicts")
                continue
            except Exception as exc:
                if is_transient(exc):
                    result.error = log_store_failure(
                        logger, f"Launching course {candidate.id}", exc
                    )
                    break
                logger.exception("Launching course %s failed", candidate.id)
                result.bump("failed")
                continue

            if outcome is None:
                result.bump("waiting")
                continue

            COURSES_LAUNCHED.inc()
            record_delivered(outcome.notices)
            result.bump("launched")
            result.bump("generated_tasks", outcome.generated_tasks)
            result.bump("notified", len(outcome.notices))
            logger.info(
                "Course %s (%s) auto-launched on %s: %d enrollment(s) activated, "
                "%d task(s) generated",
                outcome.course.id,
                outcome.course.name,
                outcome.reason,
                outcome.activated_enrollments,
                outcome.generated_tasks,
            )

        return result

    async def _try_launch(
        self, course_id: UUID, today: date, now: datetime
    ) -> LaunchOutcome | None:
        async with self._store.begin() as uow:
            if not await uow.routines.check_auto_launch_conditions(course_id, today):
                return None

            course = await uow.courses.get(course_id)
            if course is None:
                return None
            counts = await uow.enrollments.count_by_level(course_id)
            reason = course.launch_reason(counts, today) or _FALLBACK_REASON

            if not await uow.courses.mark_launched(course_id, now):
                raise LaunchConflictError(f"course {course_id} was launched by another tick")

            activated = await uow.enrollments.activate_waiting(course_id)
            generated = await uow.routines.generate_daily_tasks_for_course(course_id)
            await uow.courses.add_launch_record(
                AutoLaunchRecord.new(
                    course_id=course_id,
                    launch_reason=reason,
                    participants_count=sum(counts.values()),
                    launched_at=now,
                )
            )

            members = await uow.enrollments.list_active(course_id)
            notices = [
                course_launched_notice(
                    user_id=m.user_id,
                    course=course,
                    start_date=course.start_date or today,
                    now=now,
                )
                for m in members
            ]
            if notices:
                await uow.notifications.add_many(notices)

        return LaunchOutcome(
            course=course,
            reason=reason,
            activated_enrollments=activated,
            generated_tasks=generated,
            notices=notices,
        )
