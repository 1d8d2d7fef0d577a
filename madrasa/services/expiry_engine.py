"""Expiry and penalties for tasks whose deadline passed.

Two sweeps share one contract and differ only in task types and the
terminal status they set:

  expire_daily_tasks        daily_* types   → "expired"   (hourly)
  mark_overdue_fixed_tasks  homework, exam,
                            preparation,
                            weekly_* types  → "overdue"   (daily)

A candidate is active, past due, has no completed submission and no
penalty row.  Per task, in one transaction:

  1. re-select the task under FOR UPDATE SKIP LOCKED with the same
     conditions (a concurrent tick holding it makes us skip it)
  2. insert its TaskPenalty (ON CONFLICT DO NOTHING; a conflict skips)
  3. merge penalty_total into the enrollment grade
  4. set the terminal status
  5. write one "penalty_applied" notification

The penalty row is the idempotency key: a task is never penalized twice
however many times or however concurrently the sweep runs.
"""

from __future__ import annotations

import logging
from collections.abc import Collection
from datetime import datetime
from uuid import UUID

from madrasa.core.clock import Clock
from madrasa.core.metrics import PENALTIES_APPLIED
from madrasa.db.errors import is_transient, log_store_failure
from madrasa.models.notification import Notification
from madrasa.models.task import (
    DAILY_TASK_TYPES,
    FIXED_TASK_TYPES,
    STATUS_EXPIRED,
    STATUS_OVERDUE,
    Task,
    TaskPenalty,
)
from madrasa.models.tick import EngineResult
from madrasa.repos.unit_of_work import Store
from madrasa.services.errors import SchedulerConflictError
from madrasa.services.notifications import penalty_notice, record_delivered
from madrasa.services.penalties import penalty_for

logger = logging.getLogger(__name__)


class ExpiryEngine:
    def __init__(self, store: Store, clock: Clock) -> None:
        self._store = store
        self._clock = clock

    async def expire_daily_tasks(self) -> EngineResult:
        return await self._sweep(DAILY_TASK_TYPES, STATUS_EXPIRED)

    async def mark_overdue_fixed_tasks(self) -> EngineResult:
        return await self._sweep(FIXED_TASK_TYPES, STATUS_OVERDUE)

    async def run(self) -> EngineResult:
        result = await self.expire_daily_tasks()
        return result.merge(await self.mark_overdue_fixed_tasks())

    async def _sweep(self, task_types: Collection[str], status: str) -> EngineResult:
        result = EngineResult()
        now = self._clock.now()

        try:
            async with self._store.begin() as uow:
                candidates = await uow.tasks.list_expiry_candidates(task_types, now)
        except Exception as exc:
            result.error = log_store_failure(logger, f"Listing {status} candidates", exc)
            return result

        result.bump("candidates", len(candidates))
        for candidate in candidates:
            try:
                applied = await self._penalize(candidate.id, task_types, status, now)
            except SchedulerConflictError as exc:
                logger.warning("Skipped task %s: %s", candidate.id, exc)
                result.bump("skipped")
                continue
            except Exception as exc:
                if is_transient(exc):
                    result.error = log_store_failure(
                        logger, f"Penalizing task {candidate.id}", exc
                    )
                    break
                logger.exception("Penalizing task %s failed", candidate.id)
                result.bump("failed")
                continue

            if applied is None:
                result.bump("skipped")
                continue

            task, notice = applied
            PENALTIES_APPLIED.labels(task_type=task.task_type).inc()
            record_delivered([notice])
            result.bump(status)
            logger.info(
                "Task %s (%s) marked %s for user=%s, penalty %d%%",
                task.id,
                task.task_type,
                status,
                task.assigned_to,
                penalty_for(task.task_type).percentage,
            )

        return result

    async def _penalize(
        self,
        task_id: UUID,
        task_types: Collection[str],
        status: str,
        now: datetime,
    ) -> tuple[Task, Notification] | None:
        async with self._store.begin() as uow:
            task = await uow.tasks.lock_expiry_candidate(task_id, task_types, now)
            if task is None:
                return None

            rule = penalty_for(task.task_type)
            penalty = TaskPenalty.new(
                task=task,
                penalty_percentage=rule.percentage,
                penalty_reason=rule.reason,
                applied_at=now,
            )
            if not await uow.penalties.add(penalty):
                return None

            total = await uow.enrollments.add_penalty(
                task.assigned_to, task.course_id, rule.percentage
            )
            if total is None:
                logger.warning(
                    "No enrollment for user=%s course=%s; penalty recorded without grade",
                    task.assigned_to,
                    task.course_id,
                )

            if not await uow.tasks.set_status(task.id, status):
                raise SchedulerConflictError(f"task {task.id} left the active state")

            notice = penalty_notice(task=task, status=status, now=now)
            await uow.notifications.add_many([notice])

        return task, notice
