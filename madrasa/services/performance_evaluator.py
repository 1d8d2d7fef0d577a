"""Per-user performance evaluation.

For every active enrollment in a launched course, in its own transaction:

  - call the store routine calculate_user_performance(user, course)
  - upsert the PerformanceEvaluation for (user, course, today)
  - overwrite enrollments.grade with the full payload

Re-running on the same day updates the row rather than adding one, and
the latest run wins.  One user's failure is logged and the batch goes
on; a transient store failure stops the batch (the next tick retries).
"""

from __future__ import annotations

import logging
from datetime import datetime

from madrasa.core.clock import Clock
from madrasa.core.metrics import EVALUATIONS_WRITTEN
from madrasa.db.errors import is_transient, log_store_failure
from madrasa.models.enrollment import (
    Enrollment,
    PerformanceEvaluation,
    performance_level,
)
from madrasa.models.tick import EngineResult
from madrasa.repos.unit_of_work import Store
from madrasa.services.errors import PerformanceCalculationError

logger = logging.getLogger(__name__)


def _score(payload: dict, key: str) -> float:
    return float(payload.get(key) or 0)


class PerformanceEvaluator:
    def __init__(self, store: Store, clock: Clock) -> None:
        self._store = store
        self._clock = clock

    async def run(self) -> EngineResult:
        result = EngineResult()
        now = self._clock.now()

        try:
            async with self._store.begin() as uow:
                enrollments = await uow.enrollments.list_active_in_launched_courses()
        except Exception as exc:
            result.error = log_store_failure(logger, "Listing active enrollments", exc)
            return result

        for enrollment in enrollments:
            try:
                evaluation = await self._evaluate(enrollment, now)
            except PerformanceCalculationError as exc:
                logger.warning(
                    "Performance for user=%s course=%s not computed: %s",
                    enrollment.user_id,
                    enrollment.course_id,
                    exc,
                )
                EVALUATIONS_WRITTEN.labels(outcome="error").inc()
                result.bump("failed")
                continue
            except Exception as exc:
                if is_transient(exc):
                    result.error = log_store_failure(
                        logger, f"Evaluating user {enrollment.user_id}", exc
                    )
                    break
                logger.exception(
                    "Evaluating user=%s course=%s failed",
                    enrollment.user_id,
                    enrollment.course_id,
                )
                EVALUATIONS_WRITTEN.labels(outcome="error").inc()
                result.bump("failed")
                continue

            EVALUATIONS_WRITTEN.labels(outcome="ok").inc()
            result.bump("evaluated")
            logger.debug(
                "user=%s course=%s overall=%.2f (%s)",
                evaluation.user_id,
                evaluation.course_id,
                evaluation.overall_score,
                evaluation.performance_data["performance_level"],
            )

        logger.info(
            "Evaluated %d user(s), %d failure(s)",
            result.counts.get("evaluated", 0),
            result.counts.get("failed", 0),
        )
        return result

    async def _evaluate(
        self, enrollment: Enrollment, now: datetime
    ) -> PerformanceEvaluation:
        async with self._store.begin() as uow:
            payload = await uow.routines.calculate_user_performance(
                enrollment.user_id, enrollment.course_id
            )
            if "error" in payload:
                raise PerformanceCalculationError(str(payload["error"]))

            overall = _score(payload, "overall_score")
            payload = {
                **payload,
                "performance_level": performance_level(overall),
                "last_updated": now.isoformat(),
            }
            evaluation = PerformanceEvaluation(
                user_id=enrollment.user_id,
                course_id=enrollment.course_id,
                evaluation_date=now.date(),
                level_number=int(payload.get("level_number") or enrollment.level_number),
                task_completion_score=_score(payload, "task_completion_rate"),
                quality_score=_score(payload, "average_grade"),
                timeliness_score=_score(payload, "on_time_completion_rate"),
                overall_score=overall,
                performance_data=payload,
                updated_at=now,
            )
            await uow.evaluations.upsert(evaluation)
            await uow.enrollments.set_grade(
                enrollment.user_id, enrollment.course_id, payload
            )
        return evaluation
