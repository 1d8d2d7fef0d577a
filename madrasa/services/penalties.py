"""Penalty policy: how much a missed deadline costs, by task type."""

from __future__ import annotations

from dataclasses import dataclass

from madrasa.models.task import DAILY_QUIZ, DAILY_READING, EXAM, HOMEWORK


@dataclass(frozen=True, slots=True)
class PenaltyRule:
    percentage: int
    reason: str


_DAILY_RULE = PenaltyRule(10, "عدم إكمال المهمة اليومية في الوقت المحدد")

PENALTY_RULES: dict[str, PenaltyRule] = {
    DAILY_READING: _DAILY_RULE,
    DAILY_QUIZ: _DAILY_RULE,
    HOMEWORK: PenaltyRule(15, "تأخير تسليم الواجب المنزلي"),
    EXAM: PenaltyRule(25, "عدم أداء الامتحان في الوقت المحدد"),
}

DEFAULT_PENALTY = PenaltyRule(5, "عدم إكمال المهمة في الوقت المحدد")


def penalty_for(task_type: str) -> PenaltyRule:
    return PENALTY_RULES.get(task_type, DEFAULT_PENALTY)
