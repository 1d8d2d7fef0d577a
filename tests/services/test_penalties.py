from __future__ import annotations

from madrasa.services.penalties import DEFAULT_PENALTY, penalty_for


def test_known_task_types() -> None:
    assert penalty_for("daily_reading").percentage == 10
    assert penalty_for("daily_quiz").percentage == 10
    assert penalty_for("homework").percentage == 15
    assert penalty_for("exam").percentage == 25


def test_other_types_fall_back_to_default() -> None:
    assert penalty_for("weekly_report") is DEFAULT_PENALTY
    assert penalty_for("daily_monitoring").percentage == 5
