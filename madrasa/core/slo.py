"""SLO (Service Level Objective) definitions for the scheduler.

The scheduler's product is deferred work getting done: tasks released
after the meeting, penalties applied after the deadline, launches fired
once a course fills up.  A failed tick is not user-visible by itself
(the next tick retries), but a job that keeps failing means students
see stale tasks.  So the primary SLO is the tick success rate.

  SLI: percentage of scheduler ticks finishing with outcome "ok"
  SLO: 99% of ticks succeed over 7 days

The control API keeps the availability and latency SLOs it always had.

Evaluation functions are pure: metric values in, SLOStatus out.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class SLODefinition:
    """A single SLO target.

    name:        Human-readable identifier (e.g., "availability")
    description: What this SLO measures
    target:      The target percentage (e.g., 99.5 means 99.5%)
    window:      Rolling evaluation window (e.g., "30d" = 30 days)
    """

    name: str
    description: str
    target: float
    window: str


@dataclass(frozen=True, slots=True)
class SLOStatus:
    """Current status of an SLO evaluation.

    budget_remaining is positive while healthy, negative once breached.
    """

    slo: SLODefinition
    current: float
    budget_remaining: float
    healthy: bool


AVAILABILITY_SLO = SLODefinition(
    name="availability",
    description="Percentage of non-5xx responses on the control API",
    target=99.5,
    window="30d",
)

LATENCY_SLO = SLODefinition(
    name="latency_p95",
    description="95th percentile control API response time under 500ms",
    target=95.0,
    window="30d",
)

TICK_SUCCESS_SLO = SLODefinition(
    name="tick_success",
    description="99% of scheduler ticks complete without error",
    target=99.0,
    window="7d",
)

ALL_SLOS = [AVAILABILITY_SLO, LATENCY_SLO, TICK_SUCCESS_SLO]


def _ratio_status(slo: SLODefinition, total: int, bad: int) -> SLOStatus:
    if total == 0:
        current = 100.0
    else:
        current = ((total - bad) / total) * 100

    return SLOStatus(
        slo=slo,
        current=round(current, 3),
        budget_remaining=round(current - slo.target, 3),
        healthy=current >= slo.target,
    )


def evaluate_availability(total_requests: int, error_requests: int) -> SLOStatus:
    """availability = (total - errors) / total × 100

    Example:
      10,000 total, 10 errors → 99.9% → healthy (target 99.5%)
      10,000 total, 100 errors → 99.0% → breached
    """
    return _ratio_status(AVAILABILITY_SLO, total_requests, error_requests)


def evaluate_latency(p95_ms: float) -> SLOStatus:
    """Approximate "percentage of requests under 500ms" from a p95 value.

    p95 at or under the threshold maps into [95, 100]; above it the value
    falls below 95 proportionally to the overshoot.
    """
    threshold_ms = 500.0
    if p95_ms <= threshold_ms:
        current = 95.0 + (threshold_ms - p95_ms) / threshold_ms * 5.0
        current = min(current, 100.0)
    else:
        current = max(0.0, 95.0 - (p95_ms - threshold_ms) / threshold_ms * 95.0)

    budget_remaining = current - LATENCY_SLO.target
    return SLOStatus(
        slo=LATENCY_SLO,
        current=round(current, 3),
        budget_remaining=round(budget_remaining, 3),
        healthy=current >= LATENCY_SLO.target,
    )


def evaluate_tick_success(total_ticks: int, failed_ticks: int) -> SLOStatus:
    """Share of ticks that finished "ok".

    Skipped ticks (overlap with a still-running tick of the same job) are
    not counted by the caller; they are neither success nor failure.
    """
    return _ratio_status(TICK_SUCCESS_SLO, total_ticks, failed_ticks)
