from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from uuid import UUID, uuid4

COURSE_DRAFT = "draft"
COURSE_PUBLISHED = "published"
COURSE_ACTIVE = "active"

LAUNCH_ON_MAX = "max_capacity"
LAUNCH_ON_OPTIMAL = "optimal_capacity"
LAUNCH_ON_MIN = "min_capacity"


@dataclass(frozen=True, slots=True)
class CapacityTier:
    min: int = 0
    optimal: int = 0
    max: int = 0


@dataclass(frozen=True, slots=True)
class AutoLaunchSettings:
    on_max_capacity: bool = False
    on_optimal_capacity: bool = False
    on_min_capacity: bool = False

    @staticmethod
    def from_json(raw: Mapping | None) -> AutoLaunchSettings:
        raw = raw or {}
        return AutoLaunchSettings(
            on_max_capacity=bool(raw.get("auto_launch_on_max_capacity", False)),
            on_optimal_capacity=bool(raw.get("auto_launch_on_optimal_capacity", False)),
            on_min_capacity=bool(raw.get("auto_launch_on_min_capacity", False)),
        )

    def to_json(self) -> dict:
        return {
            "auto_launch_on_max_capacity": self.on_max_capacity,
            "auto_launch_on_optimal_capacity": self.on_optimal_capacity,
            "auto_launch_on_min_capacity": self.on_min_capacity,
        }


def parse_participant_config(raw: Mapping | None) -> dict[int, CapacityTier]:
    """``{"level_1": {"min": 1, "optimal": 2, "max": 3}, ...}`` → tiers by level."""
    tiers: dict[int, CapacityTier] = {}
    for key, value in (raw or {}).items():
        if not key.startswith("level_") or not isinstance(value, Mapping):
            continue
        level = int(key.removeprefix("level_"))
        tiers[level] = CapacityTier(
            min=int(value.get("min", 0) or 0),
            optimal=int(value.get("optimal", 0) or 0),
            max=int(value.get("max", 0) or 0),
        )
    return tiers


def dump_participant_config(tiers: Mapping[int, CapacityTier]) -> dict:
    return {
        f"level_{level}": {"min": t.min, "optimal": t.optimal, "max": t.max}
        for level, t in tiers.items()
    }


@dataclass(frozen=True, slots=True)
class Course:
    id: UUID
    name: str
    start_date: date | None = None
    status: str = COURSE_DRAFT
    is_published: bool = False
    is_launched: bool = False
    duration_days: int = 0
    participant_config: dict[int, CapacityTier] = field(default_factory=dict)
    auto_launch: AutoLaunchSettings = AutoLaunchSettings()
    launched_at: datetime | None = None

    @staticmethod
    def new(*, name: str, start_date: date | None = None, **kwargs) -> Course:
        return Course(id=uuid4(), name=name, start_date=start_date, **kwargs)

    @property
    def is_launch_candidate(self) -> bool:
        return (
            self.is_published
            and not self.is_launched
            and self.status == COURSE_PUBLISHED
        )

    def launch_reason(self, counts: Mapping[int, int], today: date) -> str | None:
        """Which auto-launch trigger the current enrollment counts satisfy.

        Every configured tier must reach the threshold.  Reaching max
        capacity launches any time before the start date; optimal and
        minimum capacity only launch once the start is at most one day
        away.
        """
        if self.start_date is None or self.start_date < today:
            return None
        if not self.participant_config:
            return None

        def reached(attr: str) -> bool:
            # A zero threshold means the tier has no requirement
            thresholds = {
                level: getattr(tier, attr)
                for level, tier in self.participant_config.items()
                if getattr(tier, attr) > 0
            }
            return bool(thresholds) and all(
                counts.get(level, 0) >= n for level, n in thresholds.items()
            )

        if self.auto_launch.on_max_capacity and reached("max"):
            return LAUNCH_ON_MAX

        if (self.start_date - today).days <= 1:
            if self.auto_launch.on_optimal_capacity and reached("optimal"):
                return LAUNCH_ON_OPTIMAL
            if self.auto_launch.on_min_capacity and reached("min"):
                return LAUNCH_ON_MIN
        return None


@dataclass(frozen=True, slots=True)
class CourseSchedule:
    """One course day; its tasks are released after the day's meeting."""

    id: UUID
    course_id: UUID
    day_number: int
    scheduled_date: date | None = None
    meeting_start_time: time | None = None
    meeting_end_time: time | None = None
    tasks_released: bool = False

    def effective_date(self, course_start: date | None) -> date | None:
        if self.scheduled_date is not None:
            return self.scheduled_date
        if course_start is None:
            return None
        return course_start + timedelta(days=self.day_number - 1)

    def is_releasable(
        self, course_start: date | None, today: date, now_time: time
    ) -> bool:
        if self.tasks_released:
            return False
        day = self.effective_date(course_start)
        if day is None or day > today:
            return False
        if day < today or self.meeting_end_time is None:
            return True
        return self.meeting_end_time <= now_time


@dataclass(frozen=True, slots=True)
class AutoLaunchRecord:
    id: UUID
    course_id: UUID
    launch_reason: str
    participants_count: int
    launched_at: datetime

    @staticmethod
    def new(
        *, course_id: UUID, launch_reason: str, participants_count: int, launched_at: datetime
    ) -> AutoLaunchRecord:
        return AutoLaunchRecord(
            id=uuid4(),
            course_id=course_id,
            launch_reason=launch_reason,
            participants_count=participants_count,
            launched_at=launched_at,
        )
