from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime

OUTCOME_OK = "ok"
OUTCOME_ERROR = "error"
OUTCOME_SKIPPED = "skipped"


@dataclass(frozen=True, slots=True)
class TickReport:
    """What one firing of a job did.

    counts: engine-specific tallies, e.g. {"released": 4, "notified": 2}
    error:  diagnostic message when the tick ended early
    """

    job: str
    outcome: str
    started_at: datetime
    finished_at: datetime
    counts: dict[str, int] = field(default_factory=dict)
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.outcome == OUTCOME_OK

    @property
    def duration_seconds(self) -> float:
        return (self.finished_at - self.started_at).total_seconds()

    def to_json(self) -> dict:
        data = asdict(self)
        data["started_at"] = self.started_at.isoformat()
        data["finished_at"] = self.finished_at.isoformat()
        data["duration_seconds"] = round(self.duration_seconds, 3)
        return data

    @staticmethod
    def from_json(data: dict) -> TickReport:
        return TickReport(
            job=data["job"],
            outcome=data["outcome"],
            started_at=datetime.fromisoformat(data["started_at"]),
            finished_at=datetime.fromisoformat(data["finished_at"]),
            counts=dict(data.get("counts") or {}),
            error=data.get("error"),
        )


@dataclass(slots=True)
class EngineResult:
    """Tallies an engine accumulates during one run.

    ``error`` is set when the run stopped early on a store failure; the
    work left undone is picked up by the next tick.
    """

    counts: dict[str, int] = field(default_factory=dict)
    error: str | None = None

    def bump(self, key: str, n: int = 1) -> None:
        self.counts[key] = self.counts.get(key, 0) + n

    def merge(self, other: EngineResult) -> EngineResult:
        for key, n in other.counts.items():
            self.bump(key, n)
        if other.error and not self.error:
            self.error = other.error
        return self
