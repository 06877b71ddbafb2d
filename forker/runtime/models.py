from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from domain.models import WorkflowRun

# Local status ordering; ``None`` is the unset (not started) state.
STATUS_RANK: dict[Optional[str], int] = {
    None: 0,
    "in_progress": 1,
    "completed": 2,
}


@dataclass(slots=True)
class CheckState:
    """Last (status, conclusion) applied to one check run."""

    check_id: int
    check_name: str
    status: Optional[str] = None
    conclusion: Optional[str] = None
    updates: int = 0

    @property
    def rank(self) -> int:
        return STATUS_RANK.get(self.status, 0)

    @property
    def completed(self) -> bool:
        return self.status == "completed"

    def matches(self, status: Optional[str], conclusion: Optional[str]) -> bool:
        return self.status == status and self.conclusion == conclusion

    def record(self, status: Optional[str], conclusion: Optional[str]) -> None:
        self.status = status
        self.conclusion = conclusion
        self.updates += 1


@dataclass(slots=True)
class ForkOutcome:
    """Aggregate result of one reconciled run."""

    run: WorkflowRun
    conclusions: dict[str, Optional[str]]
    iterations: int
    updates: int
    failing: tuple[str, ...] = ()
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    @property
    def failed(self) -> bool:
        return bool(self.failing)

    @property
    def duration_seconds(self) -> float:
        if self.started_at is None or self.finished_at is None:
            return 0.0
        return max(0.0, (self.finished_at - self.started_at).total_seconds())
