"""Meeting model, the primary aggregate of a cabinet run."""

from datetime import datetime
from enum import Enum

from pydantic import Field

from cabinet.models.artifacts import Artifacts
from cabinet.models.base import BaseEntity, utc_now
from cabinet.models.message import Message, Role


class MeetingStatus(str, Enum):
    """Lifecycle of a meeting: pending -> running -> completed | failed."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class Degradation(str, Enum):
    """Policy response to budget pressure."""

    NONE = "none"
    PARTIAL = "partial"
    SEVERE = "severe"


_DEGRADATION_RANK = {
    Degradation.NONE: 0,
    Degradation.PARTIAL: 1,
    Degradation.SEVERE: 2,
}

DEFAULT_ROLES = [
    Role.PRIME.value,
    Role.BRAIN.value,
    Role.CRITIC.value,
    Role.FINANCE.value,
    Role.WORKS.value,
]


class Meeting(BaseEntity):
    """A deliberation among cabinet roles under a token budget.

    Meetings are mutated only by the orchestrator. They are never
    deleted; an unrecoverable error marks them failed instead.
    """

    topic: str = Field(min_length=1, max_length=500, description="Issue under debate")
    description: str | None = Field(default=None, max_length=5000)
    status: MeetingStatus = Field(default=MeetingStatus.PENDING)
    budget: int = Field(default=12000, ge=1, description="Token ceiling")
    usage: int = Field(default=0, ge=0, description="Tokens consumed so far")
    messages: list[Message] = Field(default_factory=list)
    artifacts: Artifacts = Field(default_factory=Artifacts)
    degradation: Degradation | None = Field(default=None)
    degradation_reasons: list[str] = Field(default_factory=list)
    selected_role_ids: list[str] = Field(default_factory=lambda: list(DEFAULT_ROLES))
    error: str | None = Field(default=None)
    started_at: datetime | None = Field(default=None)
    completed_at: datetime | None = Field(default=None)

    def mark_degraded(self, level: Degradation, reason: str | None = None) -> None:
        """Raise the degradation level; a level is never lowered."""
        current = self.degradation or Degradation.NONE
        if _DEGRADATION_RANK[level] > _DEGRADATION_RANK[current]:
            self.degradation = level
        elif self.degradation is None:
            self.degradation = current
        if reason:
            self.degradation_reasons.append(reason)
        self.touch()

    def mark_running(self) -> None:
        self.status = MeetingStatus.RUNNING
        self.error = None
        if self.started_at is None:
            self.started_at = utc_now()
        self.touch()

    def mark_completed(self) -> None:
        self.status = MeetingStatus.COMPLETED
        self.completed_at = utc_now()
        self.touch()

    def mark_failed(self, error: str) -> None:
        self.status = MeetingStatus.FAILED
        self.error = error
        self.completed_at = utc_now()
        self.touch()

    @property
    def duration_seconds(self) -> float | None:
        """Wall time between start and completion, when both are known."""
        if self.started_at is None or self.completed_at is None:
            return None
        return (self.completed_at - self.started_at).total_seconds()
