"""Typed event definitions for meeting lifecycle events.

- MeetingStarted: A run or continuation began
- StageMessagesAppended: A stage finished and its messages were appended
- MeetingCompleted: The meeting reached COMPLETED
- MeetingFailed: The meeting was marked failed
"""

from typing import Any

from pydantic import Field

from cabinet.events.base import Event


class MeetingStarted(Event):
    """Emitted when a run or a continuation starts driving a meeting."""

    topic: str = Field(description="Meeting topic")
    budget: int = Field(description="Token ceiling")
    continuation: bool = Field(default=False)


class StageMessagesAppended(Event):
    """Emitted after a stage completes with the messages it appended."""

    stage: str = Field(description="Stage that just executed")
    next_stage: str = Field(description="Stage the meeting moves to")
    messages: list[dict[str, Any]] = Field(default_factory=list)
    usage: int = Field(default=0, description="Tokens consumed so far")
    degradation: str | None = Field(default=None)


class MeetingCompleted(Event):
    """Emitted when a meeting reaches COMPLETED."""

    usage: int = Field(default=0)
    degradation: str | None = Field(default=None)
    message_count: int = Field(default=0)


class MeetingFailed(Event):
    """Emitted when a meeting is marked failed."""

    error: str = Field(description="Text of the triggering exception")
