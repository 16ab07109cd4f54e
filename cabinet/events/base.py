"""Base class for meeting lifecycle events."""

from datetime import datetime
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field

from cabinet.models.base import utc_now


class Event(BaseModel):
    """Something that happened to one meeting.

    Events are frozen, delivered to live observers through the EventBus and
    never stored. ``event_type`` is the class name.
    """

    model_config = ConfigDict(frozen=True)

    meeting_id: UUID
    event_id: UUID = Field(default_factory=uuid4)
    timestamp: datetime = Field(default_factory=utc_now)

    @property
    def event_type(self) -> str:
        return type(self).__name__
