"""Message model for statements exchanged during a meeting."""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field

from cabinet.models.base import utc_now


class Role(str, Enum):
    """Participants of a cabinet meeting."""

    PRIME = "PRIME"
    BRAIN = "BRAIN"
    CRITIC = "CRITIC"
    FINANCE = "FINANCE"
    WORKS = "WORKS"
    CLERK = "CLERK"
    SYSTEM = "SYSTEM"
    USER = "USER"


class MessageType(str, Enum):
    """Closed set of message kinds."""

    STATEMENT = "statement"
    QUESTION = "question"
    RESPONSE = "response"
    PERSPECTIVE = "perspective"
    ELABORATION_REQUEST = "elaboration_request"
    SYSTEM = "system"
    COMPRESSED = "compressed"


class Message(BaseModel):
    """A single entry in a meeting transcript.

    Messages are append-only. The only other mutation is compression,
    where a contiguous run is replaced by one ``compressed`` message.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4, description="Unique message identifier")
    timestamp: datetime = Field(default_factory=utc_now)
    role: str = Field(min_length=1, description="Originating role name")
    type: MessageType = Field(default=MessageType.STATEMENT)
    content: str = Field(default="", description="Free-text message body")
    metadata: dict[str, Any] = Field(
        default_factory=dict,
        description="Optional context, e.g. target role of a directed question",
    )

    @property
    def is_system(self) -> bool:
        """Whether the message was produced by the orchestrator itself."""
        return self.type == MessageType.SYSTEM or self.role == Role.SYSTEM.value


def system_message(content: str, **metadata: Any) -> Message:
    """Build a system-originated message."""
    return Message(
        role=Role.SYSTEM.value,
        type=MessageType.SYSTEM,
        content=content,
        metadata=metadata,
    )
