"""Event infrastructure for Cyber Cabinet.

Provides:
- Event: Base class for meeting lifecycle events
- EventBus: In-process pub/sub for live observers
"""

from cabinet.events.base import Event
from cabinet.events.bus import EventBus
from cabinet.events.types import (
    MeetingCompleted,
    MeetingFailed,
    MeetingStarted,
    StageMessagesAppended,
)

__all__ = [
    # Base
    "Event",
    # Infrastructure
    "EventBus",
    # Event types
    "MeetingStarted",
    "StageMessagesAppended",
    "MeetingCompleted",
    "MeetingFailed",
]
