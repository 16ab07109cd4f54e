"""Push notification of stage progress to live observers.

Delivery is best effort: a missing or failing notifier never blocks a
meeting from advancing.
"""

from typing import Protocol, runtime_checkable
import structlog

from cabinet.events.bus import EventBus
from cabinet.events.types import StageMessagesAppended
from cabinet.models.meeting import Meeting
from cabinet.models.message import Message

logger = structlog.get_logger()


@runtime_checkable
class Notifier(Protocol):
    """Protocol for observers of stage progress."""

    async def notify(
        self,
        meeting: Meeting,
        stage: str,
        next_stage: str,
        messages: list[Message],
    ) -> None:
        """Deliver a completed stage's appended messages."""
        ...


class EventBusNotifier:
    """Publish stage progress as StageMessagesAppended events."""

    def __init__(self, event_bus: EventBus):
        """Initialize with the in-process event bus.

        Args:
            event_bus: Bus that live observers subscribe to
        """
        self._bus = event_bus

    async def notify(
        self,
        meeting: Meeting,
        stage: str,
        next_stage: str,
        messages: list[Message],
    ) -> None:
        event = StageMessagesAppended(
            meeting_id=meeting.id,
            stage=stage,
            next_stage=next_stage,
            messages=[m.model_dump(mode="json") for m in messages],
            usage=meeting.usage,
            degradation=meeting.degradation.value if meeting.degradation else None,
        )
        await self._bus.publish(event)
        logger.debug(
            "stage notification published",
            meeting_id=str(meeting.id),
            stage=stage,
            message_count=len(messages),
        )
