"""Session records and efficiency lessons written after a meeting."""

from datetime import UTC, datetime
from uuid import uuid4

import structlog

from cabinet.memory.renderer import MemoryRenderer
from cabinet.models.meeting import Degradation, Meeting
from cabinet.models.memory import MemoryType
from cabinet.repositories.memory_store import RecordStore

logger = structlog.get_logger()

HIGH_USAGE_RATIO = 0.9

HIGH_USAGE_LESSON = (
    "High token usage: consider shorter contexts or more efficient prompts"
)
DEGRADATION_LESSON = (
    "Meeting experienced {level} degradation: raise the budget or simplify the agenda"
)


class MemoryManager:
    """Write the per-meeting session record and any lessons learned."""

    def __init__(self, store: RecordStore, renderer: MemoryRenderer | None = None):
        self._store = store
        self._renderer = renderer or MemoryRenderer()

    async def create_session_memory(
        self,
        meeting: Meeting,
        now: datetime | None = None,
    ) -> str:
        """Persist the full transcript as a session record.

        Returns:
            ID of the session record
        """
        now = now or datetime.now(UTC)
        record_id = f"session-{meeting.id}-{now:%Y%m%d%H%M%S}"
        content = self._renderer.render(
            "session",
            topic=meeting.topic,
            status=meeting.status.value,
            usage=meeting.usage,
            budget=meeting.budget,
            degradation=_degradation_label(meeting),
            messages=[
                {"role": m.role, "type": m.type.value, "content": m.content}
                for m in meeting.messages
            ],
        )
        await self._store.write(
            MemoryType.SESSION,
            record_id,
            {
                "meeting_id": str(meeting.id),
                "topic": meeting.topic,
                "date": now.date().isoformat(),
                "created_at": now.isoformat(),
                "message_count": len(meeting.messages),
                "token_usage": meeting.usage,
            },
            content,
        )
        return record_id

    def lessons(self, meeting: Meeting) -> list[str]:
        lessons = []
        if meeting.usage > meeting.budget * HIGH_USAGE_RATIO:
            lessons.append(HIGH_USAGE_LESSON)
        if meeting.degradation and meeting.degradation != Degradation.NONE:
            lessons.append(DEGRADATION_LESSON.format(level=meeting.degradation.value))
        return lessons

    async def extract_learnings(
        self,
        meeting: Meeting,
        now: datetime | None = None,
    ) -> list[str]:
        """Write one learning record per lesson the meeting teaches.

        Returns:
            IDs of the learning records written
        """
        now = now or datetime.now(UTC)
        record_ids = []
        for lesson in self.lessons(meeting):
            record_id = f"learning-{now:%Y%m%d}-{uuid4().hex[:9]}"
            content = self._renderer.render(
                "learning",
                lesson=lesson,
                topic=meeting.topic,
                usage=meeting.usage,
                budget=meeting.budget,
                degradation=_degradation_label(meeting),
                reasons=meeting.degradation_reasons,
            )
            await self._store.write(
                MemoryType.LEARNING,
                record_id,
                {
                    "meeting_id": str(meeting.id),
                    "topic": meeting.topic,
                    "date": now.date().isoformat(),
                    "created_at": now.isoformat(),
                    "lesson": lesson,
                    "participants": list(meeting.selected_role_ids),
                },
                content,
            )
            record_ids.append(record_id)

        if record_ids:
            logger.info(
                "recorded meeting learnings",
                meeting_id=str(meeting.id),
                count=len(record_ids),
            )
        return record_ids


def _degradation_label(meeting: Meeting) -> str:
    return meeting.degradation.value if meeting.degradation else Degradation.NONE.value
