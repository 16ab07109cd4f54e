"""Tests for MemoryManager session and learning records."""

from datetime import UTC, datetime

import pytest

from cabinet.memory.manager import DEGRADATION_LESSON, HIGH_USAGE_LESSON, MemoryManager
from cabinet.models.meeting import Degradation, Meeting, MeetingStatus
from cabinet.models.memory import MemoryType
from cabinet.models.message import Message

NOW = datetime(2026, 6, 1, 12, 30, 5, tzinfo=UTC)


@pytest.fixture
def manager(memory_store) -> MemoryManager:
    return MemoryManager(memory_store)


def meeting_with(usage: int, degradation: Degradation | None) -> Meeting:
    meeting = Meeting(
        topic="Transit subsidy",
        budget=1000,
        usage=usage,
        status=MeetingStatus.COMPLETED,
        degradation=degradation,
        selected_role_ids=["PRIME", "FINANCE"],
    )
    meeting.messages.append(Message(role="FINANCE", content="Cap the cost."))
    return meeting


async def test_session_record_holds_transcript(manager, memory_store) -> None:
    meeting = meeting_with(100, Degradation.NONE)

    record_id = await manager.create_session_memory(meeting, now=NOW)

    assert record_id == f"session-{meeting.id}-20260601123005"
    record = await memory_store.get(record_id)
    assert record.type == MemoryType.SESSION
    assert record.metadata["message_count"] == 1
    assert "**FINANCE** (statement): Cap the cost." in record.content


def test_no_lessons_for_efficient_meeting(manager) -> None:
    assert manager.lessons(meeting_with(900, Degradation.NONE)) == []


def test_lessons_for_heavy_degraded_meeting(manager) -> None:
    lessons = manager.lessons(meeting_with(950, Degradation.PARTIAL))
    assert lessons == [
        HIGH_USAGE_LESSON,
        DEGRADATION_LESSON.format(level="partial"),
    ]


async def test_learning_records_carry_participants(manager, memory_store) -> None:
    meeting = meeting_with(950, Degradation.SEVERE)
    meeting.degradation_reasons.append("Budget exhausted before FOLLOW_UP_DISCUSSION")

    record_ids = await manager.extract_learnings(meeting, now=NOW)

    assert len(record_ids) == 2
    assert all(rid.startswith("learning-20260601-") for rid in record_ids)
    record = await memory_store.get(record_ids[1])
    assert record.metadata["participants"] == ["PRIME", "FINANCE"]
    assert record.roles == ["PRIME", "FINANCE"]
    assert "- Budget exhausted before FOLLOW_UP_DISCUSSION" in record.content


async def test_no_learning_records_when_nothing_learned(manager, memory_store) -> None:
    assert await manager.extract_learnings(meeting_with(10, None), now=NOW) == []
    assert await memory_store.count(MemoryType.LEARNING) == 0
