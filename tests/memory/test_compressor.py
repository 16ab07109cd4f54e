"""Tests for ContextCompressor."""

from datetime import UTC, datetime, timedelta

import pytest

from cabinet.memory.compressor import ContextCompressor, total_tokens
from cabinet.models.meeting import Meeting
from cabinet.models.message import Message, MessageType, system_message

BASE_TIME = datetime(2026, 3, 1, 9, 0, tzinfo=UTC)
ROLES = ["CRITIC", "FINANCE", "WORKS"]


def make_history(count: int, chars: int, system_head: int = 3) -> list[Message]:
    messages = []
    for i in range(count):
        timestamp = BASE_TIME + timedelta(minutes=i)
        if i < system_head:
            message = system_message(f"Entering stage: S{i} " + "s" * chars)
            message.timestamp = timestamp
        else:
            message = Message(
                role=ROLES[i % 3],
                content=f"msg{i} " + "x" * chars,
                timestamp=timestamp,
            )
        messages.append(message)
    return messages


@pytest.fixture
def compressor() -> ContextCompressor:
    return ContextCompressor()


class TestCompress:
    def test_thirty_message_history(self, compressor: ContextCompressor) -> None:
        messages = make_history(30, 300)

        result = compressor.compress(messages)

        assert len(result) == 9
        assert [m.type for m in result[:3]] == [MessageType.SYSTEM] * 3
        collapsed = result[3]
        assert collapsed.type == MessageType.COMPRESSED
        assert collapsed.metadata["original_count"] == 22
        assert collapsed.metadata["compression_method"] == "role_aggregated"
        assert result[4:] == messages[25:]
        assert total_tokens(result) < total_tokens(messages)

    def test_count_is_conserved(self, compressor: ContextCompressor) -> None:
        for count in (9, 12, 30):
            messages = make_history(count, 50)
            result = compressor.compress(messages)
            verbatim = [m for m in result if m.type != MessageType.COMPRESSED]
            collapsed = [m for m in result if m.type == MessageType.COMPRESSED]
            assert len(collapsed) == 1
            assert len(verbatim) + collapsed[0].metadata["original_count"] == count

    def test_short_history_is_unchanged(self, compressor: ContextCompressor) -> None:
        messages = make_history(7, 5000)
        assert compressor.compress(messages) == messages

    def test_non_system_early_message_is_collapsed(
        self, compressor: ContextCompressor
    ) -> None:
        messages = make_history(10, 20, system_head=1)

        result = compressor.compress(messages)

        assert len(result) == 7
        assert result[0].type == MessageType.SYSTEM
        assert result[1].metadata["original_count"] == 4

    def test_collapsed_content_groups_excerpts_by_role(
        self, compressor: ContextCompressor
    ) -> None:
        messages = make_history(30, 300)

        content = compressor.compress(messages)[3].content

        assert content.startswith("[Earlier discussion summary]")
        assert "**CRITIC**: msg3 " in content
        assert " | " in content
        excerpt = next(
            part for part in content.split(" | ") if part.startswith("msg7")
        )
        assert len(excerpt) <= 100

    def test_time_range_spans_collapsed_run(
        self, compressor: ContextCompressor
    ) -> None:
        messages = make_history(30, 10)

        collapsed = compressor.compress(messages)[3]

        time_range = collapsed.metadata["time_range"]
        assert time_range["start"] == messages[3].timestamp.isoformat()
        assert time_range["end"] == messages[24].timestamp.isoformat()


class TestKeyPoints:
    def test_collects_at_most_five_list_lines(
        self, compressor: ContextCompressor
    ) -> None:
        messages = [
            Message(role="FINANCE", content="Costs:\n- one\n- two\n* three"),
            Message(role="WORKS", content="Plan:\n1. four\n2) five\n3. six"),
        ]

        points = compressor.extract_key_points(messages)

        assert points == ["- one", "- two", "* three", "1. four", "2) five"]

    def test_key_points_appended_to_collapsed_message(
        self, compressor: ContextCompressor
    ) -> None:
        messages = make_history(10, 10)
        messages[4].content = "Position\n- cap the cost"

        content = compressor.compress(messages)[3].content

        assert "[Key points]\n- cap the cost" in content


class TestThreshold:
    def test_small_history_does_not_need_compression(
        self, compressor: ContextCompressor
    ) -> None:
        # 30 x ~300 chars is roughly 2,300 tokens
        assert not compressor.needs_compression(make_history(30, 300))

    def test_large_history_needs_compression(
        self, compressor: ContextCompressor
    ) -> None:
        assert compressor.needs_compression(make_history(30, 1200))

    def test_compress_if_needed_leaves_meeting_untouched(
        self, compressor: ContextCompressor
    ) -> None:
        meeting = Meeting(topic="Transit subsidy")
        meeting.messages = make_history(30, 1200)

        result = compressor.compress_if_needed(meeting)

        assert len(result) == 9
        assert len(meeting.messages) == 30

    def test_compress_if_needed_passes_small_history_through(
        self, compressor: ContextCompressor
    ) -> None:
        meeting = Meeting(topic="Transit subsidy")
        meeting.messages = make_history(30, 300)

        assert compressor.compress_if_needed(meeting) is meeting.messages

    def test_compression_ratio(self, compressor: ContextCompressor) -> None:
        messages = make_history(30, 1200)
        ratio = compressor.compression_ratio(messages, compressor.compress(messages))
        assert ratio > 2
        assert compressor.compression_ratio([], []) == 1.0
