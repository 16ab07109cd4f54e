"""Bounded compression of long meeting histories.

The earliest system messages and the most recent messages are kept
verbatim. Everything else collapses into one ``compressed`` message built
from per-role excerpts and a handful of list-like key points.
"""

import re
from collections import OrderedDict

import structlog

from cabinet.models.meeting import Meeting
from cabinet.models.message import Message, MessageType, Role
from cabinet.orchestrator.budget import estimate_tokens

logger = structlog.get_logger()

TOKEN_THRESHOLD = 8000
PRESERVE_RECENT = 5
PRESERVE_EARLY_SYSTEM = 3
MAX_KEY_POINTS = 5
EXCERPT_CHARS = 100
EXCERPT_SEPARATOR = " | "
COMPRESSION_METHOD = "role_aggregated"

_LIST_LINE = re.compile(r"^(?:[-*•]|\d+[.)])\s+")


def total_tokens(messages: list[Message]) -> int:
    return sum(estimate_tokens(m.content) for m in messages)


class ContextCompressor:
    """Collapse the middle of an over-long history into one message.

    Compression is a heuristic summary, not lossless. The compressed
    message's ``original_count`` plus the number of verbatim messages
    always equals the input length.
    """

    def __init__(
        self,
        token_threshold: int = TOKEN_THRESHOLD,
        preserve_recent: int = PRESERVE_RECENT,
        preserve_early_system: int = PRESERVE_EARLY_SYSTEM,
    ):
        self.token_threshold = token_threshold
        self.preserve_recent = preserve_recent
        self.preserve_early_system = preserve_early_system

    def needs_compression(self, messages: list[Message]) -> bool:
        return total_tokens(messages) > self.token_threshold

    def compress_if_needed(self, meeting: Meeting) -> list[Message]:
        """Return the meeting's history, compressed when over threshold.

        The meeting itself is not modified.
        """
        before = total_tokens(meeting.messages)
        if before <= self.token_threshold:
            return meeting.messages

        compressed = self.compress(meeting.messages)
        logger.info(
            "compressed meeting context",
            meeting_id=str(meeting.id),
            tokens_before=before,
            messages_before=len(meeting.messages),
            messages_after=len(compressed),
            ratio=round(self.compression_ratio(meeting.messages, compressed), 2),
        )
        return compressed

    def compress(self, messages: list[Message]) -> list[Message]:
        """Compress a history regardless of its token total.

        Inputs of at most ``preserve_recent + 2`` messages are returned
        unchanged.

        Args:
            messages: Ordered message history

        Returns:
            New message list: early system messages, one compressed
            message (when anything was collapsed), then recent messages
        """
        if len(messages) <= self.preserve_recent + 2:
            return messages

        cut = len(messages) - self.preserve_recent
        early: list[Message] = []
        collapsed: list[Message] = []
        for index, message in enumerate(messages[:cut]):
            if index < self.preserve_early_system and message.type == MessageType.SYSTEM:
                early.append(message)
            else:
                collapsed.append(message)

        result = list(early)
        if collapsed:
            result.append(self._collapse(collapsed))
        result.extend(messages[cut:])
        return result

    def compression_ratio(
        self,
        original: list[Message],
        compressed: list[Message],
    ) -> float:
        """Return tokens_before / tokens_after (1.0 when either is empty)."""
        after = total_tokens(compressed)
        if after == 0:
            return 1.0
        return total_tokens(original) / after

    def extract_key_points(self, messages: list[Message]) -> list[str]:
        """Collect up to MAX_KEY_POINTS bullet or numbered lines, in order."""
        points: list[str] = []
        for message in messages:
            for line in message.content.splitlines():
                stripped = line.strip()
                if _LIST_LINE.match(stripped):
                    points.append(stripped)
                    if len(points) >= MAX_KEY_POINTS:
                        return points
        return points

    def _collapse(self, messages: list[Message]) -> Message:
        by_role: OrderedDict[str, list[str]] = OrderedDict()
        for message in messages:
            if message.type == MessageType.SYSTEM:
                continue
            excerpt = message.content[:EXCERPT_CHARS].strip()
            if excerpt:
                by_role.setdefault(message.role, []).append(excerpt)

        sections = [
            f"**{role}**: {EXCERPT_SEPARATOR.join(excerpts)}"
            for role, excerpts in by_role.items()
        ]
        key_points = self.extract_key_points(messages)

        content = "[Earlier discussion summary]\n\n" + "\n\n".join(sections)
        if key_points:
            content += "\n\n[Key points]\n" + "\n".join(key_points)

        start = messages[0].timestamp
        end = messages[-1].timestamp
        return Message(
            role=Role.SYSTEM.value,
            type=MessageType.COMPRESSED,
            timestamp=end,
            content=content,
            metadata={
                "original_count": len(messages),
                "time_range": {"start": start.isoformat(), "end": end.isoformat()},
                "compression_method": COMPRESSION_METHOD,
                "roles": list(by_role),
            },
        )
