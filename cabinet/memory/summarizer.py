"""Post-meeting extraction of summary, decision and disagreement records.

All extraction is best-effort text heuristics over the transcript. Missing
optional data skips the affected record instead of raising.
"""

import re
from collections import OrderedDict
from datetime import UTC, datetime

import structlog
from rapidfuzz import fuzz

from cabinet.memory.renderer import MemoryRenderer
from cabinet.models.artifacts import FinalDecision
from cabinet.models.meeting import Meeting
from cabinet.models.memory import MemoryType, SummaryRefs
from cabinet.models.message import Message, MessageType, Role
from cabinet.orchestrator.stages import STAGE_ENTRY_PREFIX, MeetingStage
from cabinet.repositories.memory_store import RecordStore

logger = structlog.get_logger()

STATEMENT_EXCERPT_CHARS = 200
HIGH_IMPACT_USAGE_RATIO = 0.8
OVERLAP_PREFIX_CHARS = 20
FUZZY_OVERLAP_THRESHOLD = 85

_STAGE_ENTRY = re.compile(rf"^{re.escape(STAGE_ENTRY_PREFIX)}(\w+)")

ACTION_VERBS = re.compile(
    r"\b(implement\w*|launch\w*|start\w*|roll(?:s|ed|ing)? out|deploy\w*|execut\w*)\b",
    re.IGNORECASE,
)

# Checked in order; the first category with a matching keyword wins
CATEGORY_KEYWORDS: dict[str, tuple[str, ...]] = {
    "fiscal": ("budget", "funding", "tax", "subsid", "cost"),
    "policy": ("policy", "regulation", "standard", "rule"),
    "operations": ("process", "implement", "execut", "operat"),
    "personnel": ("staff", "appoint", "organization", "team"),
}
DEFAULT_CATEGORY = "policy"

RESOLVED_PATTERN = re.compile(
    r"\b(agree[sd]?|accept(?:s|ed)?|resolved?|consensus)\b", re.IGNORECASE
)
PARTIAL_PATTERN = re.compile(
    r"(further discussion|needs? (?:further )?study|reservations?)", re.IGNORECASE
)

HIGH_IMPORTANCE_PATTERN = re.compile(
    r"\b(fundamental\w*|principle\w*|key|core|critical)\b", re.IGNORECASE
)
LOW_IMPORTANCE_PATTERN = re.compile(
    r"\b(detail\w*|minor|procedur\w*|formalit\w*)\b", re.IGNORECASE
)

_NOT_INVOLVED = {Role.SYSTEM.value, Role.PRIME.value, Role.BRAIN.value}
_DEPARTMENT_ROLES = (Role.CRITIC.value, Role.FINANCE.value, Role.WORKS.value)


class MeetingSummarizer:
    """Write durable records for a completed meeting."""

    def __init__(self, store: RecordStore, renderer: MemoryRenderer | None = None):
        """Initialize summarizer.

        Args:
            store: Durable-record store to write into
            renderer: Markdown renderer for record bodies
        """
        self._store = store
        self._renderer = renderer or MemoryRenderer()

    async def generate_meeting_summaries(
        self,
        meeting: Meeting,
        now: datetime | None = None,
    ) -> SummaryRefs:
        """Write the summary, decision and controversy records.

        Args:
            meeting: A meeting that reached COMPLETED
            now: Record creation time. Defaults to current time.

        Returns:
            SummaryRefs naming every record written
        """
        now = now or datetime.now(UTC)
        day = now.date().isoformat()

        summary_ref = await self._write_meeting_summary(meeting, now, day)

        decision_ref = None
        if meeting.artifacts.final_decision is not None:
            decision_ref = await self._write_decision(
                meeting, meeting.artifacts.final_decision, now, day
            )

        controversy_refs = []
        for index, disagreement in enumerate(self.disagreements(meeting), start=1):
            controversy_refs.append(
                await self._write_controversy(meeting, disagreement, index, now, day)
            )

        logger.info(
            "generated meeting summaries",
            meeting_id=str(meeting.id),
            summary_ref=summary_ref,
            decision_ref=decision_ref,
            controversy_count=len(controversy_refs),
        )
        return SummaryRefs(
            summary_ref=summary_ref,
            decision_ref=decision_ref,
            controversy_refs=controversy_refs,
        )

    # Meeting summary

    def participants(self, messages: list[Message]) -> list[str]:
        """Non-system roles with at least one message, in first-seen order."""
        roles: list[str] = []
        for message in messages:
            if message.is_system or message.role in roles:
                continue
            roles.append(message.role)
        return roles

    def stages(self, messages: list[Message]) -> list[str]:
        """Stages traversed, from system stage-entry messages."""
        stages: list[str] = []
        for message in messages:
            stage = _stage_entered(message)
            if stage and stage not in stages:
                stages.append(stage)
        return stages

    def stage_statements(self, messages: list[Message]) -> list[tuple[str, list[dict]]]:
        grouped: OrderedDict[str, list[dict]] = OrderedDict()
        current: str | None = None
        for message in messages:
            stage = _stage_entered(message)
            if stage:
                current = stage
                grouped.setdefault(stage, [])
                continue
            if message.is_system or current is None:
                continue
            excerpt = message.content[:STATEMENT_EXCERPT_CHARS]
            if len(message.content) > STATEMENT_EXCERPT_CHARS:
                excerpt += "..."
            grouped[current].append({"role": message.role, "excerpt": excerpt})
        return list(grouped.items())

    async def _write_meeting_summary(
        self, meeting: Meeting, now: datetime, day: str
    ) -> str:
        record_id = f"meeting-summary-{day}-{meeting.id}"
        participants = self.participants(meeting.messages)
        stages = self.stages(meeting.messages)
        decision = meeting.artifacts.final_decision

        content = self._renderer.render(
            "meeting_summary",
            topic=meeting.topic,
            description=meeting.description,
            participants=participants,
            stage_statements=self.stage_statements(meeting.messages),
            decision=decision.model_dump() if decision else None,
            disagreements=self.disagreements(meeting),
        )
        duration = meeting.duration_seconds
        await self._store.write(
            MemoryType.MEETING_SUMMARY,
            record_id,
            {
                "meeting_id": str(meeting.id),
                "topic": meeting.topic,
                "date": day,
                "created_at": now.isoformat(),
                "participants": participants,
                "stages": stages,
                "token_usage": meeting.usage,
                "duration_seconds": int(duration) if duration is not None else None,
                "degradation": meeting.degradation.value if meeting.degradation else None,
            },
            content,
        )
        return record_id

    # Decision

    def assess_impact(self, meeting: Meeting, decision: FinalDecision) -> str:
        if ACTION_VERBS.search(decision.decision):
            return "high"
        if meeting.usage > meeting.budget * HIGH_IMPACT_USAGE_RATIO:
            return "high"
        return "medium"

    def categorize(self, topic: str, decision: FinalDecision) -> str:
        text = f"{topic}\n{decision.decision}".lower()
        for category, keywords in CATEGORY_KEYWORDS.items():
            if any(keyword in text for keyword in keywords):
                return category
        return DEFAULT_CATEGORY

    async def _write_decision(
        self,
        meeting: Meeting,
        decision: FinalDecision,
        now: datetime,
        day: str,
    ) -> str:
        record_id = f"decision-{day}-{meeting.id}"
        impact = self.assess_impact(meeting, decision)
        category = self.categorize(meeting.topic, decision)
        content = self._renderer.render(
            "decision",
            decision=decision.model_dump(),
            impact=impact,
            category=category,
        )
        await self._store.write(
            MemoryType.DECISION,
            record_id,
            {
                "meeting_id": str(meeting.id),
                "topic": meeting.topic,
                "date": day,
                "created_at": now.isoformat(),
                "decision_maker": Role.PRIME.value,
                "participants": self.participants(meeting.messages),
                "impact": impact,
                "category": category,
            },
            content,
        )
        return record_id

    # Controversies

    def disagreements(self, meeting: Meeting) -> list[str]:
        analysis = meeting.artifacts.brain_analysis
        if analysis is None:
            return []
        return [d.strip() for d in analysis.disagreements if d and d.strip()]

    def involved_roles(self, messages: list[Message], disagreement: str) -> list[str]:
        """Roles whose messages overlap the disagreement text.

        A role is involved when the disagreement names it, when either
        text contains the other's opening words, or when the disagreement
        closely matches part of a message.
        """
        roles: list[str] = []
        phrase = disagreement.lower()
        head = phrase[:OVERLAP_PREFIX_CHARS]
        for message in messages:
            if message.role in _NOT_INVOLVED or message.role in roles:
                continue
            if message.is_system:
                continue
            content = message.content.lower()
            if not content:
                continue
            if (
                message.role.lower() in phrase
                or head in content
                or content[:OVERLAP_PREFIX_CHARS] in phrase
                or fuzz.partial_ratio(phrase, content) >= FUZZY_OVERLAP_THRESHOLD
            ):
                roles.append(message.role)
        return roles

    def resolution_status(self, meeting: Meeting) -> str:
        """Keyword scan of follow-up statements: resolved, partial or unresolved."""
        for message in meeting.messages:
            if message.metadata.get("stage") != MeetingStage.FOLLOW_UP_DISCUSSION.value:
                continue
            if message.is_system:
                continue
            if RESOLVED_PATTERN.search(message.content):
                return "resolved"
            if PARTIAL_PATTERN.search(message.content):
                return "partial"
        return "unresolved"

    def importance(self, disagreement: str) -> str:
        if HIGH_IMPORTANCE_PATTERN.search(disagreement):
            return "high"
        if LOW_IMPORTANCE_PATTERN.search(disagreement):
            return "low"
        return "medium"

    async def _write_controversy(
        self,
        meeting: Meeting,
        disagreement: str,
        index: int,
        now: datetime,
        day: str,
    ) -> str:
        record_id = f"controversy-{day}-{meeting.id}-{index}"
        involved = self.involved_roles(meeting.messages, disagreement)
        status = self.resolution_status(meeting)

        perspectives: OrderedDict[str, list[str]] = OrderedDict()
        for message in meeting.messages:
            if message.type != MessageType.STATEMENT:
                continue
            if message.role not in (involved or _DEPARTMENT_ROLES):
                continue
            perspectives.setdefault(message.role, []).append(message.content)

        content = self._renderer.render(
            "controversy",
            disagreement=disagreement,
            perspectives=list(perspectives.items()),
            resolution_status=status,
        )
        await self._store.write(
            MemoryType.CONTROVERSY,
            record_id,
            {
                "meeting_id": str(meeting.id),
                "topic": f"{meeting.topic} - {disagreement[:30]}",
                "date": day,
                "created_at": now.isoformat(),
                "involved_roles": involved,
                "resolution_status": status,
                "importance": self.importance(disagreement),
            },
            content,
        )
        return record_id


def _stage_entered(message: Message) -> str | None:
    if message.type != MessageType.SYSTEM:
        return None
    match = _STAGE_ENTRY.match(message.content)
    return match.group(1) if match else None
