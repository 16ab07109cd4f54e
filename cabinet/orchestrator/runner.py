"""Outer run loop for meetings.

The runner drives a meeting stage by stage through the FlowController,
appends each stage's messages, applies degradation, snapshots the meeting
and notifies observers. On completion it hands the transcript to the
summarizer. It also owns the late-arrival continuation path: user input
that arrives after a meeting completed re-runs FOLLOW_UP_DISCUSSION
through PRIME_DECISION.
"""

import asyncio
from enum import Enum
from uuid import UUID

import structlog

from cabinet.errors import MeetingStateError
from cabinet.events.bus import EventBus
from cabinet.events.types import MeetingCompleted, MeetingFailed, MeetingStarted
from cabinet.memory.manager import MemoryManager
from cabinet.memory.summarizer import MeetingSummarizer
from cabinet.models.meeting import Degradation, Meeting, MeetingStatus
from cabinet.models.memory import SummaryRefs
from cabinet.models.message import Message, MessageType, Role
from cabinet.orchestrator.flow_controller import FlowController, StageResult
from cabinet.orchestrator.stages import MeetingStage
from cabinet.repositories.meeting_repo import MeetingRepository
from cabinet.services.notifier import Notifier

logger = structlog.get_logger()


class SubmitOutcome(str, Enum):
    """What happened to a late user message."""

    IGNORED = "ignored"
    QUEUED = "queued"
    STARTED = "started"
    RECORDED = "recorded"


class MeetingRunner:
    """Drive meetings to completion, one driver per meeting.

    Independent meetings may run concurrently; their generation calls are
    still serialized by the shared CompletionScheduler.
    """

    def __init__(
        self,
        controller: FlowController,
        summarizer: MeetingSummarizer | None = None,
        memory_manager: MemoryManager | None = None,
        repository: MeetingRepository | None = None,
        notifier: Notifier | None = None,
        event_bus: EventBus | None = None,
    ):
        """Initialize runner.

        Args:
            controller: Stage state machine
            summarizer: Writes durable records after completion
            memory_manager: Writes session and learning records after completion
            repository: Snapshot store; snapshots are skipped when None
            notifier: Best-effort stage progress delivery
            event_bus: Receives lifecycle events
        """
        self._controller = controller
        self._summarizer = summarizer
        self._memory_manager = memory_manager
        self._repository = repository
        self._notifier = notifier
        self._event_bus = event_bus

        self._active: set[UUID] = set()
        # Single continuation slot per meeting; arrivals coalesce into it
        self._pending: dict[UUID, list[str]] = {}
        self._tasks: set[asyncio.Task] = set()
        # Observer deliveries run in the background, chained to keep their order
        self._deliveries: set[asyncio.Task] = set()
        self._last_delivery: asyncio.Task | None = None
        self.summary_refs: dict[UUID, SummaryRefs] = {}

    def is_active(self, meeting_id: UUID) -> bool:
        return meeting_id in self._active

    def has_pending_continuation(self, meeting_id: UUID) -> bool:
        return meeting_id in self._pending

    async def run(self, meeting: Meeting) -> Meeting:
        """Run a pending meeting from ISSUE_BRIEF to a terminal state.

        Generation failures do not propagate: the meeting is marked failed
        with the error text instead.

        Raises:
            MeetingStateError: If the meeting is not pending or already driven
        """
        if meeting.id in self._active or meeting.status != MeetingStatus.PENDING:
            raise MeetingStateError(
                f"Meeting {meeting.id} cannot be run from status {meeting.status.value}"
            )

        self._active.add(meeting.id)
        await self._run_active(meeting)
        return meeting

    def start(self, meeting: Meeting) -> asyncio.Task:
        """Run a meeting in the background and return its task."""
        if meeting.id in self._active or meeting.status != MeetingStatus.PENDING:
            raise MeetingStateError(
                f"Meeting {meeting.id} cannot be run from status {meeting.status.value}"
            )
        self._active.add(meeting.id)
        return self._spawn(self._run_active(meeting))

    async def submit_user_message(self, meeting: Meeting, text: str) -> SubmitOutcome:
        """Accept user input that arrives outside the primary run.

        Args:
            meeting: Target meeting
            text: User message; empty or whitespace-only text is ignored

        Returns:
            SubmitOutcome describing how the message was handled

        Raises:
            MeetingStateError: If the meeting failed
        """
        text = (text or "").strip()
        if not text:
            logger.debug("ignored empty user message", meeting_id=str(meeting.id))
            return SubmitOutcome.IGNORED

        if meeting.id in self._active:
            self._pending.setdefault(meeting.id, []).append(text)
            logger.info("queued continuation", meeting_id=str(meeting.id))
            return SubmitOutcome.QUEUED

        if meeting.status == MeetingStatus.FAILED:
            raise MeetingStateError(f"Meeting {meeting.id} failed: {meeting.error}")

        if meeting.status == MeetingStatus.PENDING:
            self._append_user_messages(meeting, [text])
            return SubmitOutcome.RECORDED

        self._active.add(meeting.id)
        self._append_user_messages(meeting, [text])
        self._spawn(self._continue(meeting))
        logger.info("started continuation", meeting_id=str(meeting.id))
        return SubmitOutcome.STARTED

    async def wait_idle(self) -> None:
        """Wait for background runs, continuations and notifications."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
        await self.flush()

    async def flush(self) -> None:
        """Wait for outstanding notifications to be delivered."""
        while self._deliveries:
            await asyncio.gather(*list(self._deliveries), return_exceptions=True)

    # Driving

    async def _run_active(self, meeting: Meeting) -> None:
        try:
            await self._drive(meeting, MeetingStage.ISSUE_BRIEF, continuation=False)
            await self._drain_continuations(meeting)
        finally:
            self._active.discard(meeting.id)

    async def _continue(self, meeting: Meeting) -> None:
        try:
            await self._drive(
                meeting, MeetingStage.FOLLOW_UP_DISCUSSION, continuation=True
            )
            await self._drain_continuations(meeting)
        finally:
            self._active.discard(meeting.id)

    async def _drain_continuations(self, meeting: Meeting) -> None:
        while texts := self._pending.pop(meeting.id, None):
            if meeting.status != MeetingStatus.COMPLETED:
                logger.warning(
                    "dropped continuation for unfinished meeting",
                    meeting_id=str(meeting.id),
                    status=meeting.status.value,
                    messages=len(texts),
                )
                return
            self._append_user_messages(meeting, texts)
            await self._drive(
                meeting, MeetingStage.FOLLOW_UP_DISCUSSION, continuation=True
            )

    async def _drive(
        self,
        meeting: Meeting,
        start: MeetingStage,
        continuation: bool,
    ) -> None:
        meeting.mark_running()
        self._publish(
            MeetingStarted(
                meeting_id=meeting.id,
                topic=meeting.topic,
                budget=meeting.budget,
                continuation=continuation,
            )
        )
        logger.info(
            "meeting run started",
            meeting_id=str(meeting.id),
            start_stage=start.value,
            continuation=continuation,
        )

        stage = start
        try:
            while not stage.is_terminal:
                result = await self._controller.execute_stage(meeting, stage)
                await self._apply(meeting, result)
                stage = result.next_stage
        except Exception as e:
            error = str(e) or e.__class__.__name__
            meeting.mark_failed(error)
            logger.error(
                "meeting failed",
                meeting_id=str(meeting.id),
                stage=stage.value,
                error=error,
            )
            await self._save(meeting)
            self._publish(MeetingFailed(meeting_id=meeting.id, error=error))
            return

        if meeting.degradation is None:
            meeting.degradation = Degradation.NONE
        meeting.mark_completed()
        await self._save(meeting)
        self._publish(
            MeetingCompleted(
                meeting_id=meeting.id,
                usage=meeting.usage,
                degradation=meeting.degradation.value,
                message_count=len(meeting.messages),
            )
        )
        logger.info(
            "meeting completed",
            meeting_id=str(meeting.id),
            usage=meeting.usage,
            budget=meeting.budget,
            degradation=meeting.degradation.value,
            continuation=continuation,
        )

        if not continuation:
            await self._record_memory(meeting)

    async def _apply(self, meeting: Meeting, result: StageResult) -> None:
        meeting.messages.extend(result.messages)
        if result.degradation is not None:
            meeting.mark_degraded(result.degradation, result.reason)
        meeting.touch()
        await self._save(meeting)
        self._notify(meeting, result)

    async def _record_memory(self, meeting: Meeting) -> None:
        if self._summarizer is not None:
            try:
                self.summary_refs[meeting.id] = (
                    await self._summarizer.generate_meeting_summaries(meeting)
                )
            except Exception as e:
                logger.error(
                    "meeting summaries failed",
                    meeting_id=str(meeting.id),
                    error=str(e),
                )

        if self._memory_manager is not None:
            try:
                await self._memory_manager.create_session_memory(meeting)
                await self._memory_manager.extract_learnings(meeting)
            except Exception as e:
                logger.error(
                    "session memory failed",
                    meeting_id=str(meeting.id),
                    error=str(e),
                )

    # Side channels

    async def _save(self, meeting: Meeting) -> None:
        if self._repository is None:
            return
        try:
            await self._repository.save(meeting)
        except Exception as e:
            logger.warning(
                "meeting snapshot failed",
                meeting_id=str(meeting.id),
                error=str(e),
            )

    def _notify(self, meeting: Meeting, result: StageResult) -> None:
        if self._notifier is None:
            return
        snapshot = meeting.model_copy(deep=True)
        self._enqueue_delivery(
            self._deliver(
                snapshot,
                result.stage.value,
                result.next_stage.value,
                list(result.messages),
            )
        )

    async def _deliver(
        self,
        meeting: Meeting,
        stage: str,
        next_stage: str,
        messages: list[Message],
    ) -> None:
        try:
            await self._notifier.notify(meeting, stage, next_stage, messages)
        except Exception as e:
            logger.warning(
                "stage notification failed",
                meeting_id=str(meeting.id),
                stage=stage,
                error=str(e),
            )

    def _publish(self, event) -> None:
        if self._event_bus is not None:
            self._enqueue_delivery(self._event_bus.publish(event))

    def _enqueue_delivery(self, coro) -> None:
        previous = self._last_delivery

        async def ordered() -> None:
            if previous is not None:
                await asyncio.gather(previous, return_exceptions=True)
            try:
                await coro
            except Exception as e:
                logger.warning("observer delivery failed", error=str(e))

        task = asyncio.create_task(ordered())
        self._last_delivery = task
        self._deliveries.add(task)
        task.add_done_callback(self._deliveries.discard)

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _append_user_messages(self, meeting: Meeting, texts: list[str]) -> None:
        for text in texts:
            meeting.messages.append(
                Message(
                    role=Role.USER.value,
                    type=MessageType.RESPONSE,
                    content=text,
                    metadata={"late_arrival": True},
                )
            )
        meeting.touch()
