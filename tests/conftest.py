"""Pytest configuration and fixtures."""

import json
import random
from collections.abc import AsyncIterator, Callable
from pathlib import Path

import pytest
from httpx import ASGITransport, AsyncClient

from cabinet.db.turso import TursoClient
from cabinet.errors import CompletionError
from cabinet.events.bus import EventBus
from cabinet.main import app
from cabinet.memory.manager import MemoryManager
from cabinet.memory.retriever import ContextRetriever
from cabinet.memory.summarizer import MeetingSummarizer
from cabinet.orchestrator.flow_controller import FlowController
from cabinet.orchestrator.runner import MeetingRunner
from cabinet.orchestrator.scheduler import CompletionScheduler
from cabinet.repositories.meeting_repo import MeetingRepository
from cabinet.repositories.memory_store import MemoryRecordStore
from cabinet.services.llm_client import CompletionResult, TokenUsage
from cabinet.services.notifier import EventBusNotifier
from cabinet.services.personas import DefaultPersonaProvider

BRAIN_REPLY = json.dumps(
    {
        "analysis": "Ministers broadly support a subsidy but differ on scale.",
        "consensus": ["Commuters need relief"],
        "disagreements": ["FINANCE and WORKS disagree on the rollout cost"],
        "clarification_needed": {
            "role": "FINANCE",
            "question": "What is the annual cost ceiling?",
        },
        "should_intervene": True,
    }
)

BRIEF_REPLY = "Fares rose 20% this year. Should the cabinet subsidize transit passes?"
SUMMARY_REPLY = (
    "Positions: CRITIC warns of low uptake, FINANCE caps cost, WORKS plans phases.\n"
    "- Consensus on relief\n"
    "- Open question on scale"
)
DECISION_REPLY = (
    "Decision: Launch a phased pilot of the transit pass subsidy.\n"
    "Reasoning: A pilot limits fiscal exposure while testing uptake.\n"
    "Next steps:\n"
    "- Draft the pilot budget\n"
    "- Select two districts"
)
FOLLOW_UP_REPLIES = {
    "CRITIC": "NO_RESPONSE",
    "FINANCE": "I agree with a phased pilot capped at 40 million.",
    "WORKS": "NO_RESPONSE",
}


class ScriptedCompletionClient:
    """Deterministic generation client keyed on role and prompt wording.

    Every call reports ``tokens_per_call`` tokens of usage unless
    ``report_usage`` is False.
    """

    def __init__(
        self,
        tokens_per_call: int = 100,
        brain_reply: str = BRAIN_REPLY,
        follow_up_replies: dict[str, str] | None = None,
        fail_roles: tuple[str, ...] = (),
        report_usage: bool = True,
        speech_suffix: str = "",
    ):
        self.tokens_per_call = tokens_per_call
        self.brain_reply = brain_reply
        self.follow_up_replies = (
            FOLLOW_UP_REPLIES if follow_up_replies is None else follow_up_replies
        )
        self.fail_roles = fail_roles
        self.report_usage = report_usage
        self.speech_suffix = speech_suffix
        self.calls: list[dict] = []

    async def complete(
        self,
        role: str,
        messages: list[dict[str, str]],
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> CompletionResult:
        prompt = messages[-1]["content"]
        self.calls.append(
            {
                "role": role,
                "system": messages[0]["content"],
                "prompt": prompt,
                "temperature": temperature,
                "max_tokens": max_tokens,
            }
        )
        if role in self.fail_roles:
            raise CompletionError(f"{role} unavailable")

        usage = None
        if self.report_usage:
            half = self.tokens_per_call // 2
            usage = TokenUsage(
                prompt_tokens=half, completion_tokens=self.tokens_per_call - half
            )
        return CompletionResult(content=self.reply(role, prompt), usage=usage)

    def reply(self, role: str, prompt: str) -> str:
        if role == "BRAIN":
            return self.brain_reply
        if role == "PRIME":
            if "Make the final decision" in prompt:
                return DECISION_REPLY
            if "Summarize the discussion" in prompt:
                return SUMMARY_REPLY
            return BRIEF_REPLY
        if "BRAIN asks you" in prompt:
            return f"{role} answer: the annual ceiling is 40 million."
        if "Decide whether you need to speak again" in prompt:
            return self.follow_up_replies.get(role, "NO_RESPONSE")
        return f"{role} position on the subsidy.\n- {role.lower()} key point{self.speech_suffix}"

    def roles_called(self) -> list[str]:
        return [call["role"] for call in self.calls]


@pytest.fixture
async def db_client(tmp_path: Path) -> AsyncIterator[TursoClient]:
    """Create a temp file database client for testing."""
    db_path = tmp_path / "test_cabinet.db"
    client = TursoClient(url=f"file:{db_path}")
    await client.connect()
    yield client
    await client.close()


@pytest.fixture
async def memory_store(db_client: TursoClient) -> MemoryRecordStore:
    store = MemoryRecordStore(db_client)
    await store.initialize()
    return store


@pytest.fixture
async def meeting_repo(db_client: TursoClient) -> MeetingRepository:
    repo = MeetingRepository(db_client)
    await repo.initialize()
    return repo


@pytest.fixture
def completion_client() -> ScriptedCompletionClient:
    return ScriptedCompletionClient()


@pytest.fixture
async def scheduler(
    completion_client: ScriptedCompletionClient,
) -> AsyncIterator[CompletionScheduler]:
    scheduler = CompletionScheduler(completion_client)
    yield scheduler
    await scheduler.aclose()


@pytest.fixture
async def make_scheduler() -> AsyncIterator[Callable[..., tuple]]:
    """Factory for a scripted client with its own scheduler."""
    schedulers: list[CompletionScheduler] = []

    def factory(**client_kwargs) -> tuple[ScriptedCompletionClient, CompletionScheduler]:
        client = ScriptedCompletionClient(**client_kwargs)
        scheduler = CompletionScheduler(client)
        schedulers.append(scheduler)
        return client, scheduler

    yield factory
    for scheduler in schedulers:
        await scheduler.aclose()


@pytest.fixture
def make_controller(
    memory_store: MemoryRecordStore,
) -> Callable[..., FlowController]:
    """Factory for FlowControllers with a seeded speaking order."""

    def factory(scheduler: CompletionScheduler, **kwargs) -> FlowController:
        kwargs.setdefault("retriever", ContextRetriever(memory_store))
        kwargs.setdefault("rng", random.Random(7))
        return FlowController(
            scheduler=scheduler, personas=DefaultPersonaProvider(), **kwargs
        )

    return factory


@pytest.fixture
def controller(
    scheduler: CompletionScheduler,
    make_controller: Callable[..., FlowController],
) -> FlowController:
    return make_controller(scheduler)


@pytest.fixture
def event_bus() -> EventBus:
    return EventBus()


@pytest.fixture
def notifier(event_bus: EventBus) -> EventBusNotifier:
    return EventBusNotifier(event_bus)


@pytest.fixture
def make_runner(
    memory_store: MemoryRecordStore,
    meeting_repo: MeetingRepository,
    notifier: EventBusNotifier,
    event_bus: EventBus,
) -> Callable[[FlowController], MeetingRunner]:
    def factory(controller: FlowController) -> MeetingRunner:
        return MeetingRunner(
            controller=controller,
            summarizer=MeetingSummarizer(memory_store),
            memory_manager=MemoryManager(memory_store),
            repository=meeting_repo,
            notifier=notifier,
            event_bus=event_bus,
        )

    return factory


@pytest.fixture
async def runner(
    controller: FlowController,
    make_runner: Callable[[FlowController], MeetingRunner],
) -> AsyncIterator[MeetingRunner]:
    runner = make_runner(controller)
    yield runner
    await runner.wait_idle()


@pytest.fixture
async def client(
    db_client: TursoClient,
    memory_store: MemoryRecordStore,
    meeting_repo: MeetingRepository,
    event_bus: EventBus,
    scheduler: CompletionScheduler,
    controller: FlowController,
    runner: MeetingRunner,
) -> AsyncIterator[AsyncClient]:
    """Create async test client for FastAPI app with database."""
    app.state.db = db_client
    app.state.memory_store = memory_store
    app.state.meeting_repo = meeting_repo
    app.state.event_bus = event_bus
    app.state.scheduler = scheduler
    app.state.retriever = ContextRetriever(memory_store)
    app.state.runner = runner
    app.state.meetings = {}

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    await runner.wait_idle()
    for name in (
        "db",
        "memory_store",
        "meeting_repo",
        "event_bus",
        "scheduler",
        "retriever",
        "runner",
        "meetings",
    ):
        delattr(app.state, name)
