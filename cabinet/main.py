"""FastAPI application entry point."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from cabinet.api.router import api_router
from cabinet.config import settings
from cabinet.db.turso import TursoClient
from cabinet.events.bus import EventBus
from cabinet.memory.compressor import ContextCompressor
from cabinet.memory.manager import MemoryManager
from cabinet.memory.renderer import MemoryRenderer
from cabinet.memory.retriever import ContextRetriever
from cabinet.memory.summarizer import MeetingSummarizer
from cabinet.orchestrator.flow_controller import FlowController
from cabinet.orchestrator.runner import MeetingRunner
from cabinet.orchestrator.scheduler import CompletionScheduler
from cabinet.repositories.meeting_repo import MeetingRepository
from cabinet.repositories.memory_store import MemoryRecordStore
from cabinet.services.llm_client import AnthropicCompletionClient
from cabinet.services.notifier import EventBusNotifier
from cabinet.services.personas import DefaultPersonaProvider

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


async def _initialize_storage(app: FastAPI, db: TursoClient) -> None:
    """Create the record store and snapshot repository schemas."""
    memory_store = MemoryRecordStore(db)
    await memory_store.initialize()
    app.state.memory_store = memory_store

    meeting_repo = MeetingRepository(db)
    await meeting_repo.initialize()
    app.state.meeting_repo = meeting_repo
    logger.info("Record store and meeting repository initialized")


def _initialize_orchestrator(app: FastAPI) -> None:
    """Wire the scheduler, flow controller and runner into app state.

    Requires storage and the event bus to be initialized first.
    """
    renderer = MemoryRenderer()
    retriever = ContextRetriever(app.state.memory_store, renderer=renderer)

    scheduler = CompletionScheduler(AnthropicCompletionClient())
    controller = FlowController(
        scheduler=scheduler,
        personas=DefaultPersonaProvider(),
        compressor=ContextCompressor(),
        retriever=retriever,
    )
    runner = MeetingRunner(
        controller=controller,
        summarizer=MeetingSummarizer(app.state.memory_store, renderer),
        memory_manager=MemoryManager(app.state.memory_store, renderer),
        repository=app.state.meeting_repo,
        notifier=EventBusNotifier(app.state.event_bus),
        event_bus=app.state.event_bus,
    )

    app.state.retriever = retriever
    app.state.scheduler = scheduler
    app.state.runner = runner
    app.state.meetings = {}
    logger.info("Orchestrator initialized")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan management.

    Startup:
    - Initialize database connection and schemas
    - Initialize event bus
    - Wire the orchestrator

    Shutdown:
    - Wait for in-flight meetings
    - Stop the completion scheduler
    - Close the database
    """
    logger.info(f"Starting {settings.app_name}...")

    db = TursoClient()
    await db.connect()
    app.state.db = db

    await _initialize_storage(app, db)

    app.state.event_bus = EventBus()

    _initialize_orchestrator(app)

    yield

    logger.info(f"Shutting down {settings.app_name}...")
    await app.state.runner.wait_idle()
    await app.state.scheduler.aclose()
    await db.close()


app = FastAPI(
    title=settings.app_name,
    description="Multi-role cabinet meeting orchestration",
    version=settings.app_version,
    lifespan=lifespan,
)

app.include_router(api_router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "cabinet.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )
