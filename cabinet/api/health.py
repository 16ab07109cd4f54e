"""Liveness and readiness probes."""

from datetime import datetime

from fastapi import APIRouter, Request
from pydantic import BaseModel, Field

from cabinet.config import settings
from cabinet.models.base import utc_now

router = APIRouter(prefix="/health", tags=["health"])

OK = "ok"
FAILED = "failed"
MISSING = "not_configured"


class HealthResponse(BaseModel):
    status: str = "healthy"
    timestamp: datetime = Field(default_factory=utc_now)
    version: str = settings.app_version
    environment: str = settings.app_env


class ReadinessResponse(BaseModel):
    """Per-component readiness plus orchestration load."""

    status: str
    checks: dict[str, str]
    pending_completions: int = 0
    live_meetings: int = 0


async def _database_check(request: Request) -> str:
    db = getattr(request.app.state, "db", None)
    if db is None:
        return MISSING
    return OK if await db.ping() else FAILED


def _component_check(request: Request, name: str) -> str:
    return OK if getattr(request.app.state, name, None) is not None else MISSING


@router.get("/", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    return HealthResponse()


@router.get("/live")
async def liveness() -> dict[str, str]:
    return {"status": "alive"}


@router.get("/ready", response_model=ReadinessResponse)
async def readiness(request: Request) -> ReadinessResponse:
    """Ready once the database answers and the orchestrator is wired.

    The completion queue depth and the number of in-memory meetings are
    reported for load monitoring; neither affects readiness.
    """
    checks = {
        "api": OK,
        "database": await _database_check(request),
        "scheduler": _component_check(request, "scheduler"),
        "runner": _component_check(request, "runner"),
    }
    scheduler = getattr(request.app.state, "scheduler", None)
    meetings = getattr(request.app.state, "meetings", None) or {}

    return ReadinessResponse(
        status="ready" if all(v == OK for v in checks.values()) else "not_ready",
        checks=checks,
        pending_completions=scheduler.pending if scheduler is not None else 0,
        live_meetings=len(meetings),
    )
