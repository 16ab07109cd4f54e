"""Meetings API endpoints for creating, running and continuing meetings."""

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field

from cabinet.config import settings
from cabinet.errors import MeetingStateError
from cabinet.models.meeting import Meeting, MeetingStatus
from cabinet.orchestrator.runner import MeetingRunner, SubmitOutcome
from cabinet.repositories.meeting_repo import MeetingRepository

router = APIRouter(prefix="/meetings", tags=["meetings"])


class CreateMeetingRequest(BaseModel):
    """Request body for a new meeting."""

    topic: str = Field(min_length=1, max_length=500)
    description: str | None = Field(default=None, max_length=5000)
    budget: int | None = Field(default=None, ge=1)
    selected_role_ids: list[str] | None = None


class MeetingSummaryResponse(BaseModel):
    """Compact listing entry."""

    id: UUID
    topic: str
    status: MeetingStatus
    budget: int
    usage: int
    degradation: str | None
    message_count: int
    created_at: datetime


class UserMessageRequest(BaseModel):
    text: str = ""


class UserMessageResponse(BaseModel):
    meeting_id: UUID
    outcome: SubmitOutcome


def get_runner(request: Request) -> MeetingRunner:
    """Dependency to get MeetingRunner from app state."""
    return request.app.state.runner


def get_meeting_repo(request: Request) -> MeetingRepository:
    """Dependency to get MeetingRepository from app state."""
    return request.app.state.meeting_repo


def get_live_meetings(request: Request) -> dict[UUID, Meeting]:
    """Dependency to get in-process meetings keyed by id."""
    return request.app.state.meetings


async def load_meeting(
    meeting_id: UUID,
    live: dict[UUID, Meeting] = Depends(get_live_meetings),
    repo: MeetingRepository = Depends(get_meeting_repo),
) -> Meeting:
    """Resolve a meeting from the live registry, then from snapshots.

    Raises:
        HTTPException: 404 if the meeting does not exist
    """
    meeting = live.get(meeting_id)
    if meeting is None:
        meeting = await repo.get(meeting_id)
        if meeting is None:
            raise HTTPException(status_code=404, detail="Meeting not found")
        live[meeting.id] = meeting
    return meeting


def _summary(meeting: Meeting) -> MeetingSummaryResponse:
    return MeetingSummaryResponse(
        id=meeting.id,
        topic=meeting.topic,
        status=meeting.status,
        budget=meeting.budget,
        usage=meeting.usage,
        degradation=meeting.degradation.value if meeting.degradation else None,
        message_count=len(meeting.messages),
        created_at=meeting.created_at,
    )


@router.post("", response_model=Meeting, status_code=201)
async def create_meeting(
    body: CreateMeetingRequest,
    live: dict[UUID, Meeting] = Depends(get_live_meetings),
    repo: MeetingRepository = Depends(get_meeting_repo),
) -> Meeting:
    """Create a pending meeting."""
    meeting = Meeting(
        topic=body.topic,
        description=body.description,
        budget=body.budget or settings.default_meeting_budget,
    )
    if body.selected_role_ids:
        meeting.selected_role_ids = [r.upper() for r in body.selected_role_ids]
    live[meeting.id] = meeting
    await repo.save(meeting)
    return meeting


@router.get("", response_model=list[MeetingSummaryResponse])
async def list_meetings(
    status: MeetingStatus | None = None,
    limit: int = 50,
    live: dict[UUID, Meeting] = Depends(get_live_meetings),
    repo: MeetingRepository = Depends(get_meeting_repo),
) -> list[MeetingSummaryResponse]:
    """List meetings, preferring in-process state over snapshots."""
    meetings = await repo.list(status=status, limit=limit)
    return [_summary(live.get(m.id, m)) for m in meetings]


@router.get("/{meeting_id}", response_model=Meeting)
async def get_meeting(meeting: Meeting = Depends(load_meeting)) -> Meeting:
    """Return the full meeting: messages, artifacts and budget state."""
    return meeting


@router.post("/{meeting_id}/run", response_model=MeetingSummaryResponse, status_code=202)
async def run_meeting(
    meeting: Meeting = Depends(load_meeting),
    runner: MeetingRunner = Depends(get_runner),
) -> MeetingSummaryResponse:
    """Start a pending meeting in the background.

    Raises:
        HTTPException: 409 if the meeting is not pending
    """
    try:
        runner.start(meeting)
    except MeetingStateError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return _summary(meeting)


@router.post("/{meeting_id}/messages", response_model=UserMessageResponse)
async def submit_message(
    body: UserMessageRequest,
    meeting: Meeting = Depends(load_meeting),
    runner: MeetingRunner = Depends(get_runner),
) -> UserMessageResponse:
    """Submit user input; a completed meeting re-opens its follow-up round."""
    try:
        outcome = await runner.submit_user_message(meeting, body.text)
    except MeetingStateError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return UserMessageResponse(meeting_id=meeting.id, outcome=outcome)
