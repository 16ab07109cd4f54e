"""Durable memory records and retrieval models."""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from cabinet.models.base import utc_now


class MemoryType(str, Enum):
    """Closed set of durable record types."""

    DECISION = "decision"
    CONTROVERSY = "controversy"
    MEETING_SUMMARY = "meeting_summary"
    LEARNING = "learning"
    SESSION = "session"
    CONTEXT_PACKAGE = "context_package"


# Order in which the retriever scans record types. Earlier types win
# when the token cap binds.
RETRIEVAL_SCAN_ORDER = (
    MemoryType.DECISION,
    MemoryType.CONTROVERSY,
    MemoryType.LEARNING,
    MemoryType.MEETING_SUMMARY,
)


class MemoryRecord(BaseModel):
    """A persisted, append-only artifact surviving across meetings."""

    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(min_length=1)
    type: MemoryType
    topic: str = Field(default="")
    created_at: datetime = Field(default_factory=utc_now)
    metadata: dict[str, Any] = Field(default_factory=dict)
    content: str = Field(default="")

    @property
    def roles(self) -> list[str]:
        """Roles associated with the record, from whichever field it carries."""
        roles = self.metadata.get("participants") or self.metadata.get(
            "involved_roles"
        )
        if not isinstance(roles, list):
            return []
        return [str(r) for r in roles]


class ContextItem(BaseModel):
    """A scored reference to one durable record. Never persisted itself."""

    type: MemoryType
    source: str = Field(description="ID of the referenced record")
    relevance: float = Field(ge=0.0, le=1.0)
    summary: str
    tokens: int = Field(default=0, ge=0)
    metadata: dict[str, Any] = Field(default_factory=dict)


class MemoryQuery(BaseModel):
    """Parameters of a retrieval call."""

    topic: str | None = None
    roles: list[str] | None = None
    types: list[MemoryType] | None = None
    min_relevance: float = Field(default=0.6, ge=0.0, le=1.0)
    limit: int | None = Field(default=None, ge=1)


class RetrievalResult(BaseModel):
    items: list[ContextItem] = Field(default_factory=list)
    total_tokens: int = Field(default=0, ge=0)


class ContextPackage(BaseModel):
    """Digest of retrieved items ready for prompt injection."""

    id: str
    content: str
    tokens: int = Field(ge=0)
    item_count: int = Field(default=0, ge=0)
    items: list[ContextItem] = Field(default_factory=list)


class SummaryRefs(BaseModel):
    """IDs of the records written by the meeting summarizer."""

    summary_ref: str
    decision_ref: str | None = None
    controversy_refs: list[str] = Field(default_factory=list)


class SearchHit(BaseModel):
    """A record matched by keyword search."""

    record: MemoryRecord
    score: float = Field(ge=0.0, description="Matched terms per query term")
    snippet: str = Field(default="", description="Content excerpt around the first match")


class SearchResults(BaseModel):
    query: str
    terms: list[str] = Field(default_factory=list)
    types: list[MemoryType] = Field(default_factory=list)
    total_results: int = Field(default=0, ge=0)
    hits: list[SearchHit] = Field(default_factory=list)
