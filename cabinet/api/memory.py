"""Memory API endpoints for browsing records and building context packages."""

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from cabinet.memory.retriever import ContextRetriever
from cabinet.memory.search import MemorySearch
from cabinet.models.memory import (
    ContextPackage,
    MemoryQuery,
    MemoryRecord,
    MemoryType,
    SearchHit,
    SearchResults,
)
from cabinet.repositories.memory_store import MemoryRecordStore

router = APIRouter(prefix="/memory", tags=["memory"])


def get_memory_store(request: Request) -> MemoryRecordStore:
    """Dependency to get MemoryRecordStore from app state."""
    return request.app.state.memory_store


def get_retriever(request: Request) -> ContextRetriever:
    """Dependency to get ContextRetriever from app state."""
    return request.app.state.retriever


def get_memory_search(
    store: MemoryRecordStore = Depends(get_memory_store),
) -> MemorySearch:
    return MemorySearch(store)


@router.get("/search", response_model=SearchResults)
async def search_records(
    q: str = Query(..., min_length=1, description="Search query"),
    record_type: list[MemoryType] | None = Query(
        default=None, alias="type", description="Restrict to these record types"
    ),
    limit: int = Query(default=10, ge=1, le=100, description="Maximum results"),
    min_score: float = Query(default=0.1, ge=0.0, description="Score cutoff"),
    search: MemorySearch = Depends(get_memory_search),
) -> SearchResults:
    """Keyword search across durable records.

    Supports ``type:decision`` style filters inside the query text.
    """
    return await search.search(q, types=record_type, limit=limit, min_score=min_score)


@router.get("/records/{record_type}", response_model=list[MemoryRecord])
async def list_records(
    record_type: MemoryType,
    store: MemoryRecordStore = Depends(get_memory_store),
) -> list[MemoryRecord]:
    """List durable records of one type, newest first."""
    return await store.list(record_type)


@router.get("/record/{record_id}", response_model=MemoryRecord)
async def get_record(
    record_id: str,
    store: MemoryRecordStore = Depends(get_memory_store),
) -> MemoryRecord:
    record = await store.get(record_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Record not found")
    return record


@router.get("/record/{record_id}/related", response_model=list[SearchHit])
async def related_records(
    record_id: str,
    limit: int = Query(default=5, ge=1, le=50),
    search: MemorySearch = Depends(get_memory_search),
) -> list[SearchHit]:
    """Records sharing keywords with the given record."""
    hits = await search.related(record_id, limit=limit)
    if hits is None:
        raise HTTPException(status_code=404, detail="Record not found")
    return hits


@router.post("/context", response_model=ContextPackage)
async def build_context(
    query: MemoryQuery,
    retriever: ContextRetriever = Depends(get_retriever),
) -> ContextPackage:
    """Build and persist a context package for a prospective meeting."""
    return await retriever.build_package(query)
