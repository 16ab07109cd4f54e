"""Keyword search over durable memory records.

Scoring is lexical. Each query term found anywhere in a record earns 1 point,
and half a point more when it also appears in the record's topic or
metadata. The total is divided by the number of query terms, so a record
matching every term in both places scores 1.5.

Queries accept ``type:<memory type>`` filters alongside free text:

    >>> parse_search_query("type:decision transit fares")
    ParsedSearch(terms=['transit', 'fares'], types=[<MemoryType.DECISION: 'decision'>])
"""

import json
import re

import structlog
from pydantic import BaseModel, Field

from cabinet.models.memory import (
    MemoryRecord,
    MemoryType,
    SearchHit,
    SearchResults,
)
from cabinet.repositories.memory_store import MemoryRecordStore

logger = structlog.get_logger()

# Context packages are derived from other records and stay out of search
SEARCHABLE_TYPES = (
    MemoryType.SESSION,
    MemoryType.DECISION,
    MemoryType.LEARNING,
    MemoryType.MEETING_SUMMARY,
    MemoryType.CONTROVERSY,
)
CONTENT_MATCH = 1.0
HEADER_MATCH = 0.5
SNIPPET_RADIUS = 60
RELATED_KEYWORD_MIN_LENGTH = 5
RELATED_KEYWORD_COUNT = 10

_FILTER = re.compile(r"(\w+):(\S+)")


class ParsedSearch(BaseModel):
    terms: list[str] = Field(default_factory=list)
    types: list[MemoryType] = Field(default_factory=list)


def parse_search_query(query: str) -> ParsedSearch:
    """Split a raw query into lower-cased terms and ``type:`` filters.

    Unknown filter keys and unknown types are ignored. Duplicate terms are
    kept once.
    """
    types: list[MemoryType] = []
    for key, value in _FILTER.findall(query):
        if key.lower() != "type":
            continue
        try:
            memory_type = MemoryType(value.lower())
        except ValueError:
            continue
        if memory_type not in types:
            types.append(memory_type)

    terms: list[str] = []
    for term in _FILTER.sub(" ", query).lower().split():
        if term not in terms:
            terms.append(term)
    return ParsedSearch(terms=terms, types=types)


class MemorySearch:
    """Rank stored records against free-text queries."""

    def __init__(self, store: MemoryRecordStore):
        self._store = store

    async def search(
        self,
        query: str,
        types: list[MemoryType] | None = None,
        limit: int = 10,
        min_score: float = 0.1,
    ) -> SearchResults:
        """Search records of the given types.

        Args:
            query: Free text, optionally with ``type:`` filters
            types: Types to search. ``type:`` filters in the query narrow this
                further. Defaults to every searchable type.
            limit: Maximum hits returned
            min_score: Hits scoring below this are dropped

        Returns:
            SearchResults with hits sorted by score, newest first on ties
        """
        parsed = parse_search_query(query)
        searched = list(types or SEARCHABLE_TYPES)
        if parsed.types:
            searched = [t for t in searched if t in parsed.types]

        hits: list[SearchHit] = []
        if parsed.terms:
            for memory_type in searched:
                for record in await self._store.list(memory_type):
                    score = self.score(record, parsed.terms)
                    if score > 0 and score >= min_score:
                        hits.append(
                            SearchHit(
                                record=record,
                                score=score,
                                snippet=snippet(record.content, parsed.terms),
                            )
                        )

        hits.sort(key=lambda h: (h.score, h.record.created_at), reverse=True)
        logger.debug(
            "memory search",
            terms=parsed.terms,
            types=[t.value for t in searched],
            matched=len(hits),
        )
        return SearchResults(
            query=query,
            terms=parsed.terms,
            types=searched,
            total_results=len(hits),
            hits=hits[:limit],
        )

    def score(self, record: MemoryRecord, terms: list[str]) -> float:
        if not terms:
            return 0.0
        header = f"{record.topic}\n{json.dumps(record.metadata, default=str)}".lower()
        text = f"{header}\n{record.content.lower()}"
        total = 0.0
        for term in terms:
            if term in text:
                total += CONTENT_MATCH
            if term in header:
                total += HEADER_MATCH
        return round(total / len(terms), 6)

    async def related(self, record_id: str, limit: int = 5) -> list[SearchHit] | None:
        """Records sharing the longer words of ``record_id``'s content.

        Returns:
            Hits excluding the record itself, or None if the record is unknown
        """
        record = await self._store.get(record_id)
        if record is None:
            return None

        keywords: list[str] = []
        for word in re.findall(r"\w+", record.content.lower()):
            if len(word) >= RELATED_KEYWORD_MIN_LENGTH and word not in keywords:
                keywords.append(word)
            if len(keywords) == RELATED_KEYWORD_COUNT:
                break
        if not keywords:
            return []

        results = await self.search(" ".join(keywords), limit=limit + 1)
        return [h for h in results.hits if h.record.id != record_id][:limit]


def snippet(content: str, terms: list[str]) -> str:
    """Excerpt of ``content`` around the earliest matching term."""
    lowered = content.lower()
    positions = [p for p in (lowered.find(t) for t in terms) if p >= 0]
    if not positions:
        return content[: SNIPPET_RADIUS * 2].strip()
    start = max(0, min(positions) - SNIPPET_RADIUS)
    end = min(len(content), min(positions) + SNIPPET_RADIUS)
    excerpt = content[start:end].strip()
    if start > 0:
        excerpt = f"...{excerpt}"
    if end < len(content):
        excerpt = f"{excerpt}..."
    return excerpt
