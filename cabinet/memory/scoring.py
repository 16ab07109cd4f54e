"""Relevance scoring for durable memory records.

The retriever depends only on the RelevanceScorer protocol so a different
scorer (for example an embedding-based one) can replace the heuristic one.
"""

from datetime import UTC, datetime
from typing import Protocol, runtime_checkable

from cabinet.models.memory import MemoryQuery, MemoryRecord

TOPIC_WEIGHT = 0.4
ROLE_WEIGHT = 0.3
TYPE_WEIGHT = 0.2
RECENCY_WEIGHT = 0.1
RECENCY_WINDOW_DAYS = 365


@runtime_checkable
class RelevanceScorer(Protocol):
    """Score how relevant a record is to a query, in [0, 1]."""

    def score(self, query: MemoryQuery, record: MemoryRecord, now: datetime) -> float:
        ...


class HeuristicRelevanceScorer:
    """Weighted lexical heuristic.

    Components:
    - topic substring match (0.4)
    - role overlap scaled by the fraction of query roles matched (0.3)
    - record type requested by the query (0.2)
    - linear recency decay over one year (0.1)
    """

    def score(self, query: MemoryQuery, record: MemoryRecord, now: datetime) -> float:
        score = 0.0
        score += TOPIC_WEIGHT * self.topic_score(query, record)
        score += ROLE_WEIGHT * self.role_score(query, record)
        if query.types and record.type in query.types:
            score += TYPE_WEIGHT
        score += RECENCY_WEIGHT * self.recency_score(record, now)
        return min(1.0, round(score, 6))

    def topic_score(self, query: MemoryQuery, record: MemoryRecord) -> float:
        if not query.topic:
            return 0.0
        needle = query.topic.strip().lower()
        if not needle:
            return 0.0
        haystack = f"{record.topic}\n{record.content}".lower()
        return 1.0 if needle in haystack else 0.0

    def role_score(self, query: MemoryQuery, record: MemoryRecord) -> float:
        if not query.roles:
            return 0.0
        record_roles = {r.upper() for r in record.roles}
        if not record_roles:
            return 0.0
        matched = [r for r in query.roles if r.upper() in record_roles]
        return len(matched) / len(query.roles)

    def recency_score(self, record: MemoryRecord, now: datetime) -> float:
        created = record.created_at
        if created.tzinfo is None:
            created = created.replace(tzinfo=UTC)
        days = (now - created).total_seconds() / 86400
        return max(0.0, min(1.0, 1 - days / RECENCY_WINDOW_DAYS))
