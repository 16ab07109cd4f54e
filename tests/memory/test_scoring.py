"""Tests for the heuristic relevance scorer."""

from datetime import UTC, datetime, timedelta

import pytest

from cabinet.memory.scoring import HeuristicRelevanceScorer, RelevanceScorer
from cabinet.models.memory import MemoryQuery, MemoryRecord, MemoryType

NOW = datetime(2026, 6, 1, tzinfo=UTC)


def record(
    topic: str = "Transit subsidy",
    roles: list[str] | None = None,
    age_days: float = 0,
    type: MemoryType = MemoryType.DECISION,
) -> MemoryRecord:
    return MemoryRecord(
        id="r1",
        type=type,
        topic=topic,
        created_at=NOW - timedelta(days=age_days),
        metadata={"participants": roles or []},
        content="Body text",
    )


@pytest.fixture
def scorer() -> HeuristicRelevanceScorer:
    return HeuristicRelevanceScorer()


def test_satisfies_protocol(scorer) -> None:
    assert isinstance(scorer, RelevanceScorer)


def test_all_components_cap_at_one(scorer) -> None:
    query = MemoryQuery(
        topic="transit", roles=["FINANCE"], types=[MemoryType.DECISION]
    )
    assert scorer.score(query, record(roles=["FINANCE"]), NOW) == 1.0


def test_topic_type_and_fresh_recency(scorer) -> None:
    query = MemoryQuery(topic="subsidy", types=[MemoryType.DECISION])
    assert scorer.score(query, record(), NOW) == pytest.approx(0.7)


def test_topic_matches_content_too(scorer) -> None:
    query = MemoryQuery(topic="body text")
    assert scorer.topic_score(query, record(topic="Harbor")) == 1.0


def test_role_overlap_is_fractional(scorer) -> None:
    query = MemoryQuery(roles=["FINANCE", "WORKS"])
    assert scorer.role_score(query, record(roles=["finance"])) == 0.5


def test_recency_decays_linearly_over_a_year(scorer) -> None:
    assert scorer.recency_score(record(age_days=0), NOW) == 1.0
    assert scorer.recency_score(record(age_days=182.5), NOW) == pytest.approx(0.5)
    assert scorer.recency_score(record(age_days=400), NOW) == 0.0


def test_naive_timestamps_are_treated_as_utc(scorer) -> None:
    naive = record()
    naive.created_at = NOW.replace(tzinfo=None)
    assert scorer.recency_score(naive, NOW) == 1.0


def test_adding_a_matching_type_never_lowers_score(scorer) -> None:
    base = MemoryQuery(topic="transit")
    widened = MemoryQuery(topic="transit", types=[MemoryType.DECISION])
    assert scorer.score(widened, record(), NOW) >= scorer.score(base, record(), NOW)
