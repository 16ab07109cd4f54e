"""Tests for ContextRetriever."""

from datetime import UTC, datetime, timedelta

import pytest

from cabinet.memory.retriever import ContextRetriever, summarize_record
from cabinet.models.memory import MemoryQuery, MemoryRecord, MemoryType
from cabinet.repositories.memory_store import MemoryRecordStore

NOW = datetime(2026, 6, 1, tzinfo=UTC)
SCAN_TYPES = [
    MemoryType.DECISION,
    MemoryType.CONTROVERSY,
    MemoryType.LEARNING,
    MemoryType.MEETING_SUMMARY,
]


async def add(
    store: MemoryRecordStore,
    type: MemoryType,
    id: str,
    topic: str,
    content: str,
    age_days: int = 1,
    roles: list[str] | None = None,
) -> None:
    await store.write(
        type,
        id,
        {
            "topic": topic,
            "created_at": (NOW - timedelta(days=age_days)).isoformat(),
            "participants": roles or [],
        },
        content,
    )


def query(**kwargs) -> MemoryQuery:
    kwargs.setdefault("topic", "transit")
    kwargs.setdefault("types", SCAN_TYPES)
    return MemoryQuery(**kwargs)


class TestRetrieve:
    async def test_relevance_cutoff(self, memory_store) -> None:
        await add(memory_store, MemoryType.DECISION, "d1", "Transit fares", "Cap fares.")
        await add(memory_store, MemoryType.DECISION, "d2", "Harbor dredging", "Dredge.")

        result = await ContextRetriever(memory_store).retrieve(query(), now=NOW)

        assert [item.source for item in result.items] == ["d1"]
        assert all(item.relevance >= 0.6 for item in result.items)

    async def test_cap_skips_oversized_record_and_continues(self, memory_store) -> None:
        await add(memory_store, MemoryType.DECISION, "d-new", "Transit", "a" * 160, 1)
        await add(memory_store, MemoryType.DECISION, "d-old", "Transit", "b" * 160, 2)
        await add(memory_store, MemoryType.LEARNING, "l1", "Transit", "c" * 8)
        retriever = ContextRetriever(memory_store, max_tokens=50)

        result = await retriever.retrieve(query(), now=NOW)

        # 40 + 40 would exceed 50, so d-old is skipped but l1 (2 tokens) fits
        assert sorted(item.source for item in result.items) == ["d-new", "l1"]
        assert result.total_tokens == 42

    async def test_earlier_types_win_when_cap_binds(self, memory_store) -> None:
        await add(memory_store, MemoryType.MEETING_SUMMARY, "s1", "Transit", "s" * 160)
        await add(memory_store, MemoryType.DECISION, "d1", "Transit", "d" * 160)
        retriever = ContextRetriever(memory_store, max_tokens=50)

        result = await retriever.retrieve(query(), now=NOW)

        assert [item.source for item in result.items] == ["d1"]

    async def test_results_sorted_by_relevance(self, memory_store) -> None:
        await add(memory_store, MemoryType.DECISION, "d1", "Transit", "Decision body")
        await add(
            memory_store,
            MemoryType.LEARNING,
            "l1",
            "Transit",
            "Learning body",
            roles=["FINANCE"],
        )

        result = await ContextRetriever(memory_store).retrieve(
            query(roles=["FINANCE"]), now=NOW
        )

        assert [item.source for item in result.items] == ["l1", "d1"]
        assert result.items[0].relevance > result.items[1].relevance

    async def test_limit_stops_the_scan(self, memory_store) -> None:
        for i in range(3):
            await add(memory_store, MemoryType.DECISION, f"d{i}", "Transit", "Body")

        result = await ContextRetriever(memory_store).retrieve(
            query(limit=2), now=NOW
        )

        assert len(result.items) == 2

    async def test_context_packages_are_never_retrieved(self, memory_store) -> None:
        await add(memory_store, MemoryType.CONTEXT_PACKAGE, "ctx-1", "Transit", "Old")
        await add(memory_store, MemoryType.SESSION, "session-1", "Transit", "Log")

        result = await ContextRetriever(memory_store).retrieve(query(), now=NOW)

        assert result.items == []

    async def test_lower_cutoff_never_returns_fewer_items(self, memory_store) -> None:
        await add(memory_store, MemoryType.DECISION, "d1", "Transit", "Body", 1)
        await add(memory_store, MemoryType.DECISION, "d2", "Transit", "Body", 300)
        await add(memory_store, MemoryType.CONTROVERSY, "c1", "Ports", "Body", 1)
        retriever = ContextRetriever(memory_store)

        counts = []
        for cutoff in (0.9, 0.65, 0.6, 0.3, 0.0):
            result = await retriever.retrieve(query(min_relevance=cutoff), now=NOW)
            counts.append(len(result.items))

        assert counts == sorted(counts)
        assert counts[-1] == 3


class TestBuildPackage:
    async def test_empty_package_is_explicit(self, memory_store) -> None:
        package = await ContextRetriever(memory_store).build_package(query(), now=NOW)

        assert package.id.startswith("ctx-20260601000000-")
        assert package.item_count == 0
        assert package.tokens == 0
        assert "No relevant history." in package.content
        assert await memory_store.count(MemoryType.CONTEXT_PACKAGE) == 1

    async def test_package_groups_items_and_is_persisted(self, memory_store) -> None:
        await add(memory_store, MemoryType.DECISION, "d1", "Transit", "Fund buses.")
        await add(memory_store, MemoryType.LEARNING, "l1", "Transit", "Trim prompts.")

        package = await ContextRetriever(memory_store).build_package(query(), now=NOW)

        assert package.item_count == 2
        assert package.content.index("## Previous decisions") < package.content.index(
            "## Lessons learned"
        )
        assert "Source: d1" in package.content
        stored = await memory_store.get(package.id)
        assert stored.type == MemoryType.CONTEXT_PACKAGE
        assert sorted(stored.metadata["sources"]) == ["d1", "l1"]
        assert stored.content == package.content


class TestSummarizeRecord:
    def test_heading_joins_first_paragraph(self) -> None:
        rec = MemoryRecord(
            id="x", type=MemoryType.DECISION, content="# Decision: Fund\n\nBuses first."
        )
        assert summarize_record(rec) == "Decision: Fund: Buses first."

    def test_long_text_is_cut(self) -> None:
        rec = MemoryRecord(id="x", type=MemoryType.DECISION, content="w" * 500)
        assert summarize_record(rec) == "w" * 200 + "..."

    def test_empty_body_uses_topic(self) -> None:
        rec = MemoryRecord(id="x", type=MemoryType.DECISION, topic="Ports")
        assert summarize_record(rec) == "Ports"
