"""Relevance-ranked, token-capped retrieval of prior meeting memory."""

from datetime import UTC, datetime
from uuid import uuid4

import structlog

from cabinet.memory.renderer import MemoryRenderer
from cabinet.memory.scoring import HeuristicRelevanceScorer, RelevanceScorer
from cabinet.models.memory import (
    RETRIEVAL_SCAN_ORDER,
    ContextItem,
    ContextPackage,
    MemoryQuery,
    MemoryRecord,
    MemoryType,
    RetrievalResult,
)
from cabinet.orchestrator.budget import estimate_tokens
from cabinet.repositories.memory_store import RecordStore

logger = structlog.get_logger()

MAX_CONTEXT_TOKENS = 3000
SUMMARY_CHARS = 200

TYPE_LABELS = {
    MemoryType.DECISION: "Previous decisions",
    MemoryType.CONTROVERSY: "Open disagreements",
    MemoryType.LEARNING: "Lessons learned",
    MemoryType.MEETING_SUMMARY: "Meeting summaries",
}


class ContextRetriever:
    """Assemble a context package from durable records.

    Records are scanned type by type in RETRIEVAL_SCAN_ORDER. A record
    that clears the relevance cutoff is accepted while the running token
    total stays within the cap; one that would overflow it is skipped
    and the scan continues. The scan order is therefore a priority
    signal: when the cap binds, earlier types win.
    """

    def __init__(
        self,
        store: RecordStore,
        scorer: RelevanceScorer | None = None,
        renderer: MemoryRenderer | None = None,
        max_tokens: int = MAX_CONTEXT_TOKENS,
    ):
        """Initialize retriever.

        Args:
            store: Durable-record store to scan
            scorer: Relevance scorer. Defaults to the lexical heuristic.
            renderer: Markdown renderer for the digest
            max_tokens: Token cap of a package
        """
        self._store = store
        self._scorer = scorer or HeuristicRelevanceScorer()
        self._renderer = renderer or MemoryRenderer()
        self.max_tokens = max_tokens

    async def retrieve(
        self,
        query: MemoryQuery,
        now: datetime | None = None,
    ) -> RetrievalResult:
        """Score records and accept them first-come under the token cap.

        Args:
            query: Topic, roles, types, relevance cutoff and optional limit
            now: Reference time for recency decay. Defaults to current time.

        Returns:
            RetrievalResult with items ordered by relevance
        """
        now = now or datetime.now(UTC)
        items: list[ContextItem] = []
        total_tokens = 0

        for record_type in RETRIEVAL_SCAN_ORDER:
            if query.limit is not None and len(items) >= query.limit:
                break
            for record in await self._store.list(record_type):
                if query.limit is not None and len(items) >= query.limit:
                    break
                relevance = self._scorer.score(query, record, now)
                if relevance < query.min_relevance:
                    continue
                tokens = estimate_tokens(record.content)
                if total_tokens + tokens > self.max_tokens:
                    logger.debug(
                        "context record over token cap",
                        record_id=record.id,
                        tokens=tokens,
                        total_tokens=total_tokens,
                    )
                    continue
                items.append(self._to_item(record, relevance, tokens))
                total_tokens += tokens

        items.sort(key=lambda item: item.relevance, reverse=True)
        return RetrievalResult(items=items, total_tokens=total_tokens)

    async def build_package(
        self,
        query: MemoryQuery,
        now: datetime | None = None,
    ) -> ContextPackage:
        """Retrieve, render a digest and persist it as a context_package record.

        An empty retrieval still yields a digest carrying an explicit
        "No relevant history." marker.
        """
        result = await self.retrieve(query, now=now)
        content = self.format_package(result.items)
        created = now or datetime.now(UTC)
        package_id = f"ctx-{created:%Y%m%d%H%M%S}-{uuid4().hex[:6]}"

        await self._store.write(
            MemoryType.CONTEXT_PACKAGE,
            package_id,
            {
                "topic": query.topic or "",
                "created_at": created.isoformat(),
                "target_roles": query.roles or [],
                "item_count": len(result.items),
                "total_tokens": result.total_tokens,
                "sources": [item.source for item in result.items],
            },
            content,
        )
        logger.info(
            "built context package",
            package_id=package_id,
            topic=query.topic,
            item_count=len(result.items),
            total_tokens=result.total_tokens,
        )
        return ContextPackage(
            id=package_id,
            content=content,
            tokens=result.total_tokens,
            item_count=len(result.items),
            items=result.items,
        )

    def format_package(self, items: list[ContextItem]) -> str:
        """Render items as a Markdown digest grouped by record type."""
        groups: list[tuple[str, list[dict]]] = []
        for record_type in RETRIEVAL_SCAN_ORDER:
            typed = [item for item in items if item.type == record_type]
            if not typed:
                continue
            groups.append(
                (
                    TYPE_LABELS[record_type],
                    [
                        {
                            "summary": item.summary,
                            "relevance": item.relevance,
                            "source": item.source,
                            "date": item.metadata.get("date", "unknown"),
                        }
                        for item in typed
                    ],
                )
            )
        return self._renderer.render("context_package", groups=groups)

    def _to_item(
        self,
        record: MemoryRecord,
        relevance: float,
        tokens: int,
    ) -> ContextItem:
        return ContextItem(
            type=record.type,
            source=record.id,
            relevance=relevance,
            summary=summarize_record(record),
            tokens=tokens,
            metadata={
                "topic": record.topic,
                "date": record.created_at.date().isoformat(),
                **{
                    k: v
                    for k, v in record.metadata.items()
                    if k in ("impact", "category", "resolution_status", "importance")
                },
            },
        )


def summarize_record(record: MemoryRecord) -> str:
    """First paragraph of the record body, cut to SUMMARY_CHARS."""
    paragraphs = [p.strip() for p in record.content.split("\n\n") if p.strip()]
    # Skip a bare heading when a body paragraph follows it
    if len(paragraphs) > 1 and paragraphs[0].startswith("#"):
        first = f"{paragraphs[0].lstrip('# ').strip()}: {paragraphs[1]}"
    elif paragraphs:
        first = paragraphs[0].lstrip("# ").strip()
    else:
        first = record.topic
    first = " ".join(first.split())
    if len(first) > SUMMARY_CHARS:
        return first[:SUMMARY_CHARS] + "..."
    return first
