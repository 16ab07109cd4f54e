"""Durable record store backed by libSQL.

Records are append-only: a record id can be written once and is never
updated or deleted afterwards.
"""

import json
import logging
from typing import Any, Protocol, runtime_checkable

from cabinet.db.turso import TursoClient
from cabinet.errors import RecordStoreError
from cabinet.models.base import coerce_datetime, utc_now
from cabinet.models.memory import MemoryRecord, MemoryType

logger = logging.getLogger(__name__)


@runtime_checkable
class RecordStore(Protocol):
    """Durable-record store consumed by the memory subsystem."""

    async def write(
        self,
        type: MemoryType,
        id: str,
        metadata: dict[str, Any],
        content: str,
    ) -> MemoryRecord:
        """Persist one record. Raises RecordStoreError on failure."""
        ...

    async def list(self, type: MemoryType) -> list[MemoryRecord]:
        """Return all records of ``type``, newest first."""
        ...


class MemoryRecordStore:
    """libSQL implementation of the durable-record store."""

    def __init__(self, db_client: TursoClient):
        """Initialize store with database client.

        Args:
            db_client: TursoClient instance for database operations
        """
        self._db = db_client

    async def initialize(self) -> None:
        """Create records table if not exists."""
        await self._db.apply_schema(
            [
                """
            CREATE TABLE IF NOT EXISTS memory_records (
                id TEXT PRIMARY KEY,
                type TEXT NOT NULL,
                topic TEXT NOT NULL DEFAULT '',
                created_at TEXT NOT NULL,
                metadata TEXT NOT NULL DEFAULT '{}',
                content TEXT NOT NULL DEFAULT ''
            )
            """,
                """
            CREATE INDEX IF NOT EXISTS idx_memory_type_created
            ON memory_records(type, created_at)
            """,
            ]
        )

    async def write(
        self,
        type: MemoryType,
        id: str,
        metadata: dict[str, Any],
        content: str,
    ) -> MemoryRecord:
        """Persist a record.

        Args:
            type: Record type
            id: Stable record identifier
            metadata: JSON-serializable metadata; ``topic`` and ``created_at``
                are lifted into their own columns when present
            content: Markdown body

        Returns:
            The stored MemoryRecord

        Raises:
            RecordStoreError: If the id already exists or the write fails
        """
        created_at = coerce_datetime(metadata.get("created_at")) or utc_now()
        record = MemoryRecord(
            id=id,
            type=type,
            topic=str(metadata.get("topic") or ""),
            created_at=created_at,
            metadata=metadata,
            content=content,
        )

        if await self.get(id) is not None:
            raise RecordStoreError(f"Record already exists: {id}")

        try:
            await self._db.execute(
                """
                INSERT INTO memory_records
                    (id, type, topic, created_at, metadata, content)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                [
                    record.id,
                    record.type.value,
                    record.topic,
                    record.created_at.isoformat(),
                    json.dumps(record.metadata, default=str),
                    record.content,
                ],
            )
        except Exception as e:
            raise RecordStoreError(f"Failed to write record {id}: {e}") from e

        logger.info(f"Stored {type.value} record {id}")
        return record

    async def list(self, type: MemoryType) -> list[MemoryRecord]:
        """List records of one type, newest first."""
        result = await self._db.execute(
            """
            SELECT id, type, topic, created_at, metadata, content
            FROM memory_records
            WHERE type = ?
            ORDER BY created_at DESC, id DESC
            """,
            [type.value],
        )
        return [_row_to_record(row) for row in result.rows]

    async def get(self, id: str) -> MemoryRecord | None:
        result = await self._db.execute(
            """
            SELECT id, type, topic, created_at, metadata, content
            FROM memory_records
            WHERE id = ?
            """,
            [id],
        )
        if not result.rows:
            return None
        return _row_to_record(result.rows[0])

    async def count(self, type: MemoryType | None = None) -> int:
        if type is None:
            total = await self._db.scalar("SELECT COUNT(*) FROM memory_records")
        else:
            total = await self._db.scalar(
                "SELECT COUNT(*) FROM memory_records WHERE type = ?", [type.value]
            )
        return total or 0


def _row_to_record(row) -> MemoryRecord:
    return MemoryRecord(
        id=row[0],
        type=MemoryType(row[1]),
        topic=row[2] or "",
        created_at=coerce_datetime(row[3]) or utc_now(),
        metadata=json.loads(row[4]) if row[4] else {},
        content=row[5] or "",
    )
