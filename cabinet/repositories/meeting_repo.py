"""Repository for periodic meeting snapshots.

The orchestrator writes a full JSON snapshot of a meeting after each stage.
Snapshots are the only durability guarantee for in-flight meetings.
"""

import logging
from uuid import UUID

from cabinet.db.turso import TursoClient
from cabinet.models.meeting import Meeting, MeetingStatus

logger = logging.getLogger(__name__)


class MeetingRepository:
    """Persist and load meeting snapshots."""

    def __init__(self, db_client: TursoClient):
        """Initialize repository with database client.

        Args:
            db_client: TursoClient instance for database operations
        """
        self._db = db_client

    async def initialize(self) -> None:
        """Create snapshots table if not exists."""
        await self._db.apply_schema(
            [
                """
            CREATE TABLE IF NOT EXISTS meeting_snapshots (
                id TEXT PRIMARY KEY,
                topic TEXT NOT NULL,
                status TEXT NOT NULL,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                snapshot TEXT NOT NULL
            )
            """,
                """
            CREATE INDEX IF NOT EXISTS idx_meeting_status
            ON meeting_snapshots(status)
            """,
            ]
        )

    async def save(self, meeting: Meeting) -> None:
        """Insert or replace the snapshot of a meeting."""
        await self._db.execute(
            """
            INSERT INTO meeting_snapshots
                (id, topic, status, created_at, updated_at, snapshot)
            VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                status = excluded.status,
                updated_at = excluded.updated_at,
                snapshot = excluded.snapshot
            """,
            [
                str(meeting.id),
                meeting.topic,
                meeting.status.value,
                meeting.created_at.isoformat(),
                meeting.updated_at.isoformat(),
                meeting.model_dump_json(),
            ],
        )
        logger.debug(f"Saved snapshot of meeting {meeting.id} ({meeting.status.value})")

    async def get(self, meeting_id: UUID) -> Meeting | None:
        result = await self._db.execute(
            "SELECT snapshot FROM meeting_snapshots WHERE id = ?",
            [str(meeting_id)],
        )
        if not result.rows:
            return None
        return Meeting.model_validate_json(result.rows[0][0])

    async def list(
        self,
        status: MeetingStatus | None = None,
        limit: int = 50,
    ) -> list[Meeting]:
        """List meeting snapshots, most recently created first.

        Args:
            status: Optional status filter
            limit: Maximum number of meetings to return
        """
        sql = "SELECT snapshot FROM meeting_snapshots"
        params: list = []
        if status is not None:
            sql += " WHERE status = ?"
            params.append(status.value)
        sql += " ORDER BY created_at DESC LIMIT ?"
        params.append(limit)

        result = await self._db.execute(sql, params)
        return [Meeting.model_validate_json(row[0]) for row in result.rows]
