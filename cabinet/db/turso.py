"""libSQL connection used by the meeting and memory repositories.

Local ``file:`` URLs back development and tests; ``libsql://`` URLs with an
auth token reach a hosted Turso database.
"""

import logging
from typing import Any

from libsql_client import Client, ResultSet, create_client

from cabinet.config import settings
from cabinet.errors import RecordStoreError

logger = logging.getLogger(__name__)

DEFAULT_DATABASE_URL = "file:cabinet.db"


class TursoClient:
    """Async libSQL connection shared by the repositories.

    Usable as an async context manager:

        async with TursoClient("file:/tmp/cabinet.db") as db:
            await db.execute("SELECT 1")
    """

    def __init__(
        self,
        url: str | None = None,
        auth_token: str | None = None,
    ):
        """Initialize client.

        Args:
            url: Database URL. Falls back to settings, then a local file.
            auth_token: Token for hosted databases. Falls back to settings.
        """
        self.url = url or settings.turso_database_url or DEFAULT_DATABASE_URL
        self.auth_token = auth_token or settings.turso_auth_token
        self._client: Client | None = None

    @property
    def connected(self) -> bool:
        return self._client is not None

    async def connect(self) -> None:
        """Open the connection. Calling it twice is a no-op."""
        if self._client is not None:
            return

        kwargs: dict[str, Any] = {"url": self.url}
        if self.auth_token and self.url.startswith("libsql://"):
            kwargs["auth_token"] = self.auth_token
        self._client = create_client(**kwargs)
        logger.info(f"Opened cabinet database at {self.url}")

    async def close(self) -> None:
        if self._client is None:
            return
        await self._client.close()
        self._client = None
        logger.info(f"Closed cabinet database at {self.url}")

    async def __aenter__(self) -> "TursoClient":
        await self.connect()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def execute(self, sql: str, params: list[Any] | None = None) -> ResultSet:
        """Run one statement with ``?`` placeholders.

        Raises:
            RecordStoreError: If the client is not connected
        """
        return await self._require().execute(sql, params or [])

    async def scalar(self, sql: str, params: list[Any] | None = None) -> Any:
        """Run a query and return the first column of its first row, or None."""
        result = await self.execute(sql, params)
        if not result.rows:
            return None
        return result.rows[0][0]

    async def apply_schema(self, statements: list[str]) -> None:
        """Run DDL statements in one batch. Statements must be idempotent."""
        await self._require().batch(statements)
        logger.debug(f"Applied {len(statements)} schema statement(s)")

    async def ping(self) -> bool:
        """Return True when the database answers a trivial query."""
        if self._client is None:
            return False
        try:
            return await self.scalar("SELECT 1") == 1
        except Exception as e:
            logger.warning(f"Database ping failed for {self.url}: {e}")
            return False

    def _require(self) -> Client:
        if self._client is None:
            raise RecordStoreError(f"Database {self.url} is not connected")
        return self._client
