"""Tests for the libSQL client wrapper."""

from pathlib import Path

import pytest

from cabinet.db.turso import DEFAULT_DATABASE_URL, TursoClient
from cabinet.errors import RecordStoreError


def test_defaults_to_local_file(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("cabinet.db.turso.settings.turso_database_url", None)
    assert TursoClient().url == DEFAULT_DATABASE_URL


async def test_context_manager_connects_and_closes(tmp_path: Path) -> None:
    async with TursoClient(url=f"file:{tmp_path / 'ctx.db'}") as db:
        assert db.connected
        assert await db.scalar("SELECT 40 + 2") == 42
    assert not db.connected


async def test_execute_before_connect_raises(tmp_path: Path) -> None:
    db = TursoClient(url=f"file:{tmp_path / 'idle.db'}")
    with pytest.raises(RecordStoreError):
        await db.execute("SELECT 1")


async def test_scalar_of_empty_result_is_none(db_client: TursoClient) -> None:
    await db_client.apply_schema(["CREATE TABLE IF NOT EXISTS t (x INTEGER)"])
    assert await db_client.scalar("SELECT x FROM t") is None


async def test_apply_schema_is_repeatable(db_client: TursoClient) -> None:
    schema = ["CREATE TABLE IF NOT EXISTS t (x INTEGER)"]
    await db_client.apply_schema(schema)
    await db_client.apply_schema(schema)
    await db_client.execute("INSERT INTO t (x) VALUES (?)", [7])
    assert await db_client.scalar("SELECT COUNT(*) FROM t") == 1


async def test_ping(db_client: TursoClient) -> None:
    assert await db_client.ping()
    await db_client.close()
    assert not await db_client.ping()
