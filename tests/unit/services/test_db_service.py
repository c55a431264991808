"""Tests for the Postgres pool wrapper, over a mocked pool."""

from unittest.mock import AsyncMock, MagicMock

import psycopg
import pytest
from tenacity import wait_none

from src.core.services.db_service import SCHEMA_STATEMENTS, DatabaseService


@pytest.fixture
def db_service(monkeypatch):
    monkeypatch.setattr(DatabaseService._ping.retry, "wait", wait_none())
    service = DatabaseService()
    conn = MagicMock()
    conn.execute = AsyncMock()
    cursor = MagicMock()
    cursor.execute = AsyncMock()
    conn.cursor.return_value.__aenter__.return_value = cursor
    service.pool = MagicMock()
    service.pool.connection.return_value.__aenter__.return_value = conn
    return service, conn, cursor


@pytest.mark.asyncio
async def test_health_ok(db_service):
    service, _, cursor = db_service
    assert await service.check_health() is True
    cursor.execute.assert_awaited_once_with("SELECT 1")


@pytest.mark.asyncio
async def test_health_retries_then_reports_down(db_service):
    service, _, cursor = db_service
    cursor.execute.side_effect = psycopg.OperationalError("connection refused")
    assert await service.check_health() is False
    assert cursor.execute.await_count == 3


@pytest.mark.asyncio
async def test_init_schema_uses_dimension(db_service):
    service, conn, _ = db_service
    await service.init_schema(384)

    statements = [c.args[0] for c in conn.execute.await_args_list]
    assert len(statements) == len(SCHEMA_STATEMENTS)
    assert statements[0] == "CREATE EXTENSION IF NOT EXISTS vector"
    assert any("vector(384)" in s for s in statements)
    assert any("'{}'::jsonb" in s for s in statements)
