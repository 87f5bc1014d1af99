"""Unit tests for AppDatabase."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from tenantauth.adapters.db.app_db import AppDatabase
from tenantauth.core.exceptions import InfrastructureError


class TestAppDatabase:
    """Tests for AppDatabase."""

    @pytest.fixture
    def db(self) -> AppDatabase:
        """Return an AppDatabase instance."""
        return AppDatabase(dsn="postgresql://user:pw@localhost/test")

    @pytest.fixture
    def mock_conn(self) -> AsyncMock:
        """Return a mock connection."""
        conn = AsyncMock()
        conn.transaction = MagicMock()
        return conn

    @pytest.fixture
    def db_with_pool(self, db: AppDatabase, mock_conn: AsyncMock) -> AppDatabase:
        """Return an AppDatabase instance with a mocked pool."""
        mock_pool = MagicMock()

        @asynccontextmanager
        async def mock_acquire() -> AsyncIterator[AsyncMock]:
            yield mock_conn

        mock_pool.acquire = mock_acquire
        mock_pool.close = AsyncMock()
        db.pool = mock_pool
        return db

    def test_init(self, db: AppDatabase) -> None:
        """Test database initialization."""
        assert db.dsn == "postgresql://user:pw@localhost/test"
        assert db.command_timeout == 30.0
        assert db.pool is None

    async def test_connect_creates_pool(self, db: AppDatabase) -> None:
        """Test that connect creates a connection pool."""
        mock_pool = MagicMock()

        with patch(
            "tenantauth.adapters.db.app_db.asyncpg.create_pool",
            new=AsyncMock(return_value=mock_pool),
        ) as create_pool:
            await db.connect()

        assert db.pool is mock_pool
        assert create_pool.await_args.kwargs["command_timeout"] == 30.0

    async def test_connect_failure(self, db: AppDatabase) -> None:
        """Test that an unreachable server is an infrastructure error."""
        with (
            patch(
                "tenantauth.adapters.db.app_db.asyncpg.create_pool",
                new=AsyncMock(side_effect=OSError("connection refused")),
            ),
            pytest.raises(InfrastructureError) as exc_info,
        ):
            await db.connect()

        assert exc_info.value.code == "SERVICE_UNAVAILABLE"
        assert "connection refused" in (exc_info.value.detail or "")

    async def test_close_closes_pool(self, db: AppDatabase) -> None:
        """Test that close closes the connection pool."""
        mock_pool = AsyncMock()
        db.pool = mock_pool

        await db.close()

        mock_pool.close.assert_called_once()

    async def test_close_noop_when_no_pool(self, db: AppDatabase) -> None:
        """Test that close is a no-op when pool doesn't exist."""
        await db.close()

    async def test_acquire_without_pool(self, db: AppDatabase) -> None:
        """Test that using the database before connect fails loudly."""
        with pytest.raises(RuntimeError):
            async with db.acquire():
                pass

    async def test_fetch_one(self, db_with_pool: AppDatabase, mock_conn: AsyncMock) -> None:
        """Test that fetch_one returns a dict."""
        mock_conn.fetchrow.return_value = {"id": 1}

        result = await db_with_pool.fetch_one("SELECT 1 WHERE id = $1", 1)

        assert result == {"id": 1}
        mock_conn.fetchrow.assert_called_once_with("SELECT 1 WHERE id = $1", 1)

    async def test_fetch_one_none(self, db_with_pool: AppDatabase, mock_conn: AsyncMock) -> None:
        """Test that fetch_one returns None when no row matches."""
        mock_conn.fetchrow.return_value = None

        assert await db_with_pool.fetch_one("SELECT 1") is None

    async def test_fetch_all(self, db_with_pool: AppDatabase, mock_conn: AsyncMock) -> None:
        """Test that fetch_all returns a list of dicts."""
        mock_conn.fetch.return_value = [{"id": 1}, {"id": 2}]

        assert await db_with_pool.fetch_all("SELECT id") == [{"id": 1}, {"id": 2}]

    async def test_execute(self, db_with_pool: AppDatabase, mock_conn: AsyncMock) -> None:
        """Test that execute returns the status string."""
        mock_conn.execute.return_value = "UPDATE 1"

        assert await db_with_pool.execute("UPDATE t SET x = 1") == "UPDATE 1"

    async def test_connection_loss_is_infrastructure_error(
        self, db_with_pool: AppDatabase, mock_conn: AsyncMock
    ) -> None:
        """Test that a dropped connection surfaces as an infrastructure error."""
        mock_conn.fetchrow.side_effect = TimeoutError()

        with pytest.raises(InfrastructureError):
            await db_with_pool.fetch_one("SELECT 1")

    async def test_transaction(self, db_with_pool: AppDatabase, mock_conn: AsyncMock) -> None:
        """Test that transaction yields a connection inside a transaction block."""
        async with db_with_pool.transaction() as conn:
            await conn.execute("INSERT INTO t VALUES (1)")

        mock_conn.transaction.assert_called_once()
        mock_conn.execute.assert_called_once_with("INSERT INTO t VALUES (1)")
