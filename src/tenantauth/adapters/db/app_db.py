"""Application database adapter using asyncpg."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import asyncpg
import structlog

from tenantauth.core.exceptions import InfrastructureError

logger = structlog.get_logger()

_UNAVAILABLE = (
    OSError,
    TimeoutError,
    asyncpg.PostgresConnectionError,
    asyncpg.InterfaceError,
    asyncpg.QueryCanceledError,
)


class AppDatabase:
    """Application database for identities, organizations and subscriptions."""

    def __init__(self, dsn: str, command_timeout: float = 30.0):
        """Initialize the app database adapter."""
        self.dsn = dsn
        self.command_timeout = command_timeout
        self.pool: asyncpg.Pool[asyncpg.Record] | None = None

    async def connect(self) -> None:
        """Create connection pool."""
        try:
            self.pool = await asyncpg.create_pool(
                self.dsn,
                min_size=2,
                max_size=10,
                command_timeout=self.command_timeout,
            )
        except _UNAVAILABLE as e:
            logger.error("app_database_connect_failed", error=str(e))
            raise InfrastructureError(f"database connect failed: {e}") from e
        logger.info("app_database_connected", dsn=self.dsn.split("@")[-1])

    async def close(self) -> None:
        """Close connection pool."""
        if self.pool:
            await self.pool.close()
            logger.info("app_database_disconnected")

    @asynccontextmanager
    async def acquire(self) -> AsyncIterator[asyncpg.Connection[asyncpg.Record]]:
        """Acquire a connection from the pool.

        Connection loss and timeouts surface as InfrastructureError.
        """
        if self.pool is None:
            raise RuntimeError("Database pool not initialized")
        try:
            async with self.pool.acquire() as conn:
                yield conn
        except _UNAVAILABLE as e:
            logger.error("app_database_unavailable", error=str(e))
            raise InfrastructureError(f"database unavailable: {e}") from e

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[asyncpg.Connection[asyncpg.Record]]:
        """Acquire a connection inside a transaction.

        All statements run on the yielded connection commit together, or
        roll back together if the block raises.
        """
        async with self.acquire() as conn, conn.transaction():
            yield conn

    async def fetch_one(self, query: str, *args: Any) -> dict[str, Any] | None:
        """Fetch a single row."""
        async with self.acquire() as conn:
            row = await conn.fetchrow(query, *args)
            if row:
                return dict(row)
            return None

    async def fetch_all(self, query: str, *args: Any) -> list[dict[str, Any]]:
        """Fetch all rows."""
        async with self.acquire() as conn:
            rows = await conn.fetch(query, *args)
            return [dict(row) for row in rows]

    async def execute(self, query: str, *args: Any) -> str:
        """Execute a query and return status."""
        async with self.acquire() as conn:
            result: str = await conn.execute(query, *args)
            return result
