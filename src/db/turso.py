"""Turso/libSQL database client wrapper."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any, Protocol

from libsql_client import Client, ResultSet, create_client

from src.config import settings

if TYPE_CHECKING:
    from libsql_client import Transaction

logger = logging.getLogger(__name__)


class SqlExecutor(Protocol):
    """Anything that can run a parameterized statement.

    Both TursoClient and an open libSQL Transaction satisfy this, so
    repositories can write either standalone or inside a caller's
    transaction.
    """

    async def execute(self, sql: str, params: list[Any] | None = None) -> ResultSet:
        ...


class TursoClient:
    """Wrapper for Turso/libSQL async client.

    Supports both cloud Turso (with auth token) and local SQLite files.
    """

    def __init__(
        self,
        url: str | None = None,
        auth_token: str | None = None,
    ):
        """Initialize client with connection parameters.

        Args:
            url: Database URL. Defaults to settings or local file.
            auth_token: Auth token for Turso cloud. Defaults to settings.
        """
        self.url = url or settings.turso_database_url or "file:local.db"
        self.auth_token = auth_token or settings.turso_auth_token
        self._client: Client | None = None

    async def connect(self) -> None:
        """Establish database connection."""
        if self._client is not None:
            return

        if self.auth_token and self.url.startswith("libsql://"):
            # Cloud Turso
            self._client = create_client(
                url=self.url,
                auth_token=self.auth_token,
            )
        else:
            # Local file database
            self._client = create_client(url=self.url)

        logger.info(f"Connected to database: {self.url}")

    async def execute(
        self,
        sql: str,
        params: list[Any] | None = None,
    ) -> ResultSet:
        """Execute a SQL statement.

        Args:
            sql: SQL query with ? placeholders
            params: Query parameters

        Returns:
            ResultSet with rows and metadata
        """
        if not self._client:
            msg = "Not connected. Call connect() first."
            raise RuntimeError(msg)
        return await self._client.execute(sql, params or [])

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator["TransactionExecutor"]:
        """Run statements in one interactive transaction.

        Commits when the block exits normally and rolls back when it
        raises; the exception is re-raised to the caller.

        Usage:
            async with db.transaction() as tx:
                await tx.execute("INSERT ...", [...])
                await publisher.publish(..., tx=tx)
        """
        if not self._client:
            msg = "Not connected. Call connect() first."
            raise RuntimeError(msg)

        tx = self._client.transaction()
        try:
            yield TransactionExecutor(tx)
        except BaseException:
            await tx.rollback()
            raise
        else:
            await tx.commit()
        finally:
            tx.close()

    async def close(self) -> None:
        """Close the database connection."""
        if self._client:
            await self._client.close()
            self._client = None
            logger.info("Database connection closed")

    async def is_healthy(self) -> bool:
        """Check if database connection is healthy."""
        try:
            if not self._client:
                return False
            result = await self._client.execute("SELECT 1")
            return len(result.rows) == 1
        except Exception:
            return False


class TransactionExecutor:
    """Adapts a libSQL Transaction to the SqlExecutor call shape."""

    def __init__(self, tx: "Transaction"):
        self._tx = tx

    async def execute(
        self,
        sql: str,
        params: list[Any] | None = None,
    ) -> ResultSet:
        return await self._tx.execute(sql, params or [])
