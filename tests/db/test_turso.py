"""Tests for TursoClient transactions."""

import pytest

from src.db.turso import TursoClient


@pytest.fixture
async def table(db: TursoClient) -> TursoClient:
    await db.execute("CREATE TABLE items (id TEXT PRIMARY KEY, name TEXT)")
    return db


class TestTransaction:
    """Tests for the transaction() context manager."""

    async def test_commits_on_success(self, table: TursoClient):
        """Statements are visible after the block exits."""
        async with table.transaction() as tx:
            await tx.execute("INSERT INTO items (id, name) VALUES (?, ?)", ["1", "a"])
            await tx.execute("INSERT INTO items (id, name) VALUES (?, ?)", ["2", "b"])

        result = await table.execute("SELECT COUNT(*) FROM items")
        assert result.rows[0][0] == 2

    async def test_rolls_back_on_error(self, table: TursoClient):
        """An exception undoes every statement and propagates."""
        with pytest.raises(ValueError):
            async with table.transaction() as tx:
                await tx.execute("INSERT INTO items (id, name) VALUES (?, ?)", ["1", "a"])
                raise ValueError("abort")

        result = await table.execute("SELECT COUNT(*) FROM items")
        assert result.rows[0][0] == 0

    async def test_reads_inside_transaction(self, table: TursoClient):
        """Uncommitted writes are readable within the transaction."""
        async with table.transaction() as tx:
            await tx.execute("INSERT INTO items (id, name) VALUES (?, ?)", ["1", "a"])
            result = await tx.execute("SELECT name FROM items WHERE id = ?", ["1"])
            assert result.rows[0][0] == "a"

    async def test_is_healthy(self, db: TursoClient):
        """A connected client reports healthy."""
        assert await db.is_healthy() is True
