"""Durable outbox table on Turso/libSQL.

The outbox holds domain events written alongside business state. Rows
are appended inside the caller's transaction, read oldest-first by the
relay, flagged processed one at a time, and purged by a retention sweep.
"""

import logging
from datetime import UTC, datetime, timedelta

from src.db.turso import SqlExecutor, TursoClient
from src.outbox.schemas import OutboxEvent

logger = logging.getLogger(__name__)


class OutboxStore:
    """Repository for the ``outbox`` table.

    Features:
    - Append inside an existing transaction
    - Oldest-first batch reads of unprocessed rows
    - Single-row processed flag updates
    - Retention purge of processed rows
    """

    def __init__(self, client: TursoClient):
        """Initialize outbox store.

        Args:
            client: Database client for persistence
        """
        self.client = client

    async def init_schema(self) -> None:
        """Create the outbox table if it doesn't exist."""
        await self.client.execute("""
            CREATE TABLE IF NOT EXISTS outbox (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                aggregate_type TEXT,
                aggregate_id TEXT NOT NULL,
                event_type TEXT NOT NULL,
                payload TEXT NOT NULL,
                created_at TEXT NOT NULL,
                processed INTEGER NOT NULL DEFAULT 0
            )
        """)
        await self.client.execute("""
            CREATE INDEX IF NOT EXISTS idx_outbox_pending
            ON outbox(processed, created_at)
        """)
        logger.info("Outbox schema initialized")

    async def append(self, event: OutboxEvent, executor: SqlExecutor) -> OutboxEvent:
        """Insert an outbox row.

        Args:
            event: The event to store (id is ignored)
            executor: Transaction (or client) the insert runs on

        Returns:
            The event with its store-assigned id
        """
        result = await executor.execute(
            """INSERT INTO outbox
               (aggregate_type, aggregate_id, event_type, payload,
                created_at, processed)
               VALUES (?, ?, ?, ?, ?, ?)""",
            [
                event.aggregate_type,
                event.aggregate_id,
                event.event_type,
                event.payload,
                event.created_at.isoformat(timespec="microseconds"),
                1 if event.processed else 0,
            ],
        )
        stored = event.model_copy(update={"id": result.last_insert_rowid})
        logger.debug(
            f"Stored outbox event {stored.aggregate_type}/{stored.event_type} "
            f"({stored.id})"
        )
        return stored

    async def fetch_unprocessed(self, limit: int = 100) -> list[OutboxEvent]:
        """Read pending rows, oldest first.

        Args:
            limit: Maximum rows to return

        Returns:
            Unprocessed events ordered by creation time ascending
        """
        result = await self.client.execute(
            """SELECT id, aggregate_type, aggregate_id, event_type, payload,
                      created_at, processed
               FROM outbox
               WHERE processed = 0
               ORDER BY created_at ASC, id ASC
               LIMIT ?""",
            [limit],
        )
        return [
            OutboxEvent(
                id=row[0],
                aggregate_type=row[1],
                aggregate_id=row[2],
                event_type=row[3],
                payload=row[4],
                created_at=datetime.fromisoformat(row[5]),
                processed=bool(row[6]),
            )
            for row in result.rows
        ]

    async def mark_processed(self, event_id: int) -> bool:
        """Flag one row as relayed.

        Returns:
            True if a row was updated
        """
        result = await self.client.execute(
            "UPDATE outbox SET processed = 1 WHERE id = ?",
            [event_id],
        )
        return result.rows_affected > 0

    async def count_unprocessed(self) -> int:
        """Count rows still waiting for the relay."""
        result = await self.client.execute(
            "SELECT COUNT(*) FROM outbox WHERE processed = 0"
        )
        return result.rows[0][0]

    async def purge_processed(self, older_than: timedelta) -> int:
        """Delete processed rows created before the retention cutoff.

        Unprocessed rows are never deleted, whatever their age.

        Args:
            older_than: Retention window

        Returns:
            Number of rows deleted
        """
        cutoff = datetime.now(UTC) - older_than
        result = await self.client.execute(
            "DELETE FROM outbox WHERE processed = 1 AND created_at < ?",
            [cutoff.isoformat(timespec="microseconds")],
        )
        if result.rows_affected:
            logger.info(f"Purged {result.rows_affected} processed outbox rows")
        return result.rows_affected
