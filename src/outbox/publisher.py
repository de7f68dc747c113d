"""Transactional outbox publisher.

Business operations call this inside their own database transaction so
the event row commits (or rolls back) together with the state change.
"""

from datetime import UTC, datetime
from typing import Any

import structlog
from pydantic import TypeAdapter
from pydantic_core import PydanticSerializationError

from src.db.turso import SqlExecutor
from src.outbox.schemas import OutboxEvent, OutboxEventType
from src.outbox.store import OutboxStore

logger = structlog.get_logger()

_payload_adapter: TypeAdapter[Any] = TypeAdapter(Any)


class SerializationError(Exception):
    """Raised when an aggregate cannot be encoded as an outbox payload."""


class OutboxPublisher:
    """Append-only writer for outbox events.

    Serializes the aggregate to camelCase JSON and inserts one unprocessed
    row. No network calls happen here; the relay ships rows later.
    """

    def __init__(self, store: OutboxStore):
        """Initialize publisher.

        Args:
            store: Outbox store the rows are written to
        """
        self._store = store

    async def publish(
        self,
        aggregate: Any,
        aggregate_id: str,
        aggregate_type: str,
        event_type: str,
        *,
        tx: SqlExecutor,
    ) -> OutboxEvent:
        """Enqueue an event for an aggregate.

        Args:
            aggregate: Domain object to serialize (model, dataclass, dict)
            aggregate_id: Identifier of the aggregate
            aggregate_type: Entity kind used for topic routing
            event_type: Event type tag
            tx: The caller's open transaction

        Returns:
            The stored event

        Raises:
            SerializationError: If the aggregate can't be encoded. Raised
                before anything is written so the caller's transaction
                rolls back cleanly.
        """
        try:
            payload = _payload_adapter.dump_json(aggregate, by_alias=True).decode()
        except (PydanticSerializationError, TypeError, ValueError) as e:
            logger.error(
                "outbox serialization failed",
                aggregate_type=aggregate_type,
                aggregate_id=aggregate_id,
                event_type=event_type,
                error=str(e),
            )
            msg = (
                f"Outbox event serialization failed: type={aggregate_type}, "
                f"id={aggregate_id}, event={event_type}"
            )
            raise SerializationError(msg) from e

        event = OutboxEvent(
            aggregate_type=aggregate_type,
            aggregate_id=aggregate_id,
            event_type=event_type,
            payload=payload,
            created_at=datetime.now(UTC),
            processed=False,
        )
        stored = await self._store.append(event, tx)
        logger.debug(
            "outbox event published",
            aggregate_type=aggregate_type,
            aggregate_id=aggregate_id,
            event_type=event_type,
        )
        return stored

    async def publish_created(
        self, aggregate: Any, aggregate_id: str, aggregate_type: str, *, tx: SqlExecutor
    ) -> OutboxEvent:
        """Shortcut for a Created event."""
        return await self.publish(
            aggregate, aggregate_id, aggregate_type, OutboxEventType.CREATED.value, tx=tx
        )

    async def publish_updated(
        self, aggregate: Any, aggregate_id: str, aggregate_type: str, *, tx: SqlExecutor
    ) -> OutboxEvent:
        """Shortcut for an Updated event."""
        return await self.publish(
            aggregate, aggregate_id, aggregate_type, OutboxEventType.UPDATED.value, tx=tx
        )

    async def publish_started(
        self, aggregate: Any, aggregate_id: str, aggregate_type: str, *, tx: SqlExecutor
    ) -> OutboxEvent:
        """Shortcut for a Started event (meetings, voice sessions)."""
        return await self.publish(
            aggregate, aggregate_id, aggregate_type, OutboxEventType.STARTED.value, tx=tx
        )

    async def publish_ended(
        self, aggregate: Any, aggregate_id: str, aggregate_type: str, *, tx: SqlExecutor
    ) -> OutboxEvent:
        """Shortcut for an Ended event (meetings, voice sessions)."""
        return await self.publish(
            aggregate, aggregate_id, aggregate_type, OutboxEventType.ENDED.value, tx=tx
        )
