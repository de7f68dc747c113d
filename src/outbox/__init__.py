"""Transactional outbox for reliable event delivery.

Provides:
- OutboxEvent: Pending domain event row
- OutboxStore: Durable outbox table
- OutboxPublisher: Transactional writer used by business operations
- OutboxRelay: Periodic batch publisher to the message bus
"""

from src.outbox.publisher import OutboxPublisher, SerializationError
from src.outbox.relay import OutboxRelay
from src.outbox.schemas import OutboxEvent, OutboxEventType, RelayReport, RelayStats
from src.outbox.store import OutboxStore

__all__ = [
    "OutboxEvent",
    "OutboxEventType",
    "OutboxPublisher",
    "OutboxRelay",
    "OutboxStore",
    "RelayReport",
    "RelayStats",
    "SerializationError",
]
