"""Message bus transports.

Provides:
- MessageBus: Protocol implemented by every transport
- InMemoryMessageBus: In-process bus (development and tests)
- KafkaMessageBus: aiokafka-backed transport
"""

from src.bus.base import (
    BusMessage,
    DeliveryReceipt,
    MessageBus,
    MessageHandler,
    PublishError,
)
from src.bus.kafka import KafkaMessageBus
from src.bus.memory import InMemoryMessageBus

__all__ = [
    "BusMessage",
    "DeliveryReceipt",
    "InMemoryMessageBus",
    "KafkaMessageBus",
    "MessageBus",
    "MessageHandler",
    "PublishError",
]
