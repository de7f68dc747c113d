"""Message bus contract shared by the Kafka and in-process transports.

Topics are string names. ``send`` enqueues a record and hands back a
future for the broker acknowledgment; consumers receive one
``BusMessage`` per call and the bus commits read progress only after
the handler returns.
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field


class PublishError(Exception):
    """Raised (through the delivery future) when a send is not acknowledged."""

    def __init__(self, topic: str, key: str | None, reason: str):
        self.topic = topic
        self.key = key
        self.reason = reason
        super().__init__(f"Publish to {topic} (key={key}) failed: {reason}")


class DeliveryReceipt(BaseModel):
    """Broker acknowledgment for one published record."""

    model_config = ConfigDict(frozen=True)

    topic: str
    partition: int = Field(ge=0)
    offset: int = Field(ge=0)


class BusMessage(BaseModel):
    """A consumed record as seen by subscription handlers."""

    model_config = ConfigDict(frozen=True)

    topic: str
    key: str | None = None
    value: str
    partition: int = 0
    offset: int = 0


MessageHandler = Callable[[BusMessage], Awaitable[None]]


@runtime_checkable
class MessageBus(Protocol):
    """Pub/sub transport used by the relay and result consumers."""

    async def start(self) -> None:
        """Connect producers and begin consuming subscribed topics."""
        ...

    async def stop(self) -> None:
        """Stop consumers and flush/close the producer."""
        ...

    async def send(
        self, topic: str, key: str | None, value: str
    ) -> "asyncio.Future[DeliveryReceipt]":
        """Enqueue a record; the returned future resolves on acknowledgment.

        The future fails with PublishError if the broker rejects the send.
        """
        ...

    def subscribe(self, topic: str, handler: MessageHandler) -> None:
        """Register a handler for a topic (before start)."""
        ...

    async def is_healthy(self) -> bool:
        """Check whether the transport is usable."""
        ...
