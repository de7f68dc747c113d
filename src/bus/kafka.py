"""Kafka transport built on aiokafka.

One producer (acks=all) shared by every sender, one consumer per
subscribed topic in the configured group. Offsets are committed
explicitly after the handlers for a record return, so a crash before
the commit redelivers the record (at-least-once).
"""

import asyncio
import logging
from collections import defaultdict
from collections.abc import Awaitable, Callable
from typing import TypeVar

import structlog
from aiokafka import AIOKafkaConsumer, AIOKafkaProducer, TopicPartition
from aiokafka.errors import KafkaConnectionError, KafkaError
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from src.bus.base import BusMessage, DeliveryReceipt, MessageHandler, PublishError

logger = structlog.get_logger()
_retry_logger = logging.getLogger(__name__)

ClientT = TypeVar("ClientT", AIOKafkaProducer, AIOKafkaConsumer)

CONNECT_ATTEMPTS = 5


def _decode(raw: bytes | None) -> str | None:
    if raw is None:
        return None
    return raw.decode("utf-8", errors="replace")


class KafkaMessageBus:
    """MessageBus implementation backed by a Kafka cluster."""

    def __init__(
        self,
        bootstrap_servers: str,
        group_id: str,
        client_id: str = "meeting-stream-relay",
    ):
        """Initialize the transport (no network I/O until start()).

        Args:
            bootstrap_servers: Comma-separated host:port list
            group_id: Consumer group for result subscriptions
            client_id: Client id reported to the brokers
        """
        self.bootstrap_servers = bootstrap_servers
        self.group_id = group_id
        self.client_id = client_id
        self._producer: AIOKafkaProducer | None = None
        self._consumers: list[AIOKafkaConsumer] = []
        self._tasks: list[asyncio.Task[None]] = []
        self._subscribers: dict[str, list[MessageHandler]] = defaultdict(list)

    def subscribe(self, topic: str, handler: MessageHandler) -> None:
        """Register a handler for a topic (before start)."""
        if self._consumers:
            msg = "subscribe() must be called before start()"
            raise RuntimeError(msg)
        self._subscribers[topic].append(handler)
        logger.debug("subscribed handler", topic=topic)

    async def start(self) -> None:
        """Connect the producer and one consumer per subscribed topic."""
        if self._producer is not None:
            return

        self._producer = await self._start_client(
            lambda: AIOKafkaProducer(
                bootstrap_servers=self.bootstrap_servers,
                client_id=self.client_id,
                acks="all",
            )
        )
        for topic, handlers in self._subscribers.items():
            consumer = await self._start_client(
                lambda topic=topic: AIOKafkaConsumer(
                    topic,
                    bootstrap_servers=self.bootstrap_servers,
                    group_id=self.group_id,
                    client_id=self.client_id,
                    enable_auto_commit=False,
                    auto_offset_reset="earliest",
                )
            )
            self._consumers.append(consumer)
            self._tasks.append(
                asyncio.create_task(
                    self._consume(consumer, handlers), name=f"kafka-consume-{topic}"
                )
            )
        logger.info(
            "kafka message bus started",
            servers=self.bootstrap_servers,
            topics=list(self._subscribers),
        )

    async def stop(self) -> None:
        """Cancel consumer loops and flush/close the producer."""
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()

        for consumer in self._consumers:
            await consumer.stop()
        self._consumers.clear()

        if self._producer is not None:
            await self._producer.stop()
            self._producer = None
        logger.info("kafka message bus stopped")

    async def send(
        self, topic: str, key: str | None, value: str
    ) -> "asyncio.Future[DeliveryReceipt]":
        """Enqueue a record on the producer.

        Returns:
            Future resolving to the DeliveryReceipt once the brokers
            acknowledge, or failing with PublishError.
        """
        if self._producer is None:
            future: asyncio.Future[DeliveryReceipt] = (
                asyncio.get_running_loop().create_future()
            )
            future.set_exception(PublishError(topic, key, "producer not started"))
            return future

        try:
            pending = await self._producer.send(
                topic,
                value=value.encode("utf-8"),
                key=key.encode("utf-8") if key is not None else None,
            )
        except KafkaError as e:
            future = asyncio.get_running_loop().create_future()
            future.set_exception(PublishError(topic, key, str(e)))
            return future

        return asyncio.ensure_future(self._await_receipt(pending, topic, key))

    async def is_healthy(self) -> bool:
        return self._producer is not None and all(not t.done() for t in self._tasks)

    async def _await_receipt(
        self, pending: Awaitable, topic: str, key: str | None
    ) -> DeliveryReceipt:
        try:
            metadata = await pending
        except KafkaError as e:
            raise PublishError(topic, key, str(e)) from e
        return DeliveryReceipt(
            topic=metadata.topic,
            partition=metadata.partition,
            offset=metadata.offset,
        )

    async def _start_client(self, factory: Callable[[], ClientT]) -> ClientT:
        """Create and start a client, retrying broker connection failures.

        Retries up to CONNECT_ATTEMPTS times with exponential backoff and
        builds a fresh client for every attempt.
        """

        @retry(
            stop=stop_after_attempt(CONNECT_ATTEMPTS),
            wait=wait_exponential(multiplier=1, min=1, max=30),
            retry=retry_if_exception_type(KafkaConnectionError),
            before_sleep=before_sleep_log(_retry_logger, log_level=20),  # INFO level
            reraise=True,
        )
        async def connect() -> ClientT:
            client = factory()
            try:
                await client.start()
            except KafkaConnectionError:
                await client.stop()
                raise
            return client

        return await connect()

    async def _consume(
        self, consumer: AIOKafkaConsumer, handlers: list[MessageHandler]
    ) -> None:
        try:
            async for record in consumer:
                message = BusMessage(
                    topic=record.topic,
                    key=_decode(record.key),
                    value=_decode(record.value) or "",
                    partition=record.partition,
                    offset=record.offset,
                )
                for handler in handlers:
                    try:
                        await handler(message)
                    except Exception as e:
                        logger.error(
                            "message handler error",
                            topic=record.topic,
                            partition=record.partition,
                            offset=record.offset,
                            error=str(e),
                        )
                await self._commit(consumer, record.topic, record.partition, record.offset)
        except KafkaError as e:
            logger.error("kafka consumer stopped", error=str(e))

    async def _commit(
        self, consumer: AIOKafkaConsumer, topic: str, partition: int, offset: int
    ) -> None:
        """Commit past one record.

        A failed commit (e.g. a rebalance in progress) is logged and the
        loop goes on; the record may be redelivered to this group later.
        """
        try:
            await consumer.commit({TopicPartition(topic, partition): offset + 1})
        except KafkaError as e:
            logger.warning(
                "offset commit failed",
                topic=topic,
                partition=partition,
                offset=offset,
                error=str(e),
            )
