"""In-process message bus.

Partitioned, offset-tracking stand-in for Kafka. Used when no brokers
are configured and in tests. Records are dispatched to subscribers on a
single background task, in send order, and the consumer offset for a
partition advances only after every handler for the record returned.
"""

import asyncio
import zlib
from collections import defaultdict, deque

import structlog

from src.bus.base import BusMessage, DeliveryReceipt, MessageHandler, PublishError

logger = structlog.get_logger()


class InMemoryMessageBus:
    """Simple async pub/sub bus with Kafka-like topic/partition/offset semantics.

    Features:
    - Stable key -> partition hashing
    - Per-partition offsets and committed read positions
    - Error isolation (one handler failure doesn't affect others)
    - ``drain()`` to wait until everything sent so far was consumed
    - Bounded retention: each partition log keeps only its newest
      ``retention`` records, offsets keep counting past evicted ones
    """

    def __init__(self, partitions: int = 1, retention: int = 1000):
        """Initialize bus.

        Args:
            partitions: Partitions per topic
            retention: Records kept per partition log
        """
        if partitions < 1:
            msg = "partitions must be >= 1"
            raise ValueError(msg)
        if retention < 1:
            msg = "retention must be >= 1"
            raise ValueError(msg)
        self._partitions = partitions
        self._retention = retention
        self._logs: dict[tuple[str, int], deque[BusMessage]] = defaultdict(
            lambda: deque(maxlen=retention)
        )
        self._next_offset: dict[tuple[str, int], int] = defaultdict(int)
        self._committed: dict[tuple[str, int], int] = {}
        self._subscribers: dict[str, list[MessageHandler]] = defaultdict(list)
        self._queue: asyncio.Queue[BusMessage] | None = None
        self._dispatcher: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._dispatcher is not None and not self._dispatcher.done()

    async def start(self) -> None:
        """Start the dispatch task."""
        if self.running:
            return
        queue: asyncio.Queue[BusMessage] = asyncio.Queue()
        self._queue = queue
        self._dispatcher = asyncio.create_task(
            self._dispatch_loop(queue), name="in-memory-bus-dispatch"
        )
        logger.info(
            "in-memory message bus started",
            partitions=self._partitions,
            retention=self._retention,
        )

    async def stop(self) -> None:
        """Deliver what is queued, then stop dispatching."""
        dispatcher = self._dispatcher
        if dispatcher is None or dispatcher.done():
            return
        await self.drain()
        dispatcher.cancel()
        try:
            await dispatcher
        except asyncio.CancelledError:
            pass
        self._dispatcher = None
        logger.info("in-memory message bus stopped")

    async def send(
        self, topic: str, key: str | None, value: str
    ) -> "asyncio.Future[DeliveryReceipt]":
        """Append a record to the topic log and queue it for dispatch."""
        future: asyncio.Future[DeliveryReceipt] = (
            asyncio.get_running_loop().create_future()
        )
        if not self.running or self._queue is None:
            future.set_exception(PublishError(topic, key, "bus is not running"))
            return future

        partition = self.partition_for(key)
        offset = self._next_offset[(topic, partition)]
        self._next_offset[(topic, partition)] = offset + 1
        message = BusMessage(
            topic=topic,
            key=key,
            value=value,
            partition=partition,
            offset=offset,
        )
        self._logs[(topic, partition)].append(message)
        self._queue.put_nowait(message)
        future.set_result(
            DeliveryReceipt(topic=topic, partition=partition, offset=message.offset)
        )
        return future

    def subscribe(self, topic: str, handler: MessageHandler) -> None:
        """Register a handler for a topic."""
        self._subscribers[topic].append(handler)
        logger.debug("subscribed handler", topic=topic)

    async def drain(self) -> None:
        """Wait until every record sent so far has been dispatched."""
        if self._queue is not None:
            await self._queue.join()

    async def is_healthy(self) -> bool:
        return self.running

    def partition_for(self, key: str | None) -> int:
        """Map a key to a partition (keyless records go to partition 0)."""
        if key is None:
            return 0
        return zlib.crc32(key.encode("utf-8")) % self._partitions

    def messages(self, topic: str) -> list[BusMessage]:
        """Return the retained records of a topic, across partitions."""
        records = [
            message
            for (log_topic, _), log in self._logs.items()
            if log_topic == topic
            for message in log
        ]
        return sorted(records, key=lambda m: (m.partition, m.offset))

    def committed_offset(self, topic: str, partition: int = 0) -> int:
        """Next offset the consumer group will read for a partition."""
        return self._committed.get((topic, partition), 0)

    async def _dispatch_loop(self, queue: "asyncio.Queue[BusMessage]") -> None:
        while True:
            message = await queue.get()
            try:
                for handler in list(self._subscribers.get(message.topic, [])):
                    try:
                        await handler(message)
                    except Exception as e:
                        logger.error(
                            "message handler error",
                            topic=message.topic,
                            offset=message.offset,
                            error=str(e),
                        )
                self._committed[(message.topic, message.partition)] = (
                    message.offset + 1
                )
            finally:
                queue.task_done()
