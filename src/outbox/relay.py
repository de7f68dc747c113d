"""Outbox relay: ships pending outbox rows to the message bus.

Each poll reads up to ``batch_size`` unprocessed rows oldest-first,
sends them in that order, and flags a row processed only after the bus
acknowledged it. Failed rows stay pending and are picked up by the next
poll, so delivery is at-least-once.
"""

import asyncio
import time

import structlog

from src.bus.base import DeliveryReceipt, MessageBus
from src.outbox.schemas import OutboxEvent, RelayReport, RelayStats
from src.outbox.store import OutboxStore
from src.streams.routing import partition_key_for, topic_for

logger = structlog.get_logger()


class OutboxRelay:
    """Periodic batch publisher for the transactional outbox.

    Assumes a single active relay instance; rows are not claimed, so two
    relays polling the same table would both send them.
    """

    def __init__(
        self,
        store: OutboxStore,
        bus: MessageBus,
        batch_size: int = 100,
    ):
        """Initialize relay.

        Args:
            store: Outbox store to poll
            bus: Transport to publish to
            batch_size: Maximum rows per poll
        """
        self._store = store
        self._bus = bus
        self._batch_size = batch_size
        self.stats = RelayStats()

    async def poll_once(self) -> RelayReport:
        """Run one relay cycle.

        Database errors while reading abort the cycle without raising;
        the next scheduled poll starts over.

        Returns:
            Counts for this cycle
        """
        try:
            events = await self._store.fetch_unprocessed(self._batch_size)
        except Exception as e:
            logger.error("outbox poll failed", error=str(e))
            report = RelayReport(aborted=True)
            self.stats.last_error = str(e)
            self.stats.record(report)
            return report

        if not events:
            logger.debug("no pending outbox events")
            report = RelayReport()
            self.stats.record(report)
            return report

        logger.info("relaying outbox events", count=len(events))

        # Enqueue in creation order; acknowledgments may complete in any order
        in_flight: list[tuple[OutboxEvent, str, asyncio.Future[DeliveryReceipt]]] = []
        failed = 0
        for event in events:
            topic = topic_for(event.aggregate_type)
            key = partition_key_for(
                event.payload, event.aggregate_type, now_ms=int(time.time() * 1000)
            )
            try:
                ack = await self._bus.send(topic, key, event.payload)
            except Exception as e:
                failed += 1
                self._record_failure(event, topic, e)
                continue
            in_flight.append((event, topic, ack))

        results = await asyncio.gather(
            *(ack for _, _, ack in in_flight), return_exceptions=True
        )

        published = 0
        for (event, topic, _), result in zip(in_flight, results, strict=True):
            if isinstance(result, BaseException):
                failed += 1
                self._record_failure(event, topic, result)
                continue
            if await self._mark_processed(event):
                published += 1
                logger.debug(
                    "outbox event relayed",
                    event_id=event.id,
                    aggregate_type=event.aggregate_type,
                    aggregate_id=event.aggregate_id,
                    topic=topic,
                    partition=result.partition,
                    offset=result.offset,
                )
            else:
                failed += 1

        report = RelayReport(found=len(events), published=published, failed=failed)
        self.stats.record(report)
        logger.info(
            "outbox relay cycle finished",
            found=report.found,
            published=report.published,
            failed=report.failed,
        )
        return report

    async def _mark_processed(self, event: OutboxEvent) -> bool:
        """Flag a sent row; a failure here only means a later duplicate send."""
        if event.id is None:
            logger.error(
                "outbox event without id cannot be marked processed",
                aggregate_type=event.aggregate_type,
                aggregate_id=event.aggregate_id,
            )
            self.stats.last_error = "outbox event without id"
            return False
        try:
            await self._store.mark_processed(event.id)
        except Exception as e:
            logger.error(
                "failed to mark outbox event processed",
                event_id=event.id,
                error=str(e),
            )
            self.stats.last_error = str(e)
            return False
        return True

    def _record_failure(self, event: OutboxEvent, topic: str, error: BaseException) -> None:
        self.stats.last_error = str(error)
        logger.warning(
            "outbox publish failed, will retry next poll",
            event_id=event.id,
            aggregate_type=event.aggregate_type,
            topic=topic,
            error=str(error),
        )
