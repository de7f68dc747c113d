"""Tests for OutboxRelay."""

import asyncio
import json
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock

import pytest

from src.bus.base import DeliveryReceipt, PublishError
from src.bus.memory import InMemoryMessageBus
from src.db.turso import TursoClient
from src.outbox.relay import OutboxRelay
from src.outbox.schemas import OutboxEvent
from src.outbox.store import OutboxStore
from src.streams.routing import DEFAULT_TOPIC, MEETING_TOPIC, TEXT_MESSAGE_TOPIC


class FlakyBus:
    """Bus whose first ``failures`` sends are rejected by the broker."""

    def __init__(self, failures: int = 1):
        self.failures = failures
        self.sent: list[tuple[str, str | None, str]] = []

    async def send(self, topic: str, key: str | None, value: str):
        self.sent.append((topic, key, value))
        future = asyncio.get_running_loop().create_future()
        if self.failures > 0:
            self.failures -= 1
            future.set_exception(PublishError(topic, key, "broker unavailable"))
        else:
            future.set_result(DeliveryReceipt(topic=topic, partition=0, offset=len(self.sent)))
        return future


async def _append(
    store: OutboxStore,
    db: TursoClient,
    aggregate_type: str | None,
    payload: dict,
    created_at: datetime | None = None,
) -> OutboxEvent:
    return await store.append(
        OutboxEvent(
            aggregate_type=aggregate_type,
            aggregate_id=str(payload.get("id", "agg")),
            event_type="Created",
            payload=json.dumps(payload),
            created_at=created_at or datetime.now(UTC),
        ),
        db,
    )


class TestPollOnce:
    """Tests for a single relay cycle."""

    async def test_routes_message_by_channel_key(
        self, outbox_store: OutboxStore, db: TursoClient, bus: InMemoryMessageBus
    ):
        """A Message row goes to the text-message topic keyed by channelId."""
        await _append(outbox_store, db, "Message", {"id": "m1", "channelId": "c1"})
        relay = OutboxRelay(outbox_store, bus)

        report = await relay.poll_once()

        assert report.found == 1
        assert report.published == 1
        (record,) = bus.messages(TEXT_MESSAGE_TOPIC)
        assert record.key == "c1"
        assert json.loads(record.value)["channelId"] == "c1"

    async def test_repoll_finds_nothing(
        self, outbox_store: OutboxStore, db: TursoClient, bus: InMemoryMessageBus
    ):
        """Published rows are flagged and not sent again."""
        await _append(outbox_store, db, "Message", {"id": "m1", "channelId": "c1"})
        relay = OutboxRelay(outbox_store, bus)

        await relay.poll_once()
        second = await relay.poll_once()

        assert second.found == 0
        assert len(bus.messages(TEXT_MESSAGE_TOPIC)) == 1
        assert await outbox_store.count_unprocessed() == 0

    async def test_unknown_aggregate_goes_to_default_topic(
        self, outbox_store: OutboxStore, db: TursoClient, bus: InMemoryMessageBus
    ):
        """Unrecognized aggregate types are routed, not dropped."""
        await _append(outbox_store, db, "Invoice", {"id": "i1"})
        relay = OutboxRelay(outbox_store, bus)

        report = await relay.poll_once()

        assert report.published == 1
        (record,) = bus.messages(DEFAULT_TOPIC)
        assert record.key.startswith("Invoice-")

    async def test_meeting_key_falls_back_to_meeting_id(
        self, outbox_store: OutboxStore, db: TursoClient, bus: InMemoryMessageBus
    ):
        """Without channelId the meetingId becomes the key."""
        await _append(outbox_store, db, "Meeting", {"id": "x", "meetingId": "mt-9"})
        await OutboxRelay(outbox_store, bus).poll_once()
        (record,) = bus.messages(MEETING_TOPIC)
        assert record.key == "mt-9"

    async def test_sends_in_creation_order(
        self, outbox_store: OutboxStore, db: TursoClient, bus: InMemoryMessageBus
    ):
        """Rows of one cycle are sent oldest first."""
        base = datetime(2026, 1, 1, tzinfo=UTC)
        for i in (2, 0, 1):
            await _append(
                outbox_store,
                db,
                "Message",
                {"id": f"m{i}", "channelId": "c1"},
                created_at=base + timedelta(seconds=i),
            )
        await OutboxRelay(outbox_store, bus).poll_once()
        ids = [json.loads(m.value)["id"] for m in bus.messages(TEXT_MESSAGE_TOPIC)]
        assert ids == ["m0", "m1", "m2"]

    async def test_batch_size_limits_cycle(
        self, outbox_store: OutboxStore, db: TursoClient, bus: InMemoryMessageBus
    ):
        """A cycle handles at most batch_size rows."""
        for i in range(5):
            await _append(outbox_store, db, "Message", {"id": f"m{i}", "channelId": "c"})
        report = await OutboxRelay(outbox_store, bus, batch_size=2).poll_once()
        assert report.found == 2
        assert await outbox_store.count_unprocessed() == 3


class TestFailures:
    """Tests for failure handling."""

    async def test_failure_then_success(self, outbox_store: OutboxStore, db: TursoClient):
        """A failed send stays pending and is sent again on the next poll."""
        await _append(outbox_store, db, "Message", {"id": "m1", "channelId": "c1"})
        bus = FlakyBus(failures=1)
        relay = OutboxRelay(outbox_store, bus)

        first = await relay.poll_once()
        assert first.failed == 1
        assert first.published == 0
        assert await outbox_store.count_unprocessed() == 1

        second = await relay.poll_once()
        assert second.published == 1
        assert await outbox_store.count_unprocessed() == 0
        assert len(bus.sent) == 2
        assert relay.stats.failed == 1
        assert relay.stats.published == 1

    async def test_failure_does_not_block_other_rows(
        self, outbox_store: OutboxStore, db: TursoClient
    ):
        """Only the failed row stays pending."""
        await _append(outbox_store, db, "Message", {"id": "m1", "channelId": "c1"})
        await _append(outbox_store, db, "Message", {"id": "m2", "channelId": "c2"})
        relay = OutboxRelay(outbox_store, FlakyBus(failures=1))

        report = await relay.poll_once()

        assert report.published == 1
        assert report.failed == 1
        (pending,) = await outbox_store.fetch_unprocessed()
        assert pending.aggregate_id == "m1"

    async def test_send_raising_counts_as_failure(
        self, outbox_store: OutboxStore, db: TursoClient
    ):
        """A send that raises immediately is recorded, not propagated."""
        await _append(outbox_store, db, "Message", {"id": "m1", "channelId": "c1"})
        bus = AsyncMock()
        bus.send.side_effect = RuntimeError("producer closed")
        relay = OutboxRelay(outbox_store, bus)

        report = await relay.poll_once()

        assert report.failed == 1
        assert relay.stats.last_error == "producer closed"
        assert await outbox_store.count_unprocessed() == 1

    async def test_database_error_aborts_cycle(self, bus: InMemoryMessageBus):
        """A failing poll query aborts the cycle without raising."""
        store = AsyncMock(spec=OutboxStore)
        store.fetch_unprocessed.side_effect = ConnectionError("db down")
        relay = OutboxRelay(store, bus)

        report = await relay.poll_once()

        assert report.aborted is True
        assert relay.stats.aborted_cycles == 1
        assert relay.stats.last_error == "db down"

    async def test_mark_failure_leaves_row_for_redelivery(self, bus: InMemoryMessageBus):
        """If the flag update fails the row is counted failed and resent later."""
        event = OutboxEvent(
            id=1,
            aggregate_type="Message",
            aggregate_id="m1",
            event_type="Created",
            payload='{"channelId":"c1"}',
        )
        store = AsyncMock(spec=OutboxStore)
        store.fetch_unprocessed.return_value = [event]
        store.mark_processed.side_effect = ConnectionError("db down")
        relay = OutboxRelay(store, bus)

        report = await relay.poll_once()

        assert report.published == 0
        assert report.failed == 1
        assert len(bus.messages(TEXT_MESSAGE_TOPIC)) == 1

    async def test_event_without_id_counts_as_failed(self, bus: InMemoryMessageBus):
        """An unpersisted event is sent but never flagged."""
        event = OutboxEvent(
            aggregate_type="Message",
            aggregate_id="m1",
            event_type="Created",
            payload='{"channelId":"c1"}',
        )
        store = AsyncMock(spec=OutboxStore)
        store.fetch_unprocessed.return_value = [event]
        relay = OutboxRelay(store, bus)

        report = await relay.poll_once()

        assert report.published == 0
        assert report.failed == 1
        store.mark_processed.assert_not_awaited()
        assert relay.stats.last_error == "outbox event without id"


class TestAtLeastOnce:
    """Delivery through the bus to a consumer."""

    @pytest.mark.parametrize("count", [1, 7])
    async def test_every_event_reaches_consumer(
        self, outbox_store: OutboxStore, db: TursoClient, bus: InMemoryMessageBus, count: int
    ):
        """Each written event is observed by a subscriber."""
        seen: list[str] = []

        async def handler(message):
            seen.append(json.loads(message.value)["id"])

        bus.subscribe(TEXT_MESSAGE_TOPIC, handler)
        for i in range(count):
            await _append(outbox_store, db, "Message", {"id": f"m{i}", "channelId": "c"})

        await OutboxRelay(outbox_store, bus).poll_once()
        await bus.drain()

        assert sorted(seen) == sorted(f"m{i}" for i in range(count))
