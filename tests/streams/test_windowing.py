"""Tests for MessageWindowAggregator."""

import json
from datetime import UTC, datetime, timedelta

import pytest

from src.bus.base import BusMessage
from src.bus.memory import InMemoryMessageBus
from src.streams.routing import TEXT_MESSAGE_TOPIC
from src.streams.windowing import MessageWindowAggregator

OUTPUT = "processed-messages"


def _chat(content: str, channel: str = "c1", author: str = "alice", ts: str | None = None) -> BusMessage:
    payload = {"author": author, "content": content, "channelId": channel}
    if ts:
        payload["timestamp"] = ts
    return BusMessage(topic=TEXT_MESSAGE_TOPIC, key=channel, value=json.dumps(payload))


@pytest.fixture
def aggregator(bus: InMemoryMessageBus) -> MessageWindowAggregator:
    return MessageWindowAggregator(bus, OUTPUT, window=timedelta(minutes=5))


class TestWindowStart:
    """Tests for window alignment."""

    def test_aligned_to_window_size(self, aggregator: MessageWindowAggregator):
        """Timestamps snap to the start of their 5-minute window."""
        ts = datetime(2026, 1, 1, 10, 7, 30, tzinfo=UTC)
        assert aggregator.window_start(ts) == datetime(2026, 1, 1, 10, 5, tzinfo=UTC)

    def test_naive_timestamps_are_utc(self, aggregator: MessageWindowAggregator):
        """Naive timestamps are treated as UTC."""
        ts = datetime(2026, 1, 1, 10, 4, 59)
        assert aggregator.window_start(ts) == datetime(2026, 1, 1, 10, 0, tzinfo=UTC)

    def test_rejects_non_positive_window(self, bus: InMemoryMessageBus):
        """A zero window is invalid."""
        with pytest.raises(ValueError):
            MessageWindowAggregator(bus, OUTPUT, window=timedelta(0))


class TestAggregation:
    """Tests for grouping and flushing."""

    async def test_groups_lines_per_channel_window(
        self, aggregator: MessageWindowAggregator, bus: InMemoryMessageBus
    ):
        """Messages in one window are joined in arrival order."""
        await aggregator.on_message(_chat("hi", ts="2026-01-01T10:00:10Z"))
        await aggregator.on_message(_chat("there", author="bob", ts="2026-01-01T10:03:00Z"))

        published = await aggregator.flush(now=datetime(2026, 1, 1, 10, 5, tzinfo=UTC))

        assert published == 1
        (record,) = bus.messages(OUTPUT)
        assert record.key == "c1"
        data = json.loads(record.value)
        assert data["sourceType"] == "DISCORD_MESSAGES"
        assert data["channelId"] == "c1"
        assert data["rawContent"] == "alice: hi\nbob: there\n"
        assert data["windowStart"].startswith("2026-01-01T10:00:00")
        assert data["windowEnd"].startswith("2026-01-01T10:05:00")

    async def test_open_windows_are_kept(self, aggregator: MessageWindowAggregator):
        """Windows that have not ended are not flushed."""
        await aggregator.on_message(_chat("hi", ts="2026-01-01T10:04:00Z"))
        published = await aggregator.flush(now=datetime(2026, 1, 1, 10, 4, 30, tzinfo=UTC))
        assert published == 0
        assert aggregator.open_windows == 1

    async def test_channels_are_separate(
        self, aggregator: MessageWindowAggregator, bus: InMemoryMessageBus
    ):
        """Each channel gets its own window."""
        await aggregator.on_message(_chat("a", channel="c1", ts="2026-01-01T10:00:00Z"))
        await aggregator.on_message(_chat("b", channel="c2", ts="2026-01-01T10:00:00Z"))
        assert await aggregator.flush_all() == 2
        assert {m.key for m in bus.messages(OUTPUT)} == {"c1", "c2"}

    async def test_malformed_message_is_skipped(self, aggregator: MessageWindowAggregator):
        """Unparsable payloads are dropped."""
        await aggregator.on_message(
            BusMessage(topic=TEXT_MESSAGE_TOPIC, key="c1", value="not json")
        )
        assert aggregator.open_windows == 0

    async def test_failed_publish_keeps_window(self, aggregator: MessageWindowAggregator, bus):
        """A window that could not be published is retried on the next flush."""
        await aggregator.on_message(_chat("hi", ts="2026-01-01T10:00:00Z"))
        await bus.stop()

        assert await aggregator.flush_all() == 0
        assert aggregator.open_windows == 1

        await bus.start()
        assert await aggregator.flush_all() == 1
        assert aggregator.open_windows == 0
