"""Tests for ingest endpoints."""

from httpx import AsyncClient

from src.main import app
from src.streams.routing import MEETING_TOPIC, TEXT_MESSAGE_TOPIC


class TestIngestMessages:
    """Tests for POST /api/v1/ingest/messages."""

    async def test_records_and_queues_message(self, client: AsyncClient):
        """The message is stored and relayed to the text-message topic."""
        response = await client.post(
            "/api/v1/ingest/messages",
            json={"platform": "DISCORD", "author": "alice", "content": "hi", "channelId": "c1"},
        )
        assert response.status_code == 201
        assert response.json()["data"]["channelId"] == "c1"

        report = await app.state.relay.poll_once()
        assert report.published == 1
        (record,) = app.state.bus.messages(TEXT_MESSAGE_TOPIC)
        assert record.key == "c1"

    async def test_relayed_message_reaches_window(self, client: AsyncClient):
        """Relayed chat messages are picked up by the window aggregator."""
        await client.post(
            "/api/v1/ingest/messages",
            json={"platform": "DISCORD", "author": "alice", "content": "hi", "channelId": "c1"},
        )
        await app.state.relay.poll_once()
        await app.state.bus.drain()
        assert app.state.aggregator.open_windows == 1

    async def test_invalid_body(self, client: AsyncClient):
        """Missing required fields are rejected."""
        response = await client.post("/api/v1/ingest/messages", json={"content": "hi"})
        assert response.status_code == 422


class TestIngestMeetings:
    """Tests for meeting start/end endpoints."""

    async def test_start_and_end(self, client: AsyncClient):
        """Start and end queue Started and Ended events."""
        started = await client.post(
            "/api/v1/ingest/meetings",
            json={"platform": "ZOOM", "meetingId": "z-1"},
        )
        assert started.status_code == 201
        meeting_id = started.json()["data"]["id"]

        ended = await client.post(f"/api/v1/ingest/meetings/{meeting_id}/end")
        assert ended.status_code == 200
        assert ended.json()["data"]["endTime"] is not None

        await app.state.relay.poll_once()
        records = app.state.bus.messages(MEETING_TOPIC)
        assert len(records) == 2
        assert {r.key for r in records} == {"z-1"}

    async def test_end_unknown_is_404(self, client: AsyncClient):
        """Ending an unknown meeting is not found."""
        response = await client.post("/api/v1/ingest/meetings/missing/end")
        assert response.status_code == 404
