"""Business writes that emit outbox events in the same transaction."""

import json
import logging
from datetime import UTC, datetime

from src.db.turso import TursoClient
from src.ingest.schemas import (
    MEETING_AGGREGATE,
    MESSAGE_AGGREGATE,
    ChatMessage,
    Meeting,
)
from src.outbox.publisher import OutboxPublisher

logger = logging.getLogger(__name__)


class MeetingNotFoundError(Exception):
    """Raised when ending a meeting that was never started."""

    def __init__(self, meeting_id: str):
        self.meeting_id = meeting_id
        super().__init__(f"Meeting {meeting_id} not found")


class MeetingService:
    """Start and end meetings, publishing Started/Ended outbox events."""

    def __init__(self, db: TursoClient, publisher: OutboxPublisher):
        self.db = db
        self.publisher = publisher

    async def init_schema(self) -> None:
        await self.db.execute("""
            CREATE TABLE IF NOT EXISTS meetings (
                id TEXT PRIMARY KEY,
                platform TEXT NOT NULL,
                meeting_id TEXT NOT NULL,
                title TEXT,
                channel_id TEXT,
                start_time TEXT NOT NULL,
                end_time TEXT,
                participants TEXT NOT NULL DEFAULT '[]'
            )
        """)
        logger.info("Meetings schema initialized")

    async def start_meeting(self, meeting: Meeting) -> Meeting:
        """Store a new meeting and enqueue its Started event.

        Raises:
            SerializationError: If the event payload can't be encoded;
                the meeting row is rolled back too.
        """
        async with self.db.transaction() as tx:
            await tx.execute(
                """INSERT INTO meetings
                   (id, platform, meeting_id, title, channel_id,
                    start_time, end_time, participants)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
                [
                    meeting.id,
                    meeting.platform,
                    meeting.meeting_id,
                    meeting.title,
                    meeting.channel_id,
                    meeting.start_time.isoformat(),
                    meeting.end_time.isoformat() if meeting.end_time else None,
                    json.dumps(meeting.participants),
                ],
            )
            await self.publisher.publish_started(
                meeting, meeting.id, MEETING_AGGREGATE, tx=tx
            )
        logger.info(f"Meeting started: {meeting.id} ({meeting.platform})")
        return meeting

    async def end_meeting(self, meeting_id: str) -> Meeting:
        """Stamp a meeting's end time and enqueue its Ended event.

        Raises:
            MeetingNotFoundError: If no meeting has this id
        """
        async with self.db.transaction() as tx:
            result = await tx.execute(
                """SELECT id, platform, meeting_id, title, channel_id,
                          start_time, end_time, participants
                   FROM meetings WHERE id = ?""",
                [meeting_id],
            )
            if not result.rows:
                raise MeetingNotFoundError(meeting_id)

            row = result.rows[0]
            meeting = Meeting(
                id=row[0],
                platform=row[1],
                meeting_id=row[2],
                title=row[3],
                channel_id=row[4],
                start_time=datetime.fromisoformat(row[5]),
                end_time=datetime.now(UTC),
                participants=json.loads(row[7] or "[]"),
            )
            await tx.execute(
                "UPDATE meetings SET end_time = ? WHERE id = ?",
                [meeting.end_time.isoformat(), meeting.id],
            )
            await self.publisher.publish_ended(
                meeting, meeting.id, MEETING_AGGREGATE, tx=tx
            )
        logger.info(f"Meeting ended: {meeting.id}")
        return meeting


class MessageService:
    """Record chat messages, publishing a Created outbox event for each."""

    def __init__(self, db: TursoClient, publisher: OutboxPublisher):
        self.db = db
        self.publisher = publisher

    async def init_schema(self) -> None:
        await self.db.execute("""
            CREATE TABLE IF NOT EXISTS messages (
                id TEXT PRIMARY KEY,
                platform TEXT NOT NULL,
                author TEXT NOT NULL,
                content TEXT NOT NULL,
                timestamp TEXT NOT NULL,
                meeting_id TEXT,
                channel_id TEXT,
                channel_name TEXT
            )
        """)
        logger.info("Messages schema initialized")

    async def record_message(self, message: ChatMessage) -> ChatMessage:
        """Store a message and enqueue its Created event."""
        async with self.db.transaction() as tx:
            await tx.execute(
                """INSERT INTO messages
                   (id, platform, author, content, timestamp,
                    meeting_id, channel_id, channel_name)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
                [
                    message.id,
                    message.platform,
                    message.author,
                    message.content,
                    message.timestamp.isoformat(),
                    message.meeting_id,
                    message.channel_id,
                    message.channel_name,
                ],
            )
            await self.publisher.publish_created(
                message, message.id, MESSAGE_AGGREGATE, tx=tx
            )
        logger.debug(f"Message recorded: {message.id} in {message.channel_id}")
        return message
