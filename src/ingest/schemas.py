"""Upstream domain aggregates recorded by the ingest services."""

import uuid
from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

MEETING_AGGREGATE = "Meeting"
MESSAGE_AGGREGATE = "Message"


class IngestModel(BaseModel):
    """camelCase on the wire and in outbox payloads."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )


class Meeting(IngestModel):
    """A meeting on a chat or video platform."""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    platform: str = Field(min_length=1, description="DISCORD, ZOOM, ...")
    meeting_id: str = Field(min_length=1, description="Platform meeting id")
    title: str | None = None
    channel_id: str | None = None
    start_time: datetime = Field(default_factory=lambda: datetime.now(UTC))
    end_time: datetime | None = None
    participants: list[str] = Field(default_factory=list)


class ChatMessage(IngestModel):
    """A text message posted in a channel."""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    platform: str = Field(min_length=1)
    author: str = Field(min_length=1)
    content: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    meeting_id: str | None = None
    channel_id: str | None = None
    channel_name: str | None = None
