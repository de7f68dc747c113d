"""Envelopes for frames sent over the live push channel."""

import time
from enum import StrEnum
from typing import Any

from pydantic import BaseModel

from src.results.schemas import ProcessedResult, ResultKind


class MessageType(StrEnum):
    """Frame ``type`` discriminators, inbound and outbound."""

    # Inbound
    SUBSCRIBE_MEETING = "SUBSCRIBE_MEETING"
    UNSUBSCRIBE_MEETING = "UNSUBSCRIBE_MEETING"
    PING = "PING"
    # Outbound control
    CONNECTED = "CONNECTED"
    SUBSCRIBED = "SUBSCRIBED"
    UNSUBSCRIBED = "UNSUBSCRIBED"
    PONG = "PONG"
    ERROR = "ERROR"
    # Outbound notifications
    NEW_SUMMARY = "NEW_SUMMARY"
    NEW_TRANSCRIPTION = "NEW_TRANSCRIPTION"
    NEW_ACTION_ITEMS = "NEW_ACTION_ITEMS"


NOTIFICATION_TYPES: dict[ResultKind, MessageType] = {
    ResultKind.SUMMARY: MessageType.NEW_SUMMARY,
    ResultKind.TRANSCRIPTION: MessageType.NEW_TRANSCRIPTION,
    ResultKind.ACTION_ITEMS: MessageType.NEW_ACTION_ITEMS,
}


class ClientMessage(BaseModel):
    """An inbound control frame."""

    type: str
    meeting_id: str | None = None

    @classmethod
    def parse(cls, raw: dict[str, Any]) -> "ClientMessage":
        """Build from a decoded frame; numeric meeting ids become strings.

        Raises:
            ValidationError: meetingId is neither a string nor a number
        """
        meeting_id = raw.get("meetingId")
        if isinstance(meeting_id, int | float) and not isinstance(meeting_id, bool):
            meeting_id = str(meeting_id)
        return cls(type=str(raw.get("type", "")), meeting_id=meeting_id)


def now_ms() -> int:
    return int(time.time() * 1000)


def build_notification(result: ProcessedResult) -> dict[str, Any]:
    """``{type, data, timestamp}`` envelope for a processed result."""
    return {
        "type": NOTIFICATION_TYPES[result.kind].value,
        "data": result.model_dump(mode="json", by_alias=True),
        "timestamp": now_ms(),
    }


def build_response(message_type: MessageType, message: str) -> dict[str, Any]:
    """``{type, message, timestamp}`` envelope for control responses."""
    return {
        "type": message_type.value,
        "message": message,
        "timestamp": now_ms(),
    }
