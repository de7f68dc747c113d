"""Topic and partition-key routing for outbox events.

Pure, table-driven helpers used by the relay. ``topic_for`` is total:
unknown aggregate types go to the default topic with a warning, they are
never dropped.
"""

import json
import re
import time
from collections.abc import Mapping
from types import MappingProxyType

import structlog

logger = structlog.get_logger()

# Raw event topics
RAW_AUDIO_TOPIC = "raw-audio-events"
MEETING_TOPIC = "meeting-events"
VOICE_SESSION_TOPIC = "voice-session-events"
TEXT_MESSAGE_TOPIC = "text-message-events"
MEDIA_UPLOADED_TOPIC = "media-uploaded-events"

DEFAULT_TOPIC = RAW_AUDIO_TOPIC

TOPIC_ROUTES: Mapping[str, str] = MappingProxyType(
    {
        "AudioMessage": RAW_AUDIO_TOPIC,
        "Meeting": MEETING_TOPIC,
        "VoiceSession": VOICE_SESSION_TOPIC,
        "Message": TEXT_MESSAGE_TOPIC,
        "MeetingMedia": MEDIA_UPLOADED_TOPIC,
    }
)

# Payload fields that carry the partition key, in priority order
KEY_FIELDS = ("channelId", "meetingId")


def topic_for(aggregate_type: str | None) -> str:
    """Return the destination topic for an aggregate type.

    Args:
        aggregate_type: Entity kind from the outbox row (may be None)

    Returns:
        The routed topic, or DEFAULT_TOPIC for unknown/missing types
    """
    topic = TOPIC_ROUTES.get(aggregate_type) if aggregate_type else None
    if topic is None:
        logger.warning(
            "unknown aggregate type, using default topic",
            aggregate_type=aggregate_type,
            topic=DEFAULT_TOPIC,
        )
        return DEFAULT_TOPIC
    return topic


def partition_key_for(
    payload: str | None,
    aggregate_type: str | None,
    now_ms: int | None = None,
) -> str:
    """Derive the bus partition key for an outbox payload.

    Uses the first of channelId/meetingId found in the payload. When
    neither is present the key is synthesized as
    ``<aggregate_type>-<epoch millis>`` so it is never empty.

    Args:
        payload: Serialized aggregate
        aggregate_type: Entity kind, used for the synthesized key
        now_ms: Send time in epoch millis (defaults to the current time)
    """
    key = extract_key_field(payload)
    if key:
        return key
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return f"{aggregate_type or 'Unknown'}-{now_ms}"


def extract_key_field(payload: str | None) -> str | None:
    """Find the partition key value in a payload.

    Top-level JSON fields are read first. If the payload is not a JSON
    object or the fields are nested, the text is scanned for the first
    ``"<field>":"<value>"`` occurrence instead.
    """
    if not payload:
        return None

    try:
        document = json.loads(payload)
    except ValueError:
        document = None

    if isinstance(document, dict):
        for field in KEY_FIELDS:
            value = document.get(field)
            if value is not None and not isinstance(value, dict | list):
                text = str(value).strip()
                if text:
                    return text

    return _scan_key_field(payload)


def _scan_key_field(payload: str) -> str | None:
    for field in KEY_FIELDS:
        match = re.search(rf'"{field}"\s*:\s*"((?:[^"\\]|\\.)*)"', payload)
        if match and match.group(1):
            return match.group(1)
    return None
