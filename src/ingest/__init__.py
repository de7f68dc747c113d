"""Upstream producers: meetings and chat messages."""

from src.ingest.schemas import ChatMessage, Meeting
from src.ingest.service import MeetingNotFoundError, MeetingService, MessageService

__all__ = [
    "ChatMessage",
    "Meeting",
    "MeetingNotFoundError",
    "MeetingService",
    "MessageService",
]
