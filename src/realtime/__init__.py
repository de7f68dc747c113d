"""Live push channel: session registry, envelopes and notifier."""

from src.realtime.connection import LiveConnection, WebSocketConnection
from src.realtime.messages import (
    MessageType,
    build_notification,
    build_response,
)
from src.realtime.notifier import Notifier
from src.realtime.registry import SessionRegistry

__all__ = [
    "LiveConnection",
    "MessageType",
    "Notifier",
    "SessionRegistry",
    "WebSocketConnection",
    "build_notification",
    "build_response",
]
