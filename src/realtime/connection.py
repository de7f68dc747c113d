"""Live connection abstraction over the push transport."""

import asyncio
import uuid
from typing import Protocol, runtime_checkable

from fastapi import WebSocket
from starlette.websockets import WebSocketState


@runtime_checkable
class LiveConnection(Protocol):
    """A client connection the notifier can push text frames to."""

    @property
    def connection_id(self) -> str: ...

    @property
    def is_open(self) -> bool: ...

    async def send_text(self, data: str) -> None: ...


class WebSocketConnection:
    """LiveConnection backed by a FastAPI WebSocket.

    Sends are serialized per connection so frames from the consumer
    handlers and the control-message loop never interleave.
    """

    def __init__(self, websocket: WebSocket, connection_id: str | None = None):
        self._websocket = websocket
        self._connection_id = connection_id or uuid.uuid4().hex
        self._send_lock = asyncio.Lock()
        self._closed = False

    @property
    def connection_id(self) -> str:
        return self._connection_id

    @property
    def is_open(self) -> bool:
        return (
            not self._closed
            and self._websocket.client_state == WebSocketState.CONNECTED
            and self._websocket.application_state == WebSocketState.CONNECTED
        )

    def mark_closed(self) -> None:
        self._closed = True

    async def send_text(self, data: str) -> None:
        async with self._send_lock:
            await self._websocket.send_text(data)

    def __repr__(self) -> str:
        return f"WebSocketConnection({self._connection_id})"
