"""Live push channel for meeting result notifications."""

import json

import structlog
from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from src.realtime.connection import WebSocketConnection
from src.realtime.messages import ClientMessage, MessageType, build_response
from src.realtime.registry import SessionRegistry

logger = structlog.get_logger()

router = APIRouter(tags=["websocket"])


@router.websocket("/ws/meetings")
async def meetings_socket(websocket: WebSocket) -> None:
    """Register the client, then serve subscribe/unsubscribe/ping frames.

    Bad frames get an ERROR reply; the connection stays open. The
    session is removed from the registry when the client goes away.
    """
    registry: SessionRegistry = websocket.app.state.session_registry
    await websocket.accept()
    conn = WebSocketConnection(websocket)
    registry.add_session(conn)

    try:
        await _reply(conn, MessageType.CONNECTED, f"Connected: {conn.connection_id}")
        while True:
            raw = await websocket.receive_text()
            await handle_frame(conn, registry, raw)
    except WebSocketDisconnect:
        logger.info("websocket disconnected", connection_id=conn.connection_id)
    except Exception as e:
        logger.warning(
            "websocket transport error", connection_id=conn.connection_id, error=str(e)
        )
    finally:
        conn.mark_closed()
        registry.remove_session(conn)


async def handle_frame(
    conn: WebSocketConnection, registry: SessionRegistry, raw: str
) -> None:
    """Dispatch one inbound text frame."""
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError:
        await _reply(conn, MessageType.ERROR, "Invalid message format")
        return
    if not isinstance(payload, dict):
        await _reply(conn, MessageType.ERROR, "Invalid message format")
        return

    try:
        message = ClientMessage.parse(payload)
    except ValidationError:
        await _reply(conn, MessageType.ERROR, "Invalid message format")
        return
    match message.type:
        case MessageType.SUBSCRIBE_MEETING:
            if not message.meeting_id:
                await _reply(conn, MessageType.ERROR, "meetingId is required")
                return
            registry.subscribe(conn, message.meeting_id)
            await _reply(
                conn, MessageType.SUBSCRIBED, f"Subscribed to meeting: {message.meeting_id}"
            )
        case MessageType.UNSUBSCRIBE_MEETING:
            if not message.meeting_id:
                await _reply(conn, MessageType.ERROR, "meetingId is required")
                return
            registry.unsubscribe(conn, message.meeting_id)
            await _reply(
                conn,
                MessageType.UNSUBSCRIBED,
                f"Unsubscribed from meeting: {message.meeting_id}",
            )
        case MessageType.PING:
            await _reply(conn, MessageType.PONG, "pong")
        case _:
            await _reply(conn, MessageType.ERROR, f"Unknown message type: {message.type}")


async def _reply(conn: WebSocketConnection, message_type: MessageType, text: str) -> None:
    await conn.send_text(json.dumps(build_response(message_type, text)))
