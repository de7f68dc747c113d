"""Fan-out of processed results to live connections."""

import asyncio
import json

import structlog

from src.realtime.connection import LiveConnection
from src.realtime.messages import build_notification
from src.realtime.registry import SessionRegistry
from src.results.schemas import ProcessedResult

logger = structlog.get_logger()


class Notifier:
    """Pushes result notifications to subscribers and, optionally, everyone.

    With ``broadcast_all`` on, each result goes to the meeting's
    subscribers and then to every open session, so a subscribed client
    receives it twice. One broken connection never stops delivery to the
    others.
    """

    def __init__(self, registry: SessionRegistry, broadcast_all: bool = True):
        self._registry = registry
        self._broadcast_all = broadcast_all

    async def notify(self, result: ProcessedResult) -> int:
        """Send a result envelope.

        Returns:
            Number of frames delivered
        """
        frame = json.dumps(build_notification(result))

        delivered = await self._send_all(
            self._registry.subscribers_of(result.meeting_id), frame
        )
        if self._broadcast_all:
            delivered += await self._send_all(self._registry.all_sessions(), frame)

        logger.debug(
            "notification sent",
            kind=result.kind.value,
            meeting_id=result.meeting_id,
            delivered=delivered,
        )
        return delivered

    async def _send_all(self, connections: frozenset[LiveConnection], frame: str) -> int:
        targets = [conn for conn in connections if conn.is_open]
        results = await asyncio.gather(
            *(conn.send_text(frame) for conn in targets), return_exceptions=True
        )
        delivered = 0
        for conn, result in zip(targets, results, strict=True):
            if isinstance(result, BaseException):
                logger.warning(
                    "push to connection failed",
                    connection_id=conn.connection_id,
                    error=str(result),
                )
                continue
            delivered += 1
        return delivered
