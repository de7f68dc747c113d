"""Consumers for the processed-result topics.

Each handler parses one message, stores it, and pushes it to live
clients. A message that fails to parse is logged and skipped so it
never blocks the partition. Handlers never raise.
"""

from typing import TYPE_CHECKING

import structlog
from pydantic import ValidationError

from src.bus.base import BusMessage, MessageBus
from src.config import Settings
from src.results.schemas import (
    ProcessedActionItem,
    ProcessedResult,
    ProcessedSummary,
    ProcessedTranscription,
)
from src.results.store import ResultStore

if TYPE_CHECKING:
    from src.realtime.notifier import Notifier

logger = structlog.get_logger()


class ProcessedEventConsumer:
    """Ingests processed results into the store and notifies clients."""

    def __init__(self, store: ResultStore, notifier: "Notifier | None" = None):
        self._store = store
        self._notifier = notifier

    def register(self, bus: MessageBus, settings: Settings) -> None:
        """Subscribe the handlers to their topics on ``bus``."""
        bus.subscribe(settings.topic_processed_summaries, self.on_summary)
        bus.subscribe(settings.topic_processed_transcriptions, self.on_transcription)
        bus.subscribe(settings.topic_processed_action_items, self.on_action_items)

    async def on_summary(self, message: BusMessage) -> None:
        await self._handle(message, ProcessedSummary)

    async def on_transcription(self, message: BusMessage) -> None:
        await self._handle(message, ProcessedTranscription)

    async def on_action_items(self, message: BusMessage) -> None:
        await self._handle(message, ProcessedActionItem)

    async def _handle(self, message: BusMessage, model: type[ProcessedResult]) -> None:
        try:
            result = model.model_validate_json(message.value)
        except ValidationError as e:
            logger.error(
                "skipping unparsable processed result",
                topic=message.topic,
                partition=message.partition,
                offset=message.offset,
                error_count=e.error_count(),
                error=str(e),
            )
            return

        self._store.save(result)
        logger.info(
            "processed result received",
            kind=result.kind.value,
            meeting_id=result.meeting_id,
            topic=message.topic,
        )

        if self._notifier is None:
            return
        try:
            await self._notifier.notify(result)
        except Exception as e:
            logger.error(
                "live notification failed",
                kind=result.kind.value,
                meeting_id=result.meeting_id,
                error=str(e),
            )
