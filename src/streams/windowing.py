"""Tumbling-window aggregation of chat messages per channel.

Text messages relayed from the outbox are grouped by channel into
fixed-size windows. When a window closes, its lines are emitted as one
``ProcessedMeetingData`` record for the AI processing stage.
"""

from datetime import UTC, datetime, timedelta

import structlog
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from src.bus.base import BusMessage, MessageBus

logger = structlog.get_logger()

SOURCE_DISCORD_MESSAGES = "DISCORD_MESSAGES"


class WindowedMessage(BaseModel):
    """The slice of a relayed chat message the aggregator needs."""

    model_config = ConfigDict(extra="ignore")

    author: str = Field(
        default="unknown",
        validation_alias=AliasChoices("authorName", "author", "author_name"),
    )
    content: str
    channel_id: str | None = Field(
        default=None, validation_alias=AliasChoices("channelId", "channel_id")
    )
    timestamp: datetime | None = None


class ProcessedMeetingData(BaseModel):
    """One closed window of channel messages."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    source_type: str = SOURCE_DISCORD_MESSAGES
    channel_id: str
    raw_content: str
    window_start: datetime
    window_end: datetime


class MessageWindowAggregator:
    """Groups chat messages by channel into tumbling windows.

    Windows are aligned to the epoch, so every instance agrees on the
    boundaries. Lines within a window keep arrival order.
    """

    def __init__(
        self,
        bus: MessageBus,
        output_topic: str,
        window: timedelta = timedelta(minutes=5),
    ):
        """Initialize aggregator.

        Args:
            bus: Bus the closed windows are published to
            output_topic: Destination topic for ProcessedMeetingData
            window: Window size
        """
        if window <= timedelta(0):
            msg = "window must be positive"
            raise ValueError(msg)
        self._bus = bus
        self._output_topic = output_topic
        self._window = window
        self._windows: dict[tuple[str, datetime], list[str]] = {}

    @property
    def open_windows(self) -> int:
        return len(self._windows)

    def window_start(self, ts: datetime) -> datetime:
        """Start of the window containing ``ts``."""
        if ts.tzinfo is None:
            ts = ts.replace(tzinfo=UTC)
        epoch = datetime(1970, 1, 1, tzinfo=UTC)
        size = self._window.total_seconds()
        offset = (ts - epoch).total_seconds()
        return epoch + timedelta(seconds=(offset // size) * size)

    async def on_message(self, message: BusMessage) -> None:
        """Add one relayed chat message to its channel window.

        Malformed messages are logged and skipped.
        """
        try:
            chat = WindowedMessage.model_validate_json(message.value)
        except ValidationError as e:
            logger.error(
                "dropping malformed chat message",
                topic=message.topic,
                offset=message.offset,
                error=str(e),
            )
            return

        channel = chat.channel_id or message.key
        if not channel:
            logger.warning("chat message without channel", offset=message.offset)
            return

        start = self.window_start(chat.timestamp or datetime.now(UTC))
        self._windows.setdefault((channel, start), []).append(
            f"{chat.author}: {chat.content}\n"
        )

    async def flush(self, now: datetime | None = None) -> int:
        """Emit every window that has closed by ``now``.

        Returns:
            Number of windows published
        """
        now = now or datetime.now(UTC)
        closed = [
            key for key in self._windows if key[1] + self._window <= now
        ]
        return await self._emit(closed)

    async def flush_all(self) -> int:
        """Emit every window regardless of its end time."""
        return await self._emit(list(self._windows))

    async def _emit(self, keys: list[tuple[str, datetime]]) -> int:
        published = 0
        for channel, start in sorted(keys, key=lambda k: (k[1], k[0])):
            lines = self._windows.pop((channel, start))
            record = ProcessedMeetingData(
                channel_id=channel,
                raw_content="".join(lines),
                window_start=start,
                window_end=start + self._window,
            )
            try:
                ack = await self._bus.send(
                    self._output_topic,
                    channel,
                    record.model_dump_json(by_alias=True),
                )
                await ack
            except Exception as e:
                # Put the lines back so the next flush retries the window
                self._windows.setdefault((channel, start), [])[:0] = lines
                logger.warning(
                    "window publish failed",
                    channel=channel,
                    window_start=start.isoformat(),
                    error=str(e),
                )
                continue
            published += 1
            logger.info(
                "window published",
                channel=channel,
                window_start=start.isoformat(),
                lines=len(lines),
            )
        return published
