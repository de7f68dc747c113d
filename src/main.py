"""FastAPI application entry point."""

import logging
from collections.abc import AsyncGenerator
from contextlib import AsyncExitStack, asynccontextmanager
from datetime import timedelta

from fastapi import FastAPI

from src.api.router import api_router
from src.bus.base import MessageBus
from src.bus.kafka import KafkaMessageBus
from src.bus.memory import InMemoryMessageBus
from src.config import Settings, settings
from src.db.turso import TursoClient
from src.ingest.service import MeetingService, MessageService
from src.outbox.publisher import OutboxPublisher
from src.outbox.relay import OutboxRelay
from src.outbox.store import OutboxStore
from src.realtime.notifier import Notifier
from src.realtime.registry import SessionRegistry
from src.results.consumer import ProcessedEventConsumer
from src.results.store import ResultStore
from src.streams.routing import TEXT_MESSAGE_TOPIC
from src.streams.windowing import MessageWindowAggregator

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def create_bus(config: Settings) -> MessageBus:
    """Kafka when brokers are configured, otherwise the in-process bus."""
    if config.kafka_bootstrap_servers:
        logger.info(f"Using Kafka message bus: {config.kafka_bootstrap_servers}")
        return KafkaMessageBus(
            bootstrap_servers=config.kafka_bootstrap_servers,
            group_id=config.kafka_consumer_group,
            client_id=config.kafka_client_id,
        )
    logger.info("No Kafka servers configured, using in-memory message bus")
    return InMemoryMessageBus(retention=config.memory_bus_retention)


async def initialize_pipeline(app: FastAPI, db: TursoClient, bus: MessageBus) -> None:
    """Wire the outbox, consumers, notifier and ingest services into app state.

    Subscriptions are registered here, before the bus starts.
    """
    # Outbox
    outbox_store = OutboxStore(db)
    await outbox_store.init_schema()
    publisher = OutboxPublisher(outbox_store)
    app.state.outbox_store = outbox_store
    app.state.relay = OutboxRelay(outbox_store, bus, batch_size=settings.outbox_batch_size)
    logger.info("Outbox initialized")

    # Upstream producers
    meeting_service = MeetingService(db, publisher)
    await meeting_service.init_schema()
    message_service = MessageService(db, publisher)
    await message_service.init_schema()
    app.state.meeting_service = meeting_service
    app.state.message_service = message_service

    # Result store, live sessions and notifications
    result_store = ResultStore()
    registry = SessionRegistry()
    notifier = Notifier(registry, broadcast_all=settings.notify_broadcast_all)
    ProcessedEventConsumer(result_store, notifier).register(bus, settings)
    app.state.result_store = result_store
    app.state.session_registry = registry
    app.state.notifier = notifier
    logger.info("Processed-result consumers registered")

    # Text-message windowing
    aggregator = MessageWindowAggregator(
        bus,
        output_topic=settings.topic_processed_messages,
        window=timedelta(minutes=settings.message_window_minutes),
    )
    bus.subscribe(TEXT_MESSAGE_TOPIC, aggregator.on_message)
    app.state.aggregator = aggregator


def _get_scheduler_context(app: FastAPI):
    """Get relay scheduler lifespan context manager.

    Returns a no-op context if background jobs are disabled.
    """
    from src.outbox.scheduler import relay_scheduler_lifespan

    if settings.disable_background_jobs:

        @asynccontextmanager
        async def noop_context():
            yield

        return noop_context()

    return relay_scheduler_lifespan(
        app.state.relay,
        app.state.outbox_store,
        settings,
        aggregator=app.state.aggregator,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan management.

    Startup:
    - Initialize database connection
    - Build the outbox, consumers and live push pipeline
    - Start the message bus and the relay scheduler

    Shutdown:
    - Flush open message windows
    - Stop the message bus
    - Close database connection
    """
    # Startup
    logger.info("Starting Meeting Stream Relay...")

    db = TursoClient()
    await db.connect()
    app.state.db = db
    logger.info(f"Database connected: {db.url}")

    bus = create_bus(settings)
    app.state.bus = bus
    await initialize_pipeline(app, db, bus)

    await bus.start()
    logger.info("Message bus started")

    async with AsyncExitStack() as stack:
        await stack.enter_async_context(_get_scheduler_context(app))
        yield

    # Shutdown
    logger.info("Shutting down Meeting Stream Relay...")
    try:
        await app.state.aggregator.flush_all()
    except Exception as e:
        logger.error(f"Failed to flush message windows: {e}")
    await bus.stop()
    logger.info("Message bus stopped")
    await db.close()
    logger.info("Database connection closed")


app = FastAPI(
    title=settings.app_name,
    description="Outbox relay and live push gateway for meeting processing results",
    version=settings.app_version,
    lifespan=lifespan,
)

app.include_router(api_router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "src.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )
