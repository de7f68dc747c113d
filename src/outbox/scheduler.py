"""APScheduler integration for the outbox relay and housekeeping jobs.

Provides scheduler setup, job registration, and FastAPI lifespan
integration. Jobs never raise into the scheduler; failures are logged
and the next tick retries.
"""

from contextlib import asynccontextmanager
from datetime import UTC, timedelta
from typing import TYPE_CHECKING

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from src.config import Settings

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from src.outbox.relay import OutboxRelay
    from src.outbox.store import OutboxStore
    from src.streams.windowing import MessageWindowAggregator

logger = structlog.get_logger()

RELAY_JOB_ID = "outbox_relay"
CLEANUP_JOB_ID = "outbox_cleanup"
WINDOW_FLUSH_JOB_ID = "message_window_flush"

# Module-level scheduler instance
_scheduler: AsyncIOScheduler | None = None


def get_scheduler() -> AsyncIOScheduler:
    """Get or create the scheduler instance.

    Returns:
        AsyncIOScheduler instance
    """
    global _scheduler
    if _scheduler is None:
        _scheduler = AsyncIOScheduler(timezone=UTC)
    return _scheduler


def reset_scheduler() -> None:
    """Reset the scheduler instance (for testing)."""
    global _scheduler
    if _scheduler is not None and _scheduler.running:
        _scheduler.shutdown(wait=False)
    _scheduler = None


@asynccontextmanager
async def relay_scheduler_lifespan(
    relay: "OutboxRelay",
    store: "OutboxStore",
    settings: Settings,
    aggregator: "MessageWindowAggregator | None" = None,
) -> "AsyncGenerator[None, None]":
    """Lifespan context manager for the relay scheduler.

    Registers the relay poll, the retention sweep and (optionally) the
    message window flush, starts the scheduler, and shuts it down on exit.

    Usage:
        async with relay_scheduler_lifespan(relay, store, settings):
            # Relay is polling
            yield
    """
    scheduler = get_scheduler()

    scheduler.add_job(
        run_relay_cycle,
        "interval",
        seconds=settings.outbox_poll_interval_seconds,
        args=[relay],
        id=RELAY_JOB_ID,
        replace_existing=True,
        max_instances=1,  # Polls never overlap
        coalesce=True,
    )
    scheduler.add_job(
        purge_processed_events,
        "interval",
        minutes=settings.outbox_cleanup_interval_minutes,
        args=[store, timedelta(hours=settings.outbox_retention_hours)],
        id=CLEANUP_JOB_ID,
        replace_existing=True,
        max_instances=1,
    )
    if aggregator is not None:
        scheduler.add_job(
            flush_message_windows,
            "interval",
            seconds=30,
            args=[aggregator],
            id=WINDOW_FLUSH_JOB_ID,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )

    logger.info(
        "Starting relay scheduler",
        poll_interval_s=settings.outbox_poll_interval_seconds,
        batch_size=settings.outbox_batch_size,
    )
    scheduler.start()

    try:
        yield
    finally:
        logger.info("Shutting down relay scheduler")
        scheduler.shutdown(wait=False)


async def run_relay_cycle(relay: "OutboxRelay") -> None:
    """Scheduled job: relay one batch of outbox rows."""
    try:
        await relay.poll_once()
    except Exception as e:
        logger.error("Relay cycle failed", error=str(e))


async def purge_processed_events(store: "OutboxStore", retention: timedelta) -> None:
    """Scheduled job: delete processed rows past the retention window."""
    try:
        deleted = await store.purge_processed(retention)
        if deleted:
            logger.info("Purged processed outbox rows", count=deleted)
    except Exception as e:
        logger.error("Outbox cleanup failed", error=str(e))


async def flush_message_windows(aggregator: "MessageWindowAggregator") -> None:
    """Scheduled job: publish chat windows that have closed."""
    try:
        await aggregator.flush()
    except Exception as e:
        logger.error("Window flush failed", error=str(e))
