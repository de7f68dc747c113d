"""Outbox record and relay bookkeeping models."""

from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, Field


class OutboxEventType(StrEnum):
    """Common event type tags written by business operations."""

    CREATED = "Created"
    UPDATED = "Updated"
    STARTED = "Started"
    ENDED = "Ended"


class OutboxEvent(BaseModel):
    """A pending domain event row in the outbox table.

    Written in the same transaction as the state change it documents.
    The relay only ever flips ``processed``; the payload is opaque to it.

    Attributes:
        id: Row id assigned by the store (None until persisted)
        aggregate_type: Domain entity kind (e.g., "Meeting", "Message")
        aggregate_id: Identifier of the entity instance
        event_type: What happened (Created/Updated/Started/Ended/...)
        payload: Serialized aggregate (JSON text)
        created_at: When the row was written
        processed: True once the bus acknowledged the send
    """

    id: int | None = Field(default=None, description="Store-assigned row id")
    aggregate_type: str | None = Field(default=None, description="Entity kind")
    aggregate_id: str = Field(description="Entity identifier")
    event_type: str = Field(description="Event type tag")
    payload: str = Field(description="Serialized aggregate")
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        description="When the event was written",
    )
    processed: bool = Field(default=False, description="Relayed to the bus")


class RelayReport(BaseModel):
    """Outcome of a single relay poll cycle."""

    found: int = 0
    published: int = 0
    failed: int = 0
    aborted: bool = False


class RelayStats(BaseModel):
    """Cumulative relay counters for observability."""

    cycles: int = 0
    published: int = 0
    failed: int = 0
    aborted_cycles: int = 0
    last_error: str | None = None
    last_run_at: datetime | None = None

    def record(self, report: RelayReport) -> None:
        """Fold one cycle's report into the running totals."""
        self.cycles += 1
        self.published += report.published
        self.failed += report.failed
        if report.aborted:
            self.aborted_cycles += 1
        self.last_run_at = datetime.now(UTC)
