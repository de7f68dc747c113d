"""Processed-result ingestion and the in-memory result store."""

from src.results.consumer import ProcessedEventConsumer
from src.results.schemas import (
    ActionItemEntry,
    ProcessedActionItem,
    ProcessedResult,
    ProcessedSummary,
    ProcessedTranscription,
    ResultKind,
    ResultStatistics,
    TranscriptionSegment,
)
from src.results.store import ResultStore

__all__ = [
    "ActionItemEntry",
    "ProcessedActionItem",
    "ProcessedEventConsumer",
    "ProcessedResult",
    "ProcessedSummary",
    "ProcessedTranscription",
    "ResultKind",
    "ResultStatistics",
    "ResultStore",
    "TranscriptionSegment",
]
