"""In-memory store of the latest processed results per meeting.

Serves read queries without a database round-trip. One map per result
kind, each striped over per-key-group locks; a later result for the same
meeting id replaces the earlier one (last write wins).
"""

import threading
from typing import TypeVar

import structlog

from src.results.schemas import (
    ProcessedActionItem,
    ProcessedResult,
    ProcessedSummary,
    ProcessedTranscription,
    ResultKind,
    ResultStatistics,
)

logger = structlog.get_logger()

R = TypeVar("R", bound=ProcessedResult)


SHARDS = 16


class _ResultMap:
    """Thread-safe meeting_id -> result map for one result kind.

    Keys are striped by hash over SHARDS sub-maps, each with its own lock.
    """

    def __init__(self, shards: int = SHARDS) -> None:
        self._shards: list[tuple[dict[str, ProcessedResult], threading.Lock]] = [
            ({}, threading.Lock()) for _ in range(shards)
        ]

    def _shard(self, meeting_id: str) -> tuple[dict[str, ProcessedResult], threading.Lock]:
        return self._shards[hash(meeting_id) % len(self._shards)]

    def put(self, result: ProcessedResult) -> bool:
        items, lock = self._shard(result.meeting_id)
        with lock:
            replaced = result.meeting_id in items
            items[result.meeting_id] = result
        return replaced

    def get(self, meeting_id: str) -> ProcessedResult | None:
        items, lock = self._shard(meeting_id)
        with lock:
            return items.get(meeting_id)

    def pop(self, meeting_id: str) -> ProcessedResult | None:
        items, lock = self._shard(meeting_id)
        with lock:
            return items.pop(meeting_id, None)

    def values(self) -> list[ProcessedResult]:
        """Snapshot taken shard by shard; not atomic across shards."""
        snapshot: list[ProcessedResult] = []
        for items, lock in self._shards:
            with lock:
                snapshot.extend(items.values())
        return snapshot

    def __len__(self) -> int:
        total = 0
        for items, lock in self._shards:
            with lock:
                total += len(items)
        return total


class ResultStore:
    """Concurrent cache of last-known-good results keyed by meeting id.

    Callers never need external locking. Maps are independent: a
    statistics snapshot taken during concurrent writes may mix states
    across kinds. All list-returning methods hand back new lists.
    """

    def __init__(self) -> None:
        self._maps: dict[ResultKind, _ResultMap] = {
            kind: _ResultMap() for kind in ResultKind
        }

    def save(self, result: ProcessedResult) -> None:
        """Upsert a result under its meeting id."""
        replaced = self._maps[result.kind].put(result)
        logger.info(
            "result saved",
            kind=result.kind.value,
            meeting_id=result.meeting_id,
            replaced=replaced,
        )

    def get(
        self, meeting_id: str, kind: ResultKind = ResultKind.SUMMARY
    ) -> ProcessedResult | None:
        """Return the current result of a kind for a meeting, if any."""
        return self._maps[kind].get(meeting_id)

    def get_summary(self, meeting_id: str) -> ProcessedSummary | None:
        return self._typed(ResultKind.SUMMARY, meeting_id, ProcessedSummary)

    def get_transcription(self, meeting_id: str) -> ProcessedTranscription | None:
        return self._typed(ResultKind.TRANSCRIPTION, meeting_id, ProcessedTranscription)

    def get_action_items(self, meeting_id: str) -> ProcessedActionItem | None:
        return self._typed(ResultKind.ACTION_ITEMS, meeting_id, ProcessedActionItem)

    def get_all(self, kind: ResultKind = ResultKind.SUMMARY) -> list[ProcessedResult]:
        """Return every stored result of a kind."""
        return self._maps[kind].values()

    def get_all_summaries(self) -> list[ProcessedSummary]:
        return [r for r in self.get_all(ResultKind.SUMMARY) if isinstance(r, ProcessedSummary)]

    def get_all_action_items(self) -> list[ProcessedActionItem]:
        return [
            r
            for r in self.get_all(ResultKind.ACTION_ITEMS)
            if isinstance(r, ProcessedActionItem)
        ]

    def get_summaries_by_platform(self, platform: str) -> list[ProcessedSummary]:
        """Filter summaries by platform, ignoring case."""
        wanted = platform.strip().casefold()
        return [
            s
            for s in self.get_all_summaries()
            if s.platform is not None and s.platform.casefold() == wanted
        ]

    def get_recent_summaries(self, limit: int = 20) -> list[ProcessedSummary]:
        """Newest summaries first by processed time (undated ones last)."""
        if limit <= 0:
            return []
        dated = [s for s in self.get_all_summaries() if s.processed_time is not None]
        undated = [s for s in self.get_all_summaries() if s.processed_time is None]
        dated.sort(key=lambda s: s.processed_time, reverse=True)  # type: ignore[arg-type,return-value]
        return (dated + undated)[:limit]

    def clear(self, meeting_id: str) -> bool:
        """Drop every result kind for a meeting.

        Returns:
            True if anything was removed
        """
        removed = [self._maps[kind].pop(meeting_id) for kind in ResultKind]
        cleared = any(r is not None for r in removed)
        logger.info("meeting results cleared", meeting_id=meeting_id, cleared=cleared)
        return cleared

    def statistics(self) -> ResultStatistics:
        """Counts by kind and by platform."""
        summaries = self.get_all_summaries()
        action_lists = self.get_all_action_items()

        by_platform: dict[str, int] = {}
        for summary in summaries:
            platform = (summary.platform or "UNKNOWN").upper()
            by_platform[platform] = by_platform.get(platform, 0) + 1

        return ResultStatistics(
            total_meetings=len(summaries),
            total_transcriptions=len(self._maps[ResultKind.TRANSCRIPTION]),
            total_action_item_lists=len(action_lists),
            total_action_items=sum(len(a.action_items) for a in action_lists),
            discord_meetings=by_platform.get("DISCORD", 0),
            zoom_meetings=by_platform.get("ZOOM", 0),
            meetings_by_platform=by_platform,
        )

    def _typed(self, kind: ResultKind, meeting_id: str, model: type[R]) -> R | None:
        result = self._maps[kind].get(meeting_id)
        return result if isinstance(result, model) else None
