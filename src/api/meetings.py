"""Meeting results API served from the in-memory result store."""

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from src.api.responses import ApiResponse
from src.results.schemas import (
    ProcessedActionItem,
    ProcessedSummary,
    ProcessedTranscription,
    ResultModel,
)
from src.results.store import ResultStore

router = APIRouter(prefix="/meetings", tags=["meetings"])


class MeetingDetail(ResultModel):
    """Everything known about one meeting."""

    meeting_id: str
    summary: ProcessedSummary
    transcription: ProcessedTranscription | None = None
    action_items: ProcessedActionItem | None = None


def get_result_store(request: Request) -> ResultStore:
    """Dependency to get ResultStore from app state."""
    store = getattr(request.app.state, "result_store", None)
    if store is None:
        raise HTTPException(status_code=500, detail="ResultStore not initialized")
    return store


@router.get("", response_model=ApiResponse[list[ProcessedSummary]])
async def list_meetings(
    platform: str | None = Query(default=None, description="Filter by platform"),
    limit: int = Query(default=20, ge=1, le=500),
    store: ResultStore = Depends(get_result_store),
) -> ApiResponse[list[ProcessedSummary]]:
    """List meeting summaries, newest first, optionally for one platform."""
    if platform:
        summaries = store.get_summaries_by_platform(platform)[:limit]
    else:
        summaries = store.get_recent_summaries(limit)
    return ApiResponse.ok(summaries, message=f"{len(summaries)} meetings")


@router.get("/action-items", response_model=ApiResponse[list[ProcessedActionItem]])
async def list_action_items(
    store: ResultStore = Depends(get_result_store),
) -> ApiResponse[list[ProcessedActionItem]]:
    """Action item lists for every meeting."""
    return ApiResponse.ok(store.get_all_action_items())


@router.get("/{meeting_id}", response_model=ApiResponse[MeetingDetail])
async def get_meeting(
    meeting_id: str,
    store: ResultStore = Depends(get_result_store),
) -> ApiResponse[MeetingDetail]:
    """Summary, transcription and action items for a meeting.

    A meeting without a summary is reported as not found.
    """
    summary = store.get_summary(meeting_id)
    if summary is None:
        raise HTTPException(status_code=404, detail=f"Meeting {meeting_id} not found")
    detail = MeetingDetail(
        meeting_id=meeting_id,
        summary=summary,
        transcription=store.get_transcription(meeting_id),
        action_items=store.get_action_items(meeting_id),
    )
    return ApiResponse.ok(detail)


@router.get("/{meeting_id}/summary", response_model=ApiResponse[ProcessedSummary])
async def get_summary(
    meeting_id: str,
    store: ResultStore = Depends(get_result_store),
) -> ApiResponse[ProcessedSummary]:
    summary = store.get_summary(meeting_id)
    if summary is None:
        raise HTTPException(status_code=404, detail=f"No summary for {meeting_id}")
    return ApiResponse.ok(summary)


@router.get(
    "/{meeting_id}/transcription", response_model=ApiResponse[ProcessedTranscription]
)
async def get_transcription(
    meeting_id: str,
    store: ResultStore = Depends(get_result_store),
) -> ApiResponse[ProcessedTranscription]:
    transcription = store.get_transcription(meeting_id)
    if transcription is None:
        raise HTTPException(status_code=404, detail=f"No transcription for {meeting_id}")
    return ApiResponse.ok(transcription)


@router.get(
    "/{meeting_id}/action-items", response_model=ApiResponse[ProcessedActionItem]
)
async def get_action_items(
    meeting_id: str,
    store: ResultStore = Depends(get_result_store),
) -> ApiResponse[ProcessedActionItem]:
    action_items = store.get_action_items(meeting_id)
    if action_items is None:
        raise HTTPException(status_code=404, detail=f"No action items for {meeting_id}")
    return ApiResponse.ok(action_items)


@router.delete("/{meeting_id}/cache", response_model=ApiResponse[bool])
async def clear_meeting_cache(
    meeting_id: str,
    store: ResultStore = Depends(get_result_store),
) -> ApiResponse[bool]:
    """Drop all cached results for a meeting."""
    cleared = store.clear(meeting_id)
    message = "Cache cleared" if cleared else "Nothing cached"
    return ApiResponse.ok(cleared, message=message)
