"""Ingest endpoints for upstream meeting and chat events."""

from fastapi import APIRouter, Depends, HTTPException, Request

from src.api.responses import ApiResponse
from src.ingest.schemas import ChatMessage, Meeting
from src.ingest.service import MeetingNotFoundError, MeetingService, MessageService
from src.outbox.publisher import SerializationError

router = APIRouter(prefix="/ingest", tags=["ingest"])


def get_meeting_service(request: Request) -> MeetingService:
    """Dependency to get MeetingService from app state."""
    service = getattr(request.app.state, "meeting_service", None)
    if service is None:
        raise HTTPException(status_code=500, detail="MeetingService not initialized")
    return service


def get_message_service(request: Request) -> MessageService:
    """Dependency to get MessageService from app state."""
    service = getattr(request.app.state, "message_service", None)
    if service is None:
        raise HTTPException(status_code=500, detail="MessageService not initialized")
    return service


@router.post("/messages", response_model=ApiResponse[ChatMessage], status_code=201)
async def ingest_message(
    message: ChatMessage,
    service: MessageService = Depends(get_message_service),
) -> ApiResponse[ChatMessage]:
    """Record a chat message and queue it for the text-message stream."""
    try:
        stored = await service.record_message(message)
    except SerializationError as e:
        raise HTTPException(status_code=500, detail=str(e)) from e
    return ApiResponse.ok(stored, message="Message recorded")


@router.post("/meetings", response_model=ApiResponse[Meeting], status_code=201)
async def start_meeting(
    meeting: Meeting,
    service: MeetingService = Depends(get_meeting_service),
) -> ApiResponse[Meeting]:
    """Start a meeting."""
    try:
        stored = await service.start_meeting(meeting)
    except SerializationError as e:
        raise HTTPException(status_code=500, detail=str(e)) from e
    return ApiResponse.ok(stored, message="Meeting started")


@router.post("/meetings/{meeting_id}/end", response_model=ApiResponse[Meeting])
async def end_meeting(
    meeting_id: str,
    service: MeetingService = Depends(get_meeting_service),
) -> ApiResponse[Meeting]:
    """End a running meeting."""
    try:
        meeting = await service.end_meeting(meeting_id)
    except MeetingNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except SerializationError as e:
        raise HTTPException(status_code=500, detail=str(e)) from e
    return ApiResponse.ok(meeting, message="Meeting ended")
