"""Processed-result records produced by the AI stage.

Messages arrive as camelCase JSON. Only ``meetingId`` is required;
every other field is optional so partially-populated results are still
stored and pushed.
"""

from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


class ResultKind(StrEnum):
    """The three processed-result variants."""

    SUMMARY = "summary"
    TRANSCRIPTION = "transcription"
    ACTION_ITEMS = "action_items"


class ResultModel(BaseModel):
    """Shared config: camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
        extra="ignore",
    )


class ProcessedResult(ResultModel):
    """Fields common to every processed-result variant."""

    meeting_id: str = Field(min_length=1, description="Natural key of the meeting")
    channel_id: str | None = Field(default=None, description="Chat channel id")
    platform: str | None = Field(default=None, description="DISCORD, ZOOM, ...")
    processed_time: datetime | None = Field(
        default=None, description="When the AI stage finished"
    )

    @field_validator("meeting_id", "channel_id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> Any:
        # Upstream ids are sometimes numeric
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value

    @property
    def kind(self) -> ResultKind:
        raise NotImplementedError


class ProcessedSummary(ProcessedResult):
    """Meeting summary with key points, decisions and participants."""

    title: str | None = None
    summary: str | None = None
    key_points: list[str] = Field(default_factory=list)
    decisions: list[str] = Field(default_factory=list)
    participants: list[str] = Field(default_factory=list)
    meeting_start_time: datetime | None = None
    meeting_end_time: datetime | None = None
    duration_minutes: int | None = None

    @property
    def kind(self) -> ResultKind:
        return ResultKind.SUMMARY


class TranscriptionSegment(ResultModel):
    """One speaker turn in a transcript."""

    speaker_id: str | None = None
    speaker_name: str | None = None
    text: str = ""
    start_time_ms: int | None = None
    end_time_ms: int | None = None
    confidence: float | None = None


class ProcessedTranscription(ProcessedResult):
    """Full transcript text plus timestamped segments."""

    full_transcription: str | None = None
    segments: list[TranscriptionSegment] = Field(default_factory=list)
    language: str | None = None

    @field_validator("segments", mode="before")
    @classmethod
    def _segments_from_text(cls, value: Any) -> Any:
        # Older producers send plain strings instead of segment objects
        if isinstance(value, list):
            return [{"text": item} if isinstance(item, str) else item for item in value]
        return value if value is not None else []

    @property
    def kind(self) -> ResultKind:
        return ResultKind.TRANSCRIPTION


class ActionItemEntry(ResultModel):
    """A single task extracted from a meeting."""

    task: str
    assignee: str | None = None
    priority: str | None = Field(default=None, description="HIGH, MEDIUM, LOW")
    status: str | None = None
    due_date: str | None = None
    context: str | None = None


class ProcessedActionItem(ProcessedResult):
    """Tasks extracted from a meeting.

    Accepts either ``actionItems`` (strings or task objects) or the AI
    stage's ``taskItems`` shape (title/description/assignee/priority/...).
    """

    action_items: list[ActionItemEntry] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _normalize_task_items(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        task_items = data.get("taskItems")
        if "actionItems" in data or "action_items" in data or task_items is None:
            return data
        data = dict(data)
        data["actionItems"] = [
            entry
            for entry in (_task_item_to_entry(item) for item in task_items or [])
            if entry is not None
        ]
        return data

    @field_validator("action_items", mode="before")
    @classmethod
    def _entries_from_text(cls, value: Any) -> Any:
        if isinstance(value, list):
            return [{"task": item} if isinstance(item, str) else item for item in value]
        return value if value is not None else []

    @property
    def kind(self) -> ResultKind:
        return ResultKind.ACTION_ITEMS


def _task_item_to_entry(item: Any) -> dict[str, Any] | None:
    """Flatten a taskItems element into an ActionItemEntry payload."""
    if isinstance(item, str):
        return {"task": item} if item.strip() else None
    if not isinstance(item, dict):
        return None
    title = str(item.get("title") or "").strip()
    description = str(item.get("description") or "").strip()
    if not title and not description:
        return None
    task = f"{title}: {description}" if title and description else title or description
    return {
        "task": task,
        "assignee": item.get("assignee"),
        "priority": item.get("priority"),
        "status": item.get("status"),
        "dueDate": str(item["dueDate"]) if item.get("dueDate") is not None else None,
        "context": item.get("sourceText"),
    }


class ResultStatistics(ResultModel):
    """Dashboard counters over the in-memory results."""

    total_meetings: int = 0
    total_transcriptions: int = 0
    total_action_item_lists: int = 0
    total_action_items: int = 0
    discord_meetings: int = 0
    zoom_meetings: int = 0
    meetings_by_platform: dict[str, int] = Field(default_factory=dict)
