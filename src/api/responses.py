"""Common response envelope for the REST API."""

from datetime import UTC, datetime
from typing import Generic, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    """``{success, message, data, timestamp}`` wrapper."""

    success: bool = True
    message: str = "OK"
    data: T | None = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @classmethod
    def ok(cls, data: T, message: str = "OK") -> "ApiResponse[T]":
        return cls(success=True, message=message, data=data)
