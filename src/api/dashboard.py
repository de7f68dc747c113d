"""Dashboard statistics over the in-memory results."""

from fastapi import APIRouter, Depends

from src.api.meetings import get_result_store
from src.api.responses import ApiResponse
from src.results.schemas import ResultStatistics
from src.results.store import ResultStore

router = APIRouter(prefix="/dashboard", tags=["dashboard"])


@router.get("/stats", response_model=ApiResponse[ResultStatistics])
async def get_stats(
    store: ResultStore = Depends(get_result_store),
) -> ApiResponse[ResultStatistics]:
    """Counts by result kind and by platform."""
    return ApiResponse.ok(store.statistics())
