"""API router aggregation."""

from fastapi import APIRouter

from src.api.dashboard import router as dashboard_router
from src.api.health import router as health_router
from src.api.ingest import router as ingest_router
from src.api.meetings import router as meetings_router
from src.api.websocket import router as websocket_router

API_PREFIX = "/api/v1"

api_router = APIRouter()
api_router.include_router(health_router)
# Result read API and dashboard
api_router.include_router(meetings_router, prefix=API_PREFIX)
api_router.include_router(dashboard_router, prefix=API_PREFIX)
# Upstream producers writing through the outbox
api_router.include_router(ingest_router, prefix=API_PREFIX)
# Live push channel
api_router.include_router(websocket_router)
