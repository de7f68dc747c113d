"""Health check endpoints for monitoring and orchestration."""

from datetime import UTC, datetime

from fastapi import APIRouter, Request
from pydantic import BaseModel

from src.config import settings

router = APIRouter(prefix="/health", tags=["health"])


class HealthResponse(BaseModel):
    """Response model for health check."""

    status: str
    timestamp: datetime
    version: str
    environment: str


class LivenessResponse(BaseModel):
    """Response model for liveness check."""

    status: str


class RelayStatus(BaseModel):
    """Outbox relay counters."""

    pending: int | None = None
    cycles: int = 0
    published: int = 0
    failed: int = 0
    aborted_cycles: int = 0
    last_error: str | None = None
    last_run_at: datetime | None = None


class ReadinessResponse(BaseModel):
    """Response model for readiness check."""

    status: str
    checks: dict[str, str]
    relay: RelayStatus | None = None
    sessions: int | None = None


@router.get("", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Basic health check endpoint."""
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now(UTC),
        version=settings.app_version,
        environment=settings.app_env,
    )


@router.get("/live", response_model=LivenessResponse)
async def liveness() -> LivenessResponse:
    """Liveness check - app is running."""
    return LivenessResponse(status="alive")


@router.get("/ready", response_model=ReadinessResponse)
async def readiness(request: Request) -> ReadinessResponse:
    """Readiness check - app can serve traffic.

    Checks:
    - API is responding
    - Database is connected and healthy
    - Message bus is running
    """
    checks: dict[str, str] = {"api": "ok"}

    # Check database if available
    db = getattr(request.app.state, "db", None)
    if db:
        try:
            is_healthy = await db.is_healthy()
            checks["database"] = "ok" if is_healthy else "failed"
        except Exception:
            checks["database"] = "failed"
    else:
        checks["database"] = "not_configured"

    bus = getattr(request.app.state, "bus", None)
    if bus:
        try:
            checks["bus"] = "ok" if await bus.is_healthy() else "failed"
        except Exception:
            checks["bus"] = "failed"
    else:
        checks["bus"] = "not_configured"

    relay_status = None
    relay = getattr(request.app.state, "relay", None)
    if relay:
        relay_status = RelayStatus(**relay.stats.model_dump())
        outbox_store = getattr(request.app.state, "outbox_store", None)
        if outbox_store and checks["database"] == "ok":
            try:
                relay_status.pending = await outbox_store.count_unprocessed()
            except Exception:
                relay_status.pending = None

    registry = getattr(request.app.state, "session_registry", None)
    sessions = registry.session_count if registry else None

    status = "ready" if all(v == "ok" for v in checks.values()) else "not_ready"
    return ReadinessResponse(
        status=status, checks=checks, relay=relay_status, sessions=sessions
    )
