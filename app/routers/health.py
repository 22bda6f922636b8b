# =============================================================================
# app/routers/health.py - Health Check Endpoints
# =============================================================================
# Provides health check endpoints for monitoring and load balancers.
# Readiness reports the remote backend and the local store separately: a
# service with an unreachable backend is degraded, not down, because every
# operation can still fall back to the local store.
# =============================================================================

from datetime import datetime, timezone

from fastapi import APIRouter
from pydantic import BaseModel

from app.config import settings
from app.dependencies import LocalStoreDep, RestClientDep
from app.exceptions import SparkerySyncException

router = APIRouter()

READINESS_PROBE_KEY = "readiness-probe"


# =============================================================================
# Response Models
# =============================================================================

class HealthResponse(BaseModel):
    """Basic health check response."""
    status: str
    timestamp: str
    environment: str
    version: str


class ChecksResponse(BaseModel):
    """Individual dependency checks."""
    remote: str
    local_store: str


class ReadinessResponse(BaseModel):
    """Readiness check response."""
    status: str
    checks: ChecksResponse
    timestamp: str


class LivenessResponse(BaseModel):
    """Liveness check response."""
    status: str
    timestamp: str


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


# =============================================================================
# Endpoints
# =============================================================================

@router.get("/health", response_model=HealthResponse)
async def health_check():
    """
    Health check endpoint.

    Returns basic health status for load balancers and monitoring.
    """
    return HealthResponse(
        status="healthy",
        timestamp=_now(),
        environment=settings.ENVIRONMENT,
        version="1.0.0",
    )


@router.get("/health/ready", response_model=ReadinessResponse)
async def readiness_check(client: RestClientDep, store: LocalStoreDep):
    """
    Readiness check endpoint.

    - remote: "not configured", "healthy" or "unhealthy: <reason>"
    - local_store: "healthy" when a probe document can be written
    """
    checks = ChecksResponse(remote="not configured", local_store="unknown")

    if client.is_configured:
        try:
            await client.select_one("dispatch_employees", "__readiness__")
            checks.remote = "healthy"
        except SparkerySyncException as e:
            checks.remote = f"unhealthy: {e.code.lower()}"

    if await store.save(READINESS_PROBE_KEY, {"checkedAt": _now()}):
        checks.local_store = "healthy"
    else:
        checks.local_store = "unhealthy: write failed"

    ready = checks.local_store == "healthy"
    remote_ok = checks.remote in ("healthy", "not configured")

    return ReadinessResponse(
        status="ready" if ready and remote_ok else ("degraded" if ready else "unavailable"),
        checks=checks,
        timestamp=_now(),
    )


@router.get("/health/live", response_model=LivenessResponse)
async def liveness_check():
    """
    Liveness check endpoint.

    Returns whether the service process is alive.
    """
    return LivenessResponse(
        status="alive",
        timestamp=_now(),
    )
