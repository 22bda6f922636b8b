# =============================================================================
# app/routers/config.py - Runtime Remote Configuration Endpoints
# =============================================================================
# Lets the dashboard point the sync layer at a backend (or detach it) while
# the process runs. Services resolve the configuration on every call, so a
# change applies to the next request. The key is never echoed back.
# =============================================================================

import logging

from fastapi import APIRouter
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from app.config import RuntimeConfig
from app.dependencies import RuntimeConfigDep

logger = logging.getLogger(__name__)

router = APIRouter()


# =============================================================================
# Request/Response Models
# =============================================================================

class RemoteConfigRequest(BaseModel):
    """New backend endpoint and anon key."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    url: str = Field(..., min_length=1, examples=["https://project.supabase.co"])
    anon_key: str = Field(..., min_length=1)


class RemoteConfigResponse(BaseModel):
    configured: bool
    url: str | None = None


def _describe(runtime: RuntimeConfig) -> RemoteConfigResponse:
    resolved = runtime.resolve()
    return RemoteConfigResponse(configured=resolved is not None, url=resolved.url if resolved else None)


# =============================================================================
# Endpoints
# =============================================================================

@router.get("/remote", response_model=RemoteConfigResponse)
async def get_remote_config(runtime: RuntimeConfigDep):
    """Whether a backend is configured, and which one."""
    return _describe(runtime)


@router.put("/remote", response_model=RemoteConfigResponse)
async def update_remote_config(request: RemoteConfigRequest, runtime: RuntimeConfigDep):
    """Point the sync layer at a backend."""
    runtime.update(request.url, request.anon_key)
    logger.info(f"Remote configuration updated, configured={runtime.is_configured}")
    return _describe(runtime)


@router.delete("/remote", response_model=RemoteConfigResponse)
async def clear_remote_config(runtime: RuntimeConfigDep):
    """Detach the backend; every operation becomes local-only."""
    runtime.clear()
    logger.info("Remote configuration cleared, running local-only")
    return _describe(runtime)
