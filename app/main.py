# =============================================================================
# app/main.py - FastAPI Application Entry Point
# =============================================================================
# This is the main entry point for the Sparkery Sync API.
# It configures the FastAPI application with middleware, routers, and handlers.
#
# Usage:
#   uvicorn app.main:app --reload
# =============================================================================

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from app.config import settings
from app.dependencies import get_runtime_config
from app.exceptions import (
    SparkerySyncException,
    sparkery_exception_handler,
    validation_exception_handler,
)
from app.routers import backup, config, dispatch, health, inspections

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Logs the environment and whether a remote backend is configured. Nothing
    needs tearing down: HTTP clients are opened per request.
    """
    logger.info(f"Starting Sparkery Sync API in {settings.ENVIRONMENT} mode")
    logger.info(f"CORS origins: {settings.cors_origins_list}")
    if get_runtime_config().is_configured:
        logger.info("Remote backend configured, writes go remote first")
    else:
        logger.warning("Remote backend not configured, running local-only")

    yield

    logger.info("Shutting down Sparkery Sync API")


# Create FastAPI application
app = FastAPI(
    title="Sparkery Sync API",
    description="""
## Local-first dispatch and inspection sync

Every operation tries the remote backend first and falls back to the local
store when the backend is unconfigured, unreachable or missing a table.
Responses say which path was taken:

```json
{"outcome": "remote", "detail": null, "data": {...}}
{"outcome": "local-fallback", "detail": "relation missing: dispatch_jobs", "data": {...}}
```

### Quick Start

```bash
# Point the service at a backend (optional)
curl -X PUT http://localhost:8000/api/v1/config/remote \\
  -H "Content-Type: application/json" \\
  -d '{"url": "https://project.supabase.co", "anonKey": "..."}'

# Create a job
curl -X POST http://localhost:8000/api/v1/dispatch/jobs \\
  -H "Content-Type: application/json" \\
  -d '{"title": "Deep clean", "serviceType": "regular", "scheduledDate": "2024-03-06",
       "scheduledStartTime": "09:00", "scheduledEndTime": "11:00"}'
```
""",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
    openapi_tags=[
        {
            "name": "Config",
            "description": "Runtime remote backend configuration",
        },
        {
            "name": "Dispatch",
            "description": "Jobs, employees, schedules, customer profiles and locations",
        },
        {
            "name": "Inspections",
            "description": "Cleaning inspections, property templates and inspection employees",
        },
        {
            "name": "Backup",
            "description": "Export and import of local dispatch data",
        },
        {
            "name": "Health",
            "description": "API health and readiness checks",
        },
    ],
)


# =============================================================================
# Middleware
# =============================================================================

# CORS middleware - allows cross-origin requests
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list if settings.is_production else ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# Exception Handlers
# =============================================================================

@app.exception_handler(SparkerySyncException)
async def handle_sparkery_exception(request: Request, exc: SparkerySyncException):
    """Handle custom sync layer exceptions."""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
    return await sparkery_exception_handler(request, exc)


@app.exception_handler(ValidationError)
async def handle_validation_error(request: Request, exc: ValidationError):
    """Handle model validation errors raised below the request layer."""
    return await validation_exception_handler(request, exc)


@app.exception_handler(Exception)
async def handle_general_exception(request: Request, exc: Exception):
    """Handle unexpected exceptions."""
    logger.exception(f"Unexpected error: {exc}")
    return JSONResponse(
        status_code=500,
        content={
            "detail": "An unexpected error occurred",
            "code": "INTERNAL_ERROR",
        }
    )


# =============================================================================
# Routers
# =============================================================================

# Health check endpoints
app.include_router(
    health.router,
    prefix="/api/v1",
    tags=["Health"]
)

# Runtime configuration endpoints
app.include_router(
    config.router,
    prefix="/api/v1/config",
    tags=["Config"]
)

# Dispatch endpoints
app.include_router(
    dispatch.router,
    prefix="/api/v1/dispatch",
    tags=["Dispatch"]
)

# Cleaning inspection endpoints
app.include_router(
    inspections.router,
    prefix="/api/v1/inspections",
    tags=["Inspections"]
)

# Backup endpoints
app.include_router(
    backup.router,
    prefix="/api/v1/dispatch/backup",
    tags=["Backup"]
)


# =============================================================================
# Root Endpoint
# =============================================================================

@app.get("/")
async def root():
    """Root endpoint - redirects to docs."""
    return {
        "message": "Sparkery Sync API",
        "docs": "/docs",
        "health": "/api/v1/health",
    }
