# =============================================================================
# app/routers/backup.py - Dispatch Backup Endpoints
# =============================================================================
# Export and import of the local dispatch document as a versioned JSON file:
#
#   {"version": "v1", "exportedAt": "...", "data": {...}, "employeeLocations": {...}}
#
# Import replaces the local data only after the whole file validated.
# =============================================================================

import logging

from fastapi import APIRouter, Request
from fastapi.responses import Response

from app.dependencies import DispatchServiceDep

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/export")
async def export_backup(service: DispatchServiceDep):
    """Download the local dispatch data."""
    body = await service.export_backup()
    return Response(
        content=body,
        media_type="application/json",
        headers={"Content-Disposition": 'attachment; filename="sparkery-dispatch-backup.json"'},
    )


@router.post("/import")
async def import_backup(request: Request, service: DispatchServiceDep):
    """
    Replace the local dispatch data with an uploaded backup.

    The raw request body is the backup file. Returns per-collection counts.
    """
    raw = await request.body()
    storage = await service.import_backup(raw)
    return {
        "jobs": len(storage.jobs),
        "employees": len(storage.employees),
        "schedules": len(storage.schedules),
        "customerProfiles": len(storage.customer_profiles),
    }
