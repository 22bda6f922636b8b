# =============================================================================
# app/routers/inspections.py - Cleaning Inspection Endpoints
# =============================================================================
# Inspection records, property templates and inspection employees.
# Responses use the sync envelope ({"outcome", "detail", "data"}).
# =============================================================================

from fastapi import APIRouter

from app.dependencies import InspectionServiceDep
from core.models.inspection import CleaningInspection, InspectionEmployee, PropertyTemplate

router = APIRouter()


# =============================================================================
# Property Templates
# =============================================================================

@router.get("/property-templates")
async def list_property_templates(service: InspectionServiceDep):
    return (await service.load_property_templates()).to_response()


@router.put("/property-templates")
async def save_property_templates(templates: list[PropertyTemplate], service: InspectionServiceDep):
    """Replace the template collection; inline images are moved to storage when possible."""
    return (await service.save_property_templates(templates)).to_response()


@router.delete("/property-templates/{template_id}")
async def delete_property_template(template_id: str, service: InspectionServiceDep):
    return (await service.delete_property_template(template_id)).to_response()


# =============================================================================
# Inspection Employees
# =============================================================================

@router.get("/employees")
async def list_inspection_employees(service: InspectionServiceDep):
    return (await service.load_employees()).to_response()


@router.put("/employees")
async def save_inspection_employees(employees: list[InspectionEmployee], service: InspectionServiceDep):
    return (await service.save_employees(employees)).to_response()


# =============================================================================
# Asset Backfill
# =============================================================================

@router.post("/assets/migrate")
async def migrate_inspection_assets(service: InspectionServiceDep):
    """Move inline images of stored inspections and templates to storage."""
    summary = await service.migrate_stored_assets()
    return summary.model_dump()


# =============================================================================
# Inspections
# =============================================================================

@router.get("")
async def list_inspections(service: InspectionServiceDep):
    """All inspections, newest submission first."""
    return (await service.list_inspections()).to_response()


@router.post("", status_code=201)
async def submit_inspection(inspection: CleaningInspection, service: InspectionServiceDep):
    return (await service.submit_inspection(inspection)).to_response()


@router.get("/{inspection_id}")
async def get_inspection(inspection_id: str, service: InspectionServiceDep):
    return (await service.load_inspection(inspection_id)).to_response()


@router.delete("/{inspection_id}")
async def delete_inspection(inspection_id: str, service: InspectionServiceDep):
    return (await service.delete_inspection(inspection_id)).to_response()
