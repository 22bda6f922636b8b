# =============================================================================
# app/routers/dispatch.py - Dispatch Endpoints
# =============================================================================
# Jobs, employees, schedules, customer profiles, recurring generation and
# employee locations. Every response is a sync envelope:
#
#   {"outcome": "remote" | "local-fallback", "detail": ..., "data": ...}
#
# Bodies and data use the dashboard's camelCase keys.
# =============================================================================

from datetime import date

from fastapi import APIRouter, Query
from pydantic import Field, model_validator

from app.dependencies import DispatchServiceDep
from core.models.base import CamelModel
from core.models.dispatch import (
    CreateJobPayload,
    EmployeeSchedule,
    JobStatus,
    ReportLocationPayload,
    UpdateJobPayload,
    UpsertCustomerProfilePayload,
    UpsertEmployeePayload,
)

router = APIRouter()


# =============================================================================
# Request Models
# =============================================================================

class AssignJobRequest(CamelModel):
    """Employees to put on a job; an empty list unassigns everyone."""
    employee_ids: list[str] = Field(default_factory=list)


class JobStatusRequest(CamelModel):
    status: JobStatus


class WeekWindowRequest(CamelModel):
    """Week to generate recurring jobs for (week_start is weekday 1)."""
    week_start: date
    week_end: date

    @model_validator(mode="after")
    def _ordered(self) -> "WeekWindowRequest":
        if self.week_end < self.week_start:
            raise ValueError("weekEnd must not be before weekStart")
        return self


# =============================================================================
# Jobs
# =============================================================================

@router.get("/jobs")
async def list_jobs(
    service: DispatchServiceDep,
    week_start: date | None = Query(default=None, alias="weekStart"),
    week_end: date | None = Query(default=None, alias="weekEnd"),
):
    """Jobs, optionally limited to a date window."""
    return (await service.get_jobs(week_start, week_end)).to_response()


@router.post("/jobs", status_code=201)
async def create_job(payload: CreateJobPayload, service: DispatchServiceDep):
    return (await service.create_job(payload)).to_response()


@router.patch("/jobs/{job_id}")
async def update_job(job_id: str, patch: UpdateJobPayload, service: DispatchServiceDep):
    """Partial update; only the fields present in the body change."""
    return (await service.update_job(job_id, patch)).to_response()


@router.post("/jobs/{job_id}/assign")
async def assign_job(job_id: str, request: AssignJobRequest, service: DispatchServiceDep):
    return (await service.assign_job(job_id, request.employee_ids)).to_response()


@router.post("/jobs/{job_id}/status")
async def update_job_status(job_id: str, request: JobStatusRequest, service: DispatchServiceDep):
    return (await service.update_job_status(job_id, request.status)).to_response()


@router.delete("/jobs/{job_id}")
async def delete_job(job_id: str, service: DispatchServiceDep):
    return (await service.delete_job(job_id)).to_response()


@router.post("/recurring-jobs", status_code=201)
async def generate_recurring_jobs(request: WeekWindowRequest, service: DispatchServiceDep):
    """Create the week's jobs for every recurring customer profile."""
    result = await service.create_jobs_from_recurring_profiles(request.week_start, request.week_end)
    return result.to_response()


# =============================================================================
# Employees
# =============================================================================

@router.get("/employees")
async def list_employees(service: DispatchServiceDep):
    """Employees with their last known location."""
    return (await service.get_employees()).to_response()


@router.put("/employees")
async def upsert_employee(payload: UpsertEmployeePayload, service: DispatchServiceDep):
    return (await service.upsert_employee(payload)).to_response()


@router.delete("/employees/{employee_id}")
async def delete_employee(employee_id: str, service: DispatchServiceDep):
    """Delete an employee, unassigning it from jobs and dropping its location."""
    return (await service.delete_employee(employee_id)).to_response()


@router.put("/schedules")
async def upsert_schedule(schedule: EmployeeSchedule, service: DispatchServiceDep):
    return (await service.upsert_employee_schedule(schedule)).to_response()


@router.get("/employee-locations")
async def list_employee_locations(service: DispatchServiceDep):
    return (await service.get_employee_locations()).to_response()


@router.put("/employees/{employee_id}/location")
async def report_location(employee_id: str, payload: ReportLocationPayload, service: DispatchServiceDep):
    """Record an employee's current position."""
    return (await service.report_employee_location(employee_id, payload)).to_response()


# =============================================================================
# Customer Profiles
# =============================================================================

@router.get("/customer-profiles")
async def list_customer_profiles(service: DispatchServiceDep):
    return (await service.get_customer_profiles()).to_response()


@router.put("/customer-profiles")
async def upsert_customer_profile(payload: UpsertCustomerProfilePayload, service: DispatchServiceDep):
    return (await service.upsert_customer_profile(payload)).to_response()


@router.delete("/customer-profiles/{profile_id}")
async def delete_customer_profile(profile_id: str, service: DispatchServiceDep):
    return (await service.delete_customer_profile(profile_id)).to_response()


# =============================================================================
# Bulk Operations
# =============================================================================

@router.post("/migrate-to-remote")
async def migrate_to_remote(service: DispatchServiceDep):
    """Push all local dispatch data to the configured backend."""
    counts = await service.migrate_local_to_remote()
    return counts.model_dump(by_alias=True)


@router.post("/assets/migrate")
async def migrate_job_assets(service: DispatchServiceDep):
    """Move inline job images to object storage."""
    summary = await service.migrate_job_assets()
    return summary.model_dump()
