# =============================================================================
# core/models/dispatch.py - Dispatch (Scheduling) Schemas
# =============================================================================
# These models define the dispatch domain:
# - Job: a unit of scheduled cleaning work
# - Employee / EmployeeLocation / EmployeeSchedule: the workforce
# - CustomerProfile: reusable billing/service template, optionally recurring
# - DispatchStorage: the single local document holding the collections
#
# Remote tables: dispatch_jobs, dispatch_employees, dispatch_customer_profiles,
# dispatch_employee_locations. Schedules are local-only.
# =============================================================================

from __future__ import annotations

from datetime import date
from enum import Enum
from typing import Any

from pydantic import Field, field_validator, model_validator

from .base import CamelModel, OptionalText, UtcDatetime, parse_items


class ServiceType(str, Enum):
    """Kind of cleaning service a job or skill refers to."""
    BOND = "bond"
    AIRBNB = "airbnb"
    REGULAR = "regular"
    COMMERCIAL = "commercial"


class PropertyType(str, Enum):
    APARTMENT = "apartment"
    TOWNHOUSE = "townhouse"
    HOUSE = "house"


class JobStatus(str, Enum):
    """
    Job lifecycle.

    Flow: pending -> assigned -> in_progress -> completed
    Any state may move to cancelled.
    """
    PENDING = "pending"
    ASSIGNED = "assigned"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class EmployeeStatus(str, Enum):
    AVAILABLE = "available"
    OFF = "off"
    BUSY = "busy"


class LocationSource(str, Enum):
    GPS = "gps"
    MANUAL = "manual"
    MOBILE = "mobile"


class ScheduleStatus(str, Enum):
    AVAILABLE = "available"
    ASSIGNED = "assigned"
    UNAVAILABLE = "unavailable"
    OFF = "off"


TIME_PATTERN = r"^\d{2}:\d{2}$"

# EmployeeSchedule has a field called "date"
ScheduleDate = date


# =============================================================================
# Jobs
# =============================================================================

class JobFields(CamelModel):
    """Fields shared by Job and the create payload."""

    title: str = Field(..., min_length=1)
    description: OptionalText = None
    notes: OptionalText = None
    image_urls: list[str] | None = None
    customer_profile_id: OptionalText = None
    customer_name: OptionalText = None
    customer_address: OptionalText = None
    customer_phone: OptionalText = None
    service_type: ServiceType
    property_type: PropertyType | None = None
    estimated_duration_hours: float | None = Field(default=None, ge=0)
    priority: int = Field(default=3, ge=1, le=5)
    scheduled_date: date
    scheduled_start_time: str = Field(..., pattern=TIME_PATTERN)
    scheduled_end_time: str = Field(..., pattern=TIME_PATTERN)


class CreateJobPayload(JobFields):
    """
    Input for creating a job manually.

    Example:
        {
            "title": "Bond clean - Unit 12",
            "serviceType": "bond",
            "priority": 2,
            "scheduledDate": "2026-02-20",
            "scheduledStartTime": "09:00",
            "scheduledEndTime": "12:00"
        }
    """


class Job(JobFields):
    """A scheduled unit of work."""

    id: str = Field(..., min_length=1)
    status: JobStatus = JobStatus.PENDING
    assigned_employee_ids: list[str] | None = None
    created_at: UtcDatetime
    updated_at: UtcDatetime

    @model_validator(mode="after")
    def _updated_not_before_created(self) -> "Job":
        if self.updated_at < self.created_at:
            self.updated_at = self.created_at
        return self

    def to_row(self) -> dict[str, Any]:
        """Row for dispatch_jobs."""
        return self.model_dump(mode="json")

    @property
    def schedule_key(self) -> tuple[str, str]:
        return (self.scheduled_date.isoformat(), self.scheduled_start_time)


class UpdateJobPayload(CamelModel):
    """Partial update. Only fields explicitly set are applied."""

    title: str | None = Field(default=None, min_length=1)
    description: OptionalText = None
    notes: OptionalText = None
    image_urls: list[str] | None = None
    customer_profile_id: OptionalText = None
    customer_name: OptionalText = None
    customer_address: OptionalText = None
    customer_phone: OptionalText = None
    service_type: ServiceType | None = None
    property_type: PropertyType | None = None
    estimated_duration_hours: float | None = Field(default=None, ge=0)
    status: JobStatus | None = None
    priority: int | None = Field(default=None, ge=1, le=5)
    scheduled_date: date | None = None
    scheduled_start_time: str | None = Field(default=None, pattern=TIME_PATTERN)
    scheduled_end_time: str | None = Field(default=None, pattern=TIME_PATTERN)
    assigned_employee_ids: list[str] | None = None

    def changes(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True)


# =============================================================================
# Employees
# =============================================================================

class EmployeeLocation(CamelModel):
    """Last reported position of an employee. One per employee, overwritten."""

    employee_id: str = Field(..., min_length=1)
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)
    accuracy_m: float | None = Field(default=None, ge=0)
    source: LocationSource = LocationSource.MOBILE
    label: OptionalText = None
    updated_at: UtcDatetime

    def to_row(self) -> dict[str, Any]:
        """Row for dispatch_employee_locations."""
        return self.model_dump(mode="json")


class ReportLocationPayload(CamelModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)
    accuracy_m: float | None = Field(default=None, ge=0)
    source: LocationSource = LocationSource.MOBILE
    label: OptionalText = None


class EmployeeFields(CamelModel):
    name: str = Field(..., min_length=1)
    name_cn: OptionalText = Field(default=None, alias="nameCN")
    phone: OptionalText = None
    skills: list[ServiceType] = Field(default_factory=list)
    status: EmployeeStatus = EmployeeStatus.AVAILABLE

    @field_validator("skills", mode="before")
    @classmethod
    def _null_skills(cls, value: Any) -> Any:
        return [] if value is None else value


class UpsertEmployeePayload(EmployeeFields):
    """Create (no id) or replace (with id) an employee."""

    id: OptionalText = None


class Employee(EmployeeFields):
    """A worker that can be assigned to jobs."""

    id: str = Field(..., min_length=1)
    last_location: EmployeeLocation | None = None

    def to_row(self) -> dict[str, Any]:
        """Row for dispatch_employees (location lives in its own table)."""
        return self.model_dump(mode="json", exclude={"last_location"})


class EmployeeSchedule(CamelModel):
    """Availability slot for an employee. Local-only."""

    id: str = Field(..., min_length=1)
    employee_id: str
    date: ScheduleDate
    time_start: str = Field(..., pattern=TIME_PATTERN)
    time_end: str = Field(..., pattern=TIME_PATTERN)
    status: ScheduleStatus = ScheduleStatus.AVAILABLE


# =============================================================================
# Customer Profiles
# =============================================================================

class CustomerProfileFields(CamelModel):
    name: str = Field(..., min_length=1)
    address: OptionalText = None
    phone: OptionalText = None
    default_job_title: OptionalText = None
    default_description: OptionalText = None
    default_notes: OptionalText = None
    recurring_enabled: bool | None = None
    recurring_weekday: int | None = Field(default=None, ge=1, le=7)
    recurring_weekdays: list[int] | None = None
    recurring_start_time: str | None = Field(default=None, pattern=TIME_PATTERN)
    recurring_end_time: str | None = Field(default=None, pattern=TIME_PATTERN)
    recurring_service_type: ServiceType | None = None
    recurring_priority: int | None = Field(default=None, ge=1, le=5)

    @field_validator("recurring_weekdays")
    @classmethod
    def _weekdays_in_range(cls, value: list[int] | None) -> list[int] | None:
        if value is None:
            return None
        for day in value:
            if not 1 <= day <= 7:
                raise ValueError(f"weekday must be between 1 and 7, got {day}")
        return value

    @field_validator("recurring_start_time", "recurring_end_time", mode="before")
    @classmethod
    def _blank_time(cls, value: Any) -> Any:
        return None if isinstance(value, str) and not value.strip() else value


class UpsertCustomerProfilePayload(CustomerProfileFields):
    id: OptionalText = None


class CustomerProfile(CustomerProfileFields):
    """A reusable customer template; recurring profiles feed the job generator."""

    id: str = Field(..., min_length=1)
    created_at: UtcDatetime
    updated_at: UtcDatetime

    @property
    def effective_weekdays(self) -> list[int]:
        """Explicit weekday list, else the legacy single weekday, else nothing."""
        if self.recurring_weekdays:
            return list(self.recurring_weekdays)
        if self.recurring_weekday:
            return [self.recurring_weekday]
        return []

    def to_row(self) -> dict[str, Any]:
        """Row for dispatch_customer_profiles."""
        return self.model_dump(mode="json")


# =============================================================================
# Local Document
# =============================================================================

DEFAULT_EMPLOYEES: list[dict[str, Any]] = [
    {
        "id": "emp-1",
        "name": "Alex Chen",
        "nameCN": "陈安",
        "phone": "0400 000 001",
        "skills": ["bond", "airbnb", "regular"],
        "status": "available",
    },
    {
        "id": "emp-2",
        "name": "Mia Zhang",
        "nameCN": "张米娅",
        "phone": "0400 000 002",
        "skills": ["bond", "regular", "commercial"],
        "status": "available",
    },
    {
        "id": "emp-3",
        "name": "Leo Wang",
        "nameCN": "王乐",
        "phone": "0400 000 003",
        "skills": ["airbnb", "commercial"],
        "status": "off",
    },
]


def default_dispatch_storage() -> dict[str, Any]:
    """Seed for the dispatch document."""
    return {
        "jobs": [],
        "employees": [dict(employee) for employee in DEFAULT_EMPLOYEES],
        "schedules": [],
        "customerProfiles": [],
    }


class DispatchStorage(CamelModel):
    """The local dispatch document: every dispatch collection in one JSON value."""

    jobs: list[Job] = Field(default_factory=list)
    employees: list[Employee] = Field(default_factory=list)
    schedules: list[EmployeeSchedule] = Field(default_factory=list)
    customer_profiles: list[CustomerProfile] = Field(default_factory=list)

    @classmethod
    def from_local(cls, raw: Any) -> "DispatchStorage":
        """
        Tolerant parse of the stored document.

        Missing collections fall back to their seeds (employees to the default
        roster); malformed entries are skipped.
        """
        if not isinstance(raw, dict):
            raw = default_dispatch_storage()
        employees = raw.get("employees")
        if not isinstance(employees, list):
            employees = DEFAULT_EMPLOYEES
        return cls(
            jobs=parse_items(Job, raw.get("jobs"), source="local"),
            employees=parse_items(Employee, employees, source="local"),
            schedules=parse_items(EmployeeSchedule, raw.get("schedules"), source="local"),
            customer_profiles=parse_items(CustomerProfile, raw.get("customerProfiles"), source="local"),
        )

    def to_local(self) -> dict[str, Any]:
        data = super().to_local()
        for employee in data.get("employees", []):
            employee.pop("lastLocation", None)
        return data
