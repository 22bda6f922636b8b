# =============================================================================
# core/models/ - Pydantic Data Models
# =============================================================================
# This package contains Pydantic schemas for data validation:
# - base.py: CamelModel base class and shared field types
# - dispatch.py: Jobs, employees, locations, schedules, customer profiles
# - inspection.py: Cleaning inspections, property templates, inspection employees
# - sync.py: SyncResult, backup envelope, bulk operation summaries
#
# These models define the "contract" between API, local cache and backend.
# =============================================================================

# -----------------------------------------------------------------------------
# Base
# -----------------------------------------------------------------------------
from .base import CamelModel, OptionalText, UtcDatetime, parse_items

# -----------------------------------------------------------------------------
# Dispatch Models - Scheduling
# -----------------------------------------------------------------------------
from .dispatch import (
    DEFAULT_EMPLOYEES,
    CreateJobPayload,
    CustomerProfile,
    DispatchStorage,
    Employee,
    EmployeeLocation,
    EmployeeSchedule,
    EmployeeStatus,
    Job,
    JobStatus,
    LocationSource,
    PropertyType,
    ReportLocationPayload,
    ScheduleStatus,
    ServiceType,
    UpdateJobPayload,
    UpsertCustomerProfilePayload,
    UpsertEmployeePayload,
    default_dispatch_storage,
)

# -----------------------------------------------------------------------------
# Inspection Models - Cleaning inspection records
# -----------------------------------------------------------------------------
from .inspection import (
    CheckInOut,
    ChecklistItem,
    ChecklistTemplateItem,
    CleaningInspection,
    DamageReport,
    InspectionEmployee,
    InspectionStatus,
    PropertyTemplate,
    ReferenceImage,
    RoomSection,
    inspection_employee_from_row,
)

# -----------------------------------------------------------------------------
# Sync Models - Provenance and bulk operations
# -----------------------------------------------------------------------------
from .sync import (
    AssetBackfillSummary,
    BackupEnvelope,
    MigrationCounts,
    SyncOutcome,
    SyncResult,
)

__all__ = [
    # Base
    "CamelModel",
    "OptionalText",
    "UtcDatetime",
    "parse_items",
    # Dispatch
    "DEFAULT_EMPLOYEES",
    "CreateJobPayload",
    "CustomerProfile",
    "DispatchStorage",
    "Employee",
    "EmployeeLocation",
    "EmployeeSchedule",
    "EmployeeStatus",
    "Job",
    "JobStatus",
    "LocationSource",
    "PropertyType",
    "ReportLocationPayload",
    "ScheduleStatus",
    "ServiceType",
    "UpdateJobPayload",
    "UpsertCustomerProfilePayload",
    "UpsertEmployeePayload",
    "default_dispatch_storage",
    # Inspection
    "CheckInOut",
    "ChecklistItem",
    "ChecklistTemplateItem",
    "CleaningInspection",
    "DamageReport",
    "InspectionEmployee",
    "InspectionStatus",
    "PropertyTemplate",
    "ReferenceImage",
    "RoomSection",
    "inspection_employee_from_row",
    # Sync
    "AssetBackfillSummary",
    "BackupEnvelope",
    "MigrationCounts",
    "SyncOutcome",
    "SyncResult",
]
