# =============================================================================
# core/models/sync.py - Sync Result and Backup Schemas
# =============================================================================
# - SyncOutcome / SyncResult: which path a read or write took
# - BackupEnvelope: versioned export of the local dispatch data
# - migration summaries returned by the bulk operations
# =============================================================================

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, Literal, TypeVar

from pydantic import BaseModel, Field

from .base import CamelModel, UtcDatetime
from .dispatch import DispatchStorage, EmployeeLocation

T = TypeVar("T")


class SyncOutcome(str, Enum):
    """
    Provenance of a service result.

    - remote: the backend accepted the write / served the read
    - local-fallback: LocalStore served it (remote unconfigured, relation
      missing, or unreachable)
    """
    REMOTE = "remote"
    LOCAL_FALLBACK = "local-fallback"


@dataclass
class SyncResult(Generic[T]):
    """A value plus the path that produced it."""

    outcome: SyncOutcome
    value: T
    detail: str | None = None

    @property
    def is_remote(self) -> bool:
        return self.outcome is SyncOutcome.REMOTE

    @classmethod
    def remote(cls, value: T, detail: str | None = None) -> "SyncResult[T]":
        return cls(SyncOutcome.REMOTE, value, detail)

    @classmethod
    def local(cls, value: T, detail: str | None = None) -> "SyncResult[T]":
        return cls(SyncOutcome.LOCAL_FALLBACK, value, detail)

    def to_response(self) -> dict[str, Any]:
        """API envelope: outcome, detail and the value in local (camelCase) form."""
        return {"outcome": self.outcome.value, "detail": self.detail, "data": to_jsonable(self.value)}


def to_jsonable(value: Any) -> Any:
    if isinstance(value, CamelModel):
        return value.to_local()
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, (list, tuple)):
        return [to_jsonable(item) for item in value]
    if isinstance(value, dict):
        return {key: to_jsonable(item) for key, item in value.items()}
    return value


# =============================================================================
# Backup
# =============================================================================

class BackupEnvelope(CamelModel):
    """
    Versioned export of the local dispatch collections.

    Example:
        {
            "version": "v1",
            "exportedAt": "2026-03-01T09:00:00Z",
            "data": {"jobs": [...], "employees": [...], "schedules": [], "customerProfiles": []},
            "employeeLocations": {"emp-1": {...}}
        }
    """

    version: Literal["v1"] = "v1"
    exported_at: UtcDatetime
    data: DispatchStorage
    employee_locations: dict[str, EmployeeLocation] | None = None


# =============================================================================
# Bulk Operation Summaries
# =============================================================================

class MigrationCounts(BaseModel):
    """Rows pushed by migrate_local_to_remote, per table."""
    employees: int = 0
    customer_profiles: int = 0
    jobs: int = 0
    employee_locations: int = 0


class AssetBackfillSummary(BaseModel):
    """Outcome of a resumable inline-image backfill."""
    scanned: int = 0
    migrated: int = 0
    unchanged: int = 0
    uploaded: int = 0
    failed: list[str] = Field(default_factory=list)
