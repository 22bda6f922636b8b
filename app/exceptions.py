# =============================================================================
# app/exceptions.py - Error Taxonomy and Exception Handlers
# =============================================================================
# Centralized exception types for the sync layer plus the FastAPI handlers
# that render them. Every error carries a machine code, an HTTP status and,
# where one exists, a suggestion telling the caller how to fix it.
#
# Remote failures are split by what the ErrorClassifier recognised, so the
# services can pick a recovery path with plain `except` clauses:
#   RelationMissingError   -> local-only fallback
#   ColumnMissingError     -> strip optional column, retry once
#   ForeignKeyViolationError -> provision parent, retry once
# =============================================================================

from __future__ import annotations

from typing import Any, TYPE_CHECKING

from fastapi import Request
from fastapi.responses import JSONResponse

if TYPE_CHECKING:
    from lib.error_classifier import RemoteErrorInfo


class SparkerySyncException(Exception):
    """
    Base exception for the sync layer.

    All custom exceptions inherit from this class.
    Provides structured error responses with actionable suggestions.
    """

    def __init__(
        self,
        message: str,
        code: str = "SPARKERY_SYNC_ERROR",
        status_code: int = 500,
        suggestion: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code
        self.suggestion = suggestion
        self.details = details or {}

    def __str__(self) -> str:
        result = f"[{self.code}] {self.message}"
        if self.suggestion:
            result += f" Suggestion: {self.suggestion}"
        return result

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to API response dict."""
        result = {
            "detail": self.message,
            "code": self.code,
        }
        if self.suggestion:
            result["suggestion"] = self.suggestion
        if self.details:
            result["details"] = self.details
        return result


# =============================================================================
# Configuration
# =============================================================================

class ConfigurationMissingError(SparkerySyncException):
    """Raised when a remote-only operation runs without URL + key configured."""

    def __init__(self, operation: str = "remote request"):
        super().__init__(
            message=f"Supabase is not configured ({operation})",
            code="CONFIGURATION_MISSING",
            status_code=503,
            suggestion="Set SUPABASE_URL and SUPABASE_ANON_KEY or PUT /api/v1/config/remote",
            details={"operation": operation},
        )


# =============================================================================
# Remote Gateway Exceptions
# =============================================================================

class RemoteRequestError(SparkerySyncException):
    """
    A PostgREST/Storage request returned a non-2xx response.

    Subclasses are raised for failures the classifier recognised; this class
    itself means "unclassified" and always propagates.
    """

    default_code = "REMOTE_REQUEST_FAILED"
    default_status = 502
    default_suggestion: str | None = "Check the backend logs for the failing request"

    def __init__(
        self,
        status: int,
        body: str,
        info: "RemoteErrorInfo | None" = None,
        *,
        path: str | None = None,
    ):
        self.status = status
        self.body = body
        self.info = info
        self.path = path
        details: dict[str, Any] = {"status": status}
        if path:
            details["path"] = path
        if info is not None:
            details.update(info.as_details())
        super().__init__(
            message=f"Supabase request failed ({status}): {body or 'No details'}",
            code=self.default_code,
            status_code=self.default_status,
            suggestion=self.default_suggestion,
            details=details,
        )


class RelationMissingError(RemoteRequestError):
    """The requested table/view is not provisioned in the backend schema."""

    default_code = "RELATION_MISSING"
    default_status = 424
    default_suggestion = "Run the SQL setup scripts for this feature in the Supabase SQL editor"

    @property
    def relation(self) -> str | None:
        return self.info.relation if self.info else None


class ColumnMissingError(RemoteRequestError):
    """A column named in the payload does not exist (schema drift)."""

    default_code = "COLUMN_MISSING"
    default_status = 424
    default_suggestion = "Apply the latest schema migration to the backend"

    @property
    def column(self) -> str | None:
        return self.info.column if self.info else None


class ForeignKeyViolationError(RemoteRequestError):
    """The write references a parent row that does not exist remotely."""

    default_code = "FOREIGN_KEY_VIOLATION"
    default_status = 409
    default_suggestion = "Create the referenced parent record first"

    @property
    def parent_table(self) -> str | None:
        return self.info.parent_table if self.info else None

    @property
    def key_value(self) -> str | None:
        return self.info.key_value if self.info else None


class RemoteNotFoundError(RemoteRequestError):
    """The backend reported that the addressed row or resource is absent."""

    default_code = "REMOTE_NOT_FOUND"
    default_status = 404
    default_suggestion = None


class UnauthorizedError(RemoteRequestError):
    """The credential was rejected or lacks permission (RLS)."""

    default_code = "UNAUTHORIZED"
    default_status = 401
    default_suggestion = "Check SUPABASE_ANON_KEY and the table's row level security policies"


class NetworkFailureError(SparkerySyncException):
    """The backend could not be reached at all (DNS, connect, timeout)."""

    def __init__(self, error: str, path: str | None = None):
        super().__init__(
            message=f"Supabase is unreachable: {error}",
            code="NETWORK_FAILURE",
            status_code=502,
            suggestion="Check connectivity to SUPABASE_URL; local data is still served",
            details={"error": error, **({"path": path} if path else {})},
        )


# =============================================================================
# Local Persistence Exceptions
# =============================================================================

class LocalPersistenceError(SparkerySyncException):
    """Raised when the local store cannot persist and no remote write succeeded."""

    def __init__(self, key: str, reason: str = "save failed"):
        super().__init__(
            message=f"Local persistence unavailable for {key}: {reason}",
            code="LOCAL_PERSISTENCE_FAILURE",
            status_code=507,
            suggestion="Free local storage space or check LOCAL_STORE_DIR permissions",
            details={"key": key, "reason": reason},
        )


class BackupValidationError(SparkerySyncException):
    """Raised when a backup envelope cannot be imported."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(
            message=message,
            code="VALIDATION_FAILURE",
            status_code=400,
            suggestion="Import a file produced by the backup export endpoint",
            details=details,
        )


# =============================================================================
# Not Found Exceptions
# =============================================================================

class JobNotFoundError(SparkerySyncException):
    """Raised when a job ID doesn't exist locally or remotely."""

    def __init__(self, job_id: str):
        super().__init__(
            message=f"Job not found: {job_id}",
            code="JOB_NOT_FOUND",
            status_code=404,
            suggestion="Check that the job_id is correct and the job hasn't been deleted",
            details={"job_id": job_id},
        )


class EmployeeNotFoundError(SparkerySyncException):
    """Raised when an employee ID doesn't exist."""

    def __init__(self, employee_id: str):
        super().__init__(
            message=f"Employee not found: {employee_id}",
            code="EMPLOYEE_NOT_FOUND",
            status_code=404,
            details={"employee_id": employee_id},
        )


class InspectionNotFoundError(SparkerySyncException):
    """Raised when an inspection ID doesn't exist in any source."""

    def __init__(self, inspection_id: str):
        super().__init__(
            message=f"Inspection not found: {inspection_id}",
            code="INSPECTION_NOT_FOUND",
            status_code=404,
            details={"inspection_id": inspection_id},
        )


# =============================================================================
# Storage Exceptions
# =============================================================================

class StorageUploadError(SparkerySyncException):
    """Raised when an object upload to storage fails."""

    def __init__(self, path: str, error: str):
        super().__init__(
            message=f"Failed to upload object to storage: {error}",
            code="STORAGE_UPLOAD_ERROR",
            status_code=502,
            suggestion="Check that the storage bucket exists and accepts anon uploads",
            details={"path": path, "error": error},
        )


class AssetMigrationError(SparkerySyncException):
    """Raised when any image of a record fails to migrate; the record is left untouched."""

    def __init__(self, record_id: str, error: str):
        super().__init__(
            message=f"Asset migration aborted for {record_id}: {error}",
            code="ASSET_MIGRATION_FAILED",
            status_code=502,
            suggestion="Retry later; already-uploaded images are reused from the upload cache",
            details={"record_id": record_id, "error": error},
        )


# =============================================================================
# Exception Handlers
# =============================================================================

async def sparkery_exception_handler(
    request: Request,
    exc: SparkerySyncException
) -> JSONResponse:
    """
    Convert SparkerySyncException to JSON response.

    Returns structured error with:
    - detail: Human-readable message
    - code: Machine-readable error code
    - suggestion: How to fix (if available)
    - details: Additional context
    """
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict()
    )


async def validation_exception_handler(
    request: Request,
    exc: Exception
) -> JSONResponse:
    """
    Handle Pydantic validation errors.

    Converts validation errors to user-friendly messages.
    """
    return JSONResponse(
        status_code=422,
        content={
            "detail": "Validation error",
            "code": "VALIDATION_ERROR",
            "errors": str(exc)
        }
    )
