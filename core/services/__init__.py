# =============================================================================
# core/services/__init__.py - Service Layer Exports
# =============================================================================
# LOCAL_SEEDS maps every local collection key to the factory of its default
# value; LocalStore writes the seed back the first time a key is read.
# =============================================================================

from core.models.dispatch import default_dispatch_storage

from .asset_migration import AssetMigrationPipeline, MigrationResult, UploadCache, upload_cache
from .dispatch_service import DISPATCH_STORAGE_KEY, EMPLOYEE_LOCATIONS_KEY, DispatchService
from .inspection_service import (
    INSPECTION_EMPLOYEES_KEY,
    INSPECTIONS_KEY,
    PROPERTY_TEMPLATES_KEY,
    InspectionService,
)
from .recurring import generate_recurring_jobs
from .remote_mirror import RemoteMirror, TableSpec, write_through
from .storage_service import StorageService

LOCAL_SEEDS = {
    DISPATCH_STORAGE_KEY: default_dispatch_storage,
    EMPLOYEE_LOCATIONS_KEY: dict,
    INSPECTIONS_KEY: list,
    PROPERTY_TEMPLATES_KEY: list,
    INSPECTION_EMPLOYEES_KEY: list,
}

__all__ = [
    "LOCAL_SEEDS",
    "AssetMigrationPipeline",
    "MigrationResult",
    "UploadCache",
    "upload_cache",
    "DispatchService",
    "InspectionService",
    "generate_recurring_jobs",
    "RemoteMirror",
    "TableSpec",
    "write_through",
    "StorageService",
]
