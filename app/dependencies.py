# =============================================================================
# app/dependencies.py - Shared Dependencies
# =============================================================================
# FastAPI dependency injection for shared resources.
# These are injected into route handlers using Depends().
#
# Every provider is cached, so the process shares one RuntimeConfig, one
# LocalStore and one set of services (the inspection session cache lives on
# the InspectionService instance). Tests swap them via app.dependency_overrides.
# =============================================================================

from functools import lru_cache
from typing import Annotated

from fastapi import Depends

from app.config import RuntimeConfig, settings
from core.services import LOCAL_SEEDS, upload_cache
from core.services.asset_migration import AssetMigrationPipeline
from core.services.dispatch_service import DispatchService
from core.services.inspection_service import InspectionService
from core.services.storage_service import StorageService
from lib.local_store import LocalStore
from lib.supabase_client import SupabaseRestClient


@lru_cache
def get_runtime_config() -> RuntimeConfig:
    """Process-wide remote configuration, seeded from settings."""
    return RuntimeConfig.from_settings(settings)


@lru_cache
def get_local_store() -> LocalStore:
    return LocalStore(
        settings.LOCAL_STORE_DIR,
        defaults=LOCAL_SEEDS,
        max_bytes=settings.LOCAL_STORE_MAX_BYTES,
    )


@lru_cache
def get_rest_client() -> SupabaseRestClient:
    return SupabaseRestClient(get_runtime_config(), timeout=settings.REMOTE_TIMEOUT_SECONDS)


@lru_cache
def get_asset_pipeline() -> AssetMigrationPipeline:
    storage = StorageService(get_rest_client(), settings.INSPECTION_ASSET_BUCKET)
    return AssetMigrationPipeline(storage, upload_cache)


@lru_cache
def get_inspection_service() -> InspectionService:
    return InspectionService(get_rest_client(), get_local_store(), assets=get_asset_pipeline())


@lru_cache
def get_dispatch_service() -> DispatchService:
    return DispatchService(
        get_rest_client(),
        get_local_store(),
        inspections=get_inspection_service(),
        assets=get_asset_pipeline(),
    )


# Type aliases for dependency injection
RuntimeConfigDep = Annotated[RuntimeConfig, Depends(get_runtime_config)]
LocalStoreDep = Annotated[LocalStore, Depends(get_local_store)]
RestClientDep = Annotated[SupabaseRestClient, Depends(get_rest_client)]
InspectionServiceDep = Annotated[InspectionService, Depends(get_inspection_service)]
DispatchServiceDep = Annotated[DispatchService, Depends(get_dispatch_service)]
