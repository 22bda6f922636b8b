# =============================================================================
# core/services/inspection_service.py - Inspection Records Business Logic
# =============================================================================
# Dual-writes cleaning inspections, property templates and inspection
# employees to the backend (payload-in-jsonb tables) and the local cache.
#
# Inspections are cached locally only in their light form (inline images
# stripped, photo counts kept). The canonical record is held remotely and,
# for the lifetime of the service, in an in-memory session cache so a
# just-submitted record can be reopened with its images while offline.
# =============================================================================

from __future__ import annotations

import logging
from typing import Any, Callable, TypeVar

from pydantic import BaseModel, ValidationError

from app.exceptions import (
    AssetMigrationError,
    ConfigurationMissingError,
    InspectionNotFoundError,
    LocalPersistenceError,
    NetworkFailureError,
    RelationMissingError,
    SparkerySyncException,
)
from core.models.base import CamelModel, parse_items
from core.models.inspection import (
    CleaningInspection,
    InspectionEmployee,
    PropertyTemplate,
    inspection_employee_from_row,
)
from core.models.sync import AssetBackfillSummary, SyncResult
from core.services.asset_migration import (
    AssetMigrationPipeline,
    has_inline_images,
    strip_inline_images,
)
from core.services.remote_mirror import (
    NOT_CONFIGURED,
    RemoteMirror,
    TableSpec,
    read_remote,
    write_through,
)
from lib.local_store import LocalStore
from lib.merge import merge_collections
from lib.supabase_client import SupabaseRestClient
from lib.utils import find_by_id, put_by_id, without_id

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

# Local collection keys
INSPECTIONS_KEY = "archived-cleaning-inspections"
PROPERTY_TEMPLATES_KEY = "cleaning-inspection-properties"
INSPECTION_EMPLOYEES_KEY = "cleaning-inspection-employees"

INSPECTIONS_TABLE = TableSpec("cleaning_inspections", order="submitted_at.desc.nullslast,id.asc")
PROPERTY_TEMPLATES_TABLE = TableSpec("cleaning_inspection_properties", order="name.asc,id.asc")
INSPECTION_EMPLOYEES_TABLE = TableSpec("cleaning_inspection_employees", order="name.asc,id.asc")


def _parse_rows(rows: list[dict[str, Any]], from_row: Callable[[dict[str, Any]], ModelT], entity: str) -> list[ModelT]:
    parsed: list[ModelT] = []
    for row in rows:
        try:
            parsed.append(from_row(row))
        except ValidationError as e:
            logger.warning(f"Skipping invalid {entity} row {row.get('id')}: {e.error_count()} error(s)")
    return parsed


def _by_name(item: PropertyTemplate | InspectionEmployee) -> str:
    return item.name.lower()


class InspectionService:
    """
    Service for inspection records, property templates and inspection employees.

    Example:
        service = InspectionService(client, store, assets=pipeline)
        result = await service.submit_inspection(inspection)
        result.outcome  # SyncOutcome.REMOTE or SyncOutcome.LOCAL_FALLBACK
    """

    def __init__(
        self,
        client: SupabaseRestClient,
        store: LocalStore,
        assets: AssetMigrationPipeline | None = None,
    ):
        self.client = client
        self.store = store
        self.assets = assets
        self.inspections = RemoteMirror(client, INSPECTIONS_TABLE)
        self.templates = RemoteMirror(client, PROPERTY_TEMPLATES_TABLE)
        self.employees = RemoteMirror(client, INSPECTION_EMPLOYEES_TABLE)
        # Canonical (image-bearing) records seen during this session
        self._session: dict[str, CleaningInspection] = {}

    # =========================================================================
    # Inspections
    # =========================================================================

    async def submit_inspection(self, inspection: CleaningInspection) -> SyncResult[CleaningInspection]:
        """
        Save an inspection remotely and cache its light variant locally.

        When the remote is configured, inline images are migrated to storage
        first. If migration fails the record is submitted unmigrated; its
        images can be moved later with migrate_stored_assets().
        """
        record = inspection
        if self.assets is not None and self.client.is_configured:
            try:
                record = (await self.assets.migrate_inspection(inspection)).record
            except AssetMigrationError as e:
                logger.warning(f"Submitting inspection {inspection.id} with inline images: {e.message}")

        self._session[record.id] = record

        async def persist(_rows: Any) -> bool:
            return await self._cache_light(record)

        result = await write_through(
            lambda: self.inspections.upsert([record.to_row()]),
            persist,
            local_key=INSPECTIONS_KEY,
            entity=f"inspection {record.id}",
        )
        logger.info(f"Submitted inspection {record.id} ({result.outcome.value})")
        return SyncResult(result.outcome, record, result.detail)

    async def load_inspection(self, inspection_id: str) -> SyncResult[CleaningInspection]:
        """
        Load one inspection: remote first, then the session cache, then the
        light local copy.

        Raises:
            InspectionNotFoundError: No source knows the id
        """
        detail = NOT_CONFIGURED
        if self.client.is_configured:
            try:
                row = await self.inspections.get(inspection_id)
            except (RelationMissingError, NetworkFailureError) as e:
                logger.warning(f"Inspection {inspection_id}: remote read failed, trying caches")
                detail = e.code.lower()
            else:
                if row is not None:
                    record = CleaningInspection.from_row(row)
                    self._session[record.id] = record
                    return SyncResult.remote(record)
                detail = "not found remotely"

        if inspection_id in self._session:
            return SyncResult.local(self._session[inspection_id], f"{detail}; session cache")

        cached = find_by_id(await self._load_list(INSPECTIONS_KEY), inspection_id)
        if cached is None:
            raise InspectionNotFoundError(inspection_id)
        return SyncResult.local(CleaningInspection.model_validate(cached), detail)

    async def list_inspections(self) -> SyncResult[list[CleaningInspection]]:
        """All inspections, newest submission first, merged across sources."""
        local = parse_items(CleaningInspection, await self._load_list(INSPECTIONS_KEY), source="local")
        rows, detail = await read_remote(self.inspections, "inspections")
        if rows is None:
            return SyncResult.local(local, detail)

        remote = _parse_rows(rows, CleaningInspection.from_row, "inspection")
        merged = merge_collections(
            remote, local, key=lambda i: i.id, order_key=lambda i: i.freshness, descending=True
        )
        light = [strip_inline_images(record).to_local() for record in merged]
        if not await self.store.save(INSPECTIONS_KEY, light):
            logger.warning("Could not refresh the local inspection cache")
        return SyncResult.remote(merged)

    async def delete_inspection(self, inspection_id: str) -> SyncResult[str]:
        self._session.pop(inspection_id, None)

        async def persist(_rows: Any) -> bool:
            entries = await self._load_list(INSPECTIONS_KEY)
            return await self.store.save(INSPECTIONS_KEY, without_id(entries, inspection_id))

        result = await write_through(
            lambda: self.inspections.delete(inspection_id),
            persist,
            local_key=INSPECTIONS_KEY,
            entity=f"inspection {inspection_id}",
        )
        return SyncResult(result.outcome, inspection_id, result.detail)

    async def _cache_light(self, record: CleaningInspection) -> bool:
        entries = await self._load_list(INSPECTIONS_KEY)
        put_by_id(entries, strip_inline_images(record).to_local())
        return await self.store.save(INSPECTIONS_KEY, entries)

    # =========================================================================
    # Property Templates
    # =========================================================================

    async def load_property_templates(self) -> SyncResult[list[PropertyTemplate]]:
        local = parse_items(PropertyTemplate, await self._load_list(PROPERTY_TEMPLATES_KEY), source="local")
        rows, detail = await read_remote(self.templates, "property templates")
        if rows is None:
            return SyncResult.local(local, detail)

        remote = _parse_rows(rows, PropertyTemplate.from_row, "property template")
        merged = merge_collections(remote, local, key=lambda t: t.id, order_key=_by_name)
        await self._store_models(PROPERTY_TEMPLATES_KEY, merged)
        return SyncResult.remote(merged)

    async def save_property_templates(self, templates: list[PropertyTemplate]) -> SyncResult[list[PropertyTemplate]]:
        """
        Save the full template collection.

        Inline note/reference images are migrated first when possible. The
        local collection is replaced; remote rows are upserted.
        """
        prepared: list[PropertyTemplate] = []
        for template in templates:
            if self.assets is not None and self.client.is_configured:
                try:
                    template = (await self.assets.migrate_property_template(template)).record
                except AssetMigrationError as e:
                    logger.warning(f"Saving template {template.id} with inline images: {e.message}")
            prepared.append(template)

        async def persist(_rows: Any) -> bool:
            return await self._store_models(PROPERTY_TEMPLATES_KEY, prepared)

        if not prepared:
            await self._require_local(PROPERTY_TEMPLATES_KEY, persist)
            return SyncResult.local([], "nothing to send")

        result = await write_through(
            lambda: self.templates.upsert([t.to_row() for t in prepared]),
            persist,
            local_key=PROPERTY_TEMPLATES_KEY,
            entity="property templates",
        )
        return SyncResult(result.outcome, prepared, result.detail)

    async def delete_property_template(self, template_id: str) -> SyncResult[str]:
        async def persist(_rows: Any) -> bool:
            entries = await self._load_list(PROPERTY_TEMPLATES_KEY)
            return await self.store.save(PROPERTY_TEMPLATES_KEY, without_id(entries, template_id))

        result = await write_through(
            lambda: self.templates.delete(template_id),
            persist,
            local_key=PROPERTY_TEMPLATES_KEY,
            entity=f"property template {template_id}",
        )
        return SyncResult(result.outcome, template_id, result.detail)

    # =========================================================================
    # Inspection Employees
    # =========================================================================

    async def load_employees(self) -> SyncResult[list[InspectionEmployee]]:
        local = parse_items(InspectionEmployee, await self._load_list(INSPECTION_EMPLOYEES_KEY), source="local")
        rows, detail = await read_remote(self.employees, "inspection employees")
        if rows is None:
            return SyncResult.local(local, detail)

        remote = _parse_rows(rows, inspection_employee_from_row, "inspection employee")
        merged = merge_collections(remote, local, key=lambda e: e.id, order_key=_by_name)
        await self._store_models(INSPECTION_EMPLOYEES_KEY, merged)
        return SyncResult.remote(merged)

    async def save_employees(self, employees: list[InspectionEmployee]) -> SyncResult[list[InspectionEmployee]]:
        """Replace the local employee collection and upsert every row remotely."""
        async def persist(_rows: Any) -> bool:
            return await self._store_models(INSPECTION_EMPLOYEES_KEY, employees)

        if not employees:
            await self._require_local(INSPECTION_EMPLOYEES_KEY, persist)
            return SyncResult.local([], "nothing to send")

        result = await write_through(
            lambda: self.employees.upsert([e.to_row() for e in employees]),
            persist,
            local_key=INSPECTION_EMPLOYEES_KEY,
            entity="inspection employees",
        )
        return SyncResult(result.outcome, list(employees), result.detail)

    async def upsert_employee(self, employee: InspectionEmployee) -> SyncResult[InspectionEmployee]:
        async def persist(_rows: Any) -> bool:
            entries = await self._load_list(INSPECTION_EMPLOYEES_KEY)
            put_by_id(entries, employee.to_local(), front=False)
            return await self.store.save(INSPECTION_EMPLOYEES_KEY, entries)

        result = await write_through(
            lambda: self.employees.upsert([employee.to_row()]),
            persist,
            local_key=INSPECTION_EMPLOYEES_KEY,
            entity=f"inspection employee {employee.id}",
        )
        return SyncResult(result.outcome, employee, result.detail)

    async def delete_employee(self, employee_id: str) -> SyncResult[str]:
        async def persist(_rows: Any) -> bool:
            entries = await self._load_list(INSPECTION_EMPLOYEES_KEY)
            return await self.store.save(INSPECTION_EMPLOYEES_KEY, without_id(entries, employee_id))

        result = await write_through(
            lambda: self.employees.delete(employee_id),
            persist,
            local_key=INSPECTION_EMPLOYEES_KEY,
            entity=f"inspection employee {employee_id}",
        )
        return SyncResult(result.outcome, employee_id, result.detail)

    # =========================================================================
    # Asset Backfill
    # =========================================================================

    async def migrate_stored_assets(self) -> AssetBackfillSummary:
        """
        Move inline images of stored inspections and templates to storage.

        Resumable: a record that fails is reported and skipped, and a rerun
        only uploads what is still inline.

        Raises:
            ConfigurationMissingError: Remote not configured (uploads need storage)
        """
        if self.assets is None or not self.client.is_configured:
            raise ConfigurationMissingError("inspection asset backfill")

        summary = AssetBackfillSummary()

        for inspection in (await self.list_inspections()).value:
            summary.scanned += 1
            if not has_inline_images(inspection):
                summary.unchanged += 1
                continue
            try:
                result = await self.assets.migrate_inspection(inspection)
                summary.uploaded += result.uploaded_count
                await self.inspections.upsert([result.record.to_row()])
            except SparkerySyncException as e:
                logger.warning(f"Backfill skipped inspection {inspection.id}: {e.message}")
                summary.failed.append(inspection.id)
                continue
            self._session[result.record.id] = result.record
            await self._cache_light(result.record)
            summary.migrated += 1

        templates = (await self.load_property_templates()).value
        changed_templates: list[PropertyTemplate] = []
        for template in templates:
            summary.scanned += 1
            if not has_inline_images(template):
                summary.unchanged += 1
                changed_templates.append(template)
                continue
            try:
                result = await self.assets.migrate_property_template(template)
                summary.uploaded += result.uploaded_count
                await self.templates.upsert([result.record.to_row()])
            except SparkerySyncException as e:
                logger.warning(f"Backfill skipped property template {template.id}: {e.message}")
                summary.failed.append(template.id)
                changed_templates.append(template)
                continue
            changed_templates.append(result.record)
            summary.migrated += 1

        if summary.migrated:
            await self._store_models(PROPERTY_TEMPLATES_KEY, changed_templates)

        logger.info(
            f"Asset backfill: {summary.migrated} migrated, {summary.unchanged} unchanged, "
            f"{len(summary.failed)} failed, {summary.uploaded} uploaded"
        )
        return summary

    # =========================================================================
    # Local helpers
    # =========================================================================

    async def _load_list(self, key: str) -> list[dict[str, Any]]:
        value = await self.store.load(key)
        if not isinstance(value, list):
            return []
        return [entry for entry in value if isinstance(entry, dict)]

    async def _store_models(self, key: str, items: list[CamelModel]) -> bool:
        ok = await self.store.save(key, [item.to_local() for item in items])
        if not ok:
            logger.warning(f"Could not refresh local collection {key}")
        return ok

    @staticmethod
    async def _require_local(key: str, persist: Callable[[Any], Any]) -> None:
        if not await persist(None):
            raise LocalPersistenceError(key)
