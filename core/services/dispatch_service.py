# =============================================================================
# core/services/dispatch_service.py - Dispatch Business Logic
# =============================================================================
# Jobs, employees, customer profiles, schedules and employee locations.
#
# Every write goes remote first and is echoed into the local dispatch
# document; when the backend is unconfigured, lacks the table or cannot be
# reached, the local document alone takes the write (local-fallback).
# Reads merge remote rows over the local cache and re-persist the result.
#
# Remote writes recover from two schema situations on their own:
# - a job/location referencing a parent the backend does not have yet: the
#   parent is provisioned from the local cache (or as a placeholder) and the
#   write is retried once
# - a backend without the recurring_weekdays column: the column is dropped
#   and the write retried once
# =============================================================================

from __future__ import annotations

import json
import logging
from datetime import date
from typing import Any, Awaitable, Callable, TypeVar

from pydantic import ValidationError

from app.exceptions import (
    BackupValidationError,
    ConfigurationMissingError,
    ForeignKeyViolationError,
    JobNotFoundError,
    LocalPersistenceError,
    NetworkFailureError,
    RelationMissingError,
    SparkerySyncException,
)
from core.models.base import CamelModel, parse_items
from core.models.dispatch import (
    DEFAULT_EMPLOYEES,
    CreateJobPayload,
    CustomerProfile,
    DispatchStorage,
    Employee,
    EmployeeLocation,
    EmployeeSchedule,
    Job,
    JobStatus,
    ReportLocationPayload,
    UpdateJobPayload,
    UpsertCustomerProfilePayload,
    UpsertEmployeePayload,
    default_dispatch_storage,
)
from core.models.inspection import InspectionEmployee
from core.models.sync import AssetBackfillSummary, BackupEnvelope, MigrationCounts, SyncResult
from core.services.asset_migration import AssetMigrationPipeline, has_inline_images
from core.services.inspection_service import InspectionService
from core.services.recurring import generate_recurring_jobs
from core.services.remote_mirror import (
    ProvisionParent,
    RemoteMirror,
    TableSpec,
    overlay_rows,
    read_remote,
    write_through,
)
from lib.local_store import LocalStore
from lib.merge import merge_collections, merge_mappings
from lib.supabase_client import SupabaseRestClient
from lib.utils import find_by_id, generate_id, put_by_id, utc_now, without_id

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=CamelModel)

# Local collection keys
DISPATCH_STORAGE_KEY = "sparkery_dispatch_storage_v1"
EMPLOYEE_LOCATIONS_KEY = "sparkery_dispatch_employee_locations_v1"

JOBS_TABLE = TableSpec("dispatch_jobs", order="scheduled_date.asc,scheduled_start_time.asc")
EMPLOYEES_TABLE = TableSpec("dispatch_employees", order="id.asc")
CUSTOMER_PROFILES_TABLE = TableSpec(
    "dispatch_customer_profiles",
    order="updated_at.desc.nullslast,id.asc",
    optional_columns=frozenset({"recurring_weekdays"}),
)
EMPLOYEE_LOCATIONS_TABLE = TableSpec("dispatch_employee_locations", key="employee_id", order="employee_id.asc")


def _in_window(job: Job, week_start: date | None, week_end: date | None) -> bool:
    if week_start is not None and job.scheduled_date < week_start:
        return False
    if week_end is not None and job.scheduled_date > week_end:
        return False
    return True


def _profile_order(profile: CustomerProfile) -> float:
    # Newest update first once the sort is reversed
    return profile.updated_at.timestamp()


def _as_inspection_employee(employee: Employee) -> InspectionEmployee:
    """Inspection-side view of a dispatch employee (Chinese name first)."""
    return InspectionEmployee(
        id=employee.id,
        name=employee.name_cn or employee.name,
        name_en=employee.name if employee.name_cn else None,
        phone=employee.phone,
    )


class DispatchService:
    """
    Service for dispatch scheduling data.

    Example:
        service = DispatchService(client, store, inspections=inspection_service)
        result = await service.get_jobs(week_start=date(2026, 3, 2), week_end=date(2026, 3, 8))
        for job in result.value:
            ...
    """

    def __init__(
        self,
        client: SupabaseRestClient,
        store: LocalStore,
        *,
        inspections: InspectionService | None = None,
        assets: AssetMigrationPipeline | None = None,
    ):
        self.client = client
        self.store = store
        self.inspections = inspections
        self.assets = assets
        self.jobs = RemoteMirror(client, JOBS_TABLE)
        self.employees = RemoteMirror(client, EMPLOYEES_TABLE)
        self.customer_profiles = RemoteMirror(client, CUSTOMER_PROFILES_TABLE)
        self.locations = RemoteMirror(client, EMPLOYEE_LOCATIONS_TABLE)

    # =========================================================================
    # Jobs
    # =========================================================================

    async def get_jobs(
        self,
        week_start: date | None = None,
        week_end: date | None = None,
    ) -> SyncResult[list[Job]]:
        """
        Jobs scheduled inside the optional [week_start, week_end] window,
        ordered by date then start time.
        """
        storage = await self._load_storage()
        filters: list[tuple[str, str]] = []
        if week_start is not None:
            filters.append(("scheduled_date", f"gte.{week_start.isoformat()}"))
        if week_end is not None:
            filters.append(("scheduled_date", f"lte.{week_end.isoformat()}"))

        rows, detail = await read_remote(self.jobs, "jobs", filters)
        local = [job for job in storage.jobs if _in_window(job, week_start, week_end)]
        if rows is None:
            ordered = merge_collections([], local, key=lambda j: j.id, order_key=lambda j: j.schedule_key)
            return SyncResult.local(ordered, detail)

        remote = parse_items(Job, rows, source="remote")
        merged = merge_collections(remote, local, key=lambda j: j.id, order_key=lambda j: j.schedule_key)

        storage.jobs = merge_collections(remote, storage.jobs, key=lambda j: j.id, order_key=lambda j: j.schedule_key)
        await self._refresh_storage(storage)
        return SyncResult.remote(merged)

    async def create_job(self, payload: CreateJobPayload) -> SyncResult[Job]:
        now = utc_now()
        job = Job(
            id=generate_id("job"),
            **payload.model_dump(),
            status=JobStatus.PENDING,
            assigned_employee_ids=[],
            created_at=now,
            updated_at=now,
        )
        result = await self._write_jobs([job], entity=f"job {job.id}")
        logger.info(f"Created job {job.id} ({result.outcome.value})")
        return SyncResult(result.outcome, result.value[0], result.detail)

    async def update_job(self, job_id: str, patch: UpdateJobPayload) -> SyncResult[Job]:
        """
        Apply a partial update.

        The current version is read from the backend when possible (falling
        back to the local copy); an existing remote row is PATCHed, otherwise
        the merged job is upserted.

        Raises:
            JobNotFoundError: The job exists in no source
        """
        storage = await self._load_storage()
        current = find_by_id(storage.jobs, job_id)
        remote_row = None
        if self.client.is_configured:
            try:
                remote_row = await self.jobs.get(job_id)
            except (RelationMissingError, NetworkFailureError):
                logger.debug(f"Job {job_id}: remote read unavailable, updating local copy")
        if remote_row is not None:
            current = Job.model_validate(remote_row)
        if current is None:
            raise JobNotFoundError(job_id)

        changes = patch.changes()
        updated = Job.model_validate(
            {**current.model_dump(), **changes, "id": job_id, "created_at": current.created_at, "updated_at": utc_now()}
        )
        if updated.status is JobStatus.ASSIGNED and not updated.assigned_employee_ids:
            updated.status = JobStatus.PENDING

        result = await self._write_jobs([updated], entity=f"job {job_id}", patch=remote_row is not None)
        return SyncResult(result.outcome, result.value[0], result.detail)

    async def assign_job(self, job_id: str, employee_ids: list[str]) -> SyncResult[Job]:
        """Set the assignees; an empty list sends the job back to pending."""
        status = JobStatus.ASSIGNED if employee_ids else JobStatus.PENDING
        return await self.update_job(
            job_id, UpdateJobPayload(assigned_employee_ids=list(employee_ids), status=status)
        )

    async def update_job_status(self, job_id: str, status: JobStatus) -> SyncResult[Job]:
        return await self.update_job(job_id, UpdateJobPayload(status=status))

    async def delete_job(self, job_id: str) -> SyncResult[str]:
        async def persist(_rows: Any) -> bool:
            storage = await self._load_storage()
            storage.jobs = without_id(storage.jobs, job_id)
            return await self._save_storage(storage)

        result = await write_through(
            self._remote(lambda: self.jobs.delete(job_id)),
            persist,
            local_key=DISPATCH_STORAGE_KEY,
            entity=f"job {job_id}",
        )
        return SyncResult(result.outcome, job_id, result.detail)

    async def _write_jobs(self, jobs: list[Job], *, entity: str, patch: bool = False) -> SyncResult[list[Job]]:
        provision = self._profile_provisioner(jobs)

        def apply(storage: DispatchStorage, saved: list[Job]) -> None:
            for job in reversed(saved):
                put_by_id(storage.jobs, job)

        async def remote() -> list[dict[str, Any]]:
            if patch:
                return await self.jobs.update(jobs[0].id, jobs[0].to_row(), provision_parent=provision)
            return await self.jobs.upsert([job.to_row() for job in jobs], provision_parent=provision)

        return await self._dual_write(jobs, self.jobs, remote, apply, entity=entity)

    def _profile_provisioner(self, jobs: list[Job]) -> ProvisionParent:
        """Provision the customer profile a job write was rejected for."""
        hints = {job.customer_profile_id: job.customer_name for job in jobs if job.customer_profile_id}

        async def provision(error: ForeignKeyViolationError) -> bool:
            profile_id = error.key_value if error.key_value in hints else None
            if profile_id is None and len(hints) == 1:
                profile_id = next(iter(hints))
            if profile_id is None:
                return False
            return await self._provision(
                error,
                self.customer_profiles,
                profile_id,
                lambda: self._local_profile_or_placeholder(profile_id, hints[profile_id]),
            )

        return provision

    # =========================================================================
    # Employees
    # =========================================================================

    async def get_employees(self) -> SyncResult[list[Employee]]:
        """Employees ordered by id, each with its last known location attached."""
        storage = await self._load_storage()
        rows, detail = await read_remote(self.employees, "employees")
        if rows is None:
            employees = sorted(storage.employees, key=lambda e: e.id)
            result = SyncResult.local(employees, detail)
        else:
            employees = merge_collections(parse_items(Employee, rows, source="remote"), storage.employees, key=lambda e: e.id)
            storage.employees = employees
            await self._refresh_storage(storage)
            result = SyncResult.remote(employees)

        locations = (await self.get_employee_locations()).value
        result.value = [
            employee.model_copy(update={"last_location": locations.get(employee.id)})
            for employee in result.value
        ]
        return result

    async def upsert_employee(self, payload: UpsertEmployeePayload) -> SyncResult[Employee]:
        """Create or replace an employee and mirror it to the inspection employees."""
        employee = Employee(id=payload.id or generate_id("emp"), **payload.model_dump(exclude={"id"}))

        def apply(storage: DispatchStorage, saved: list[Employee]) -> None:
            put_by_id(storage.employees, saved[0])

        result = await self._dual_write(
            [employee],
            self.employees,
            lambda: self.employees.upsert([employee.to_row()]),
            apply,
            entity=f"employee {employee.id}",
        )
        saved = result.value[0]
        if self.inspections is not None:
            try:
                await self.inspections.upsert_employee(_as_inspection_employee(saved))
            except SparkerySyncException as e:
                logger.warning(f"Employee {saved.id} saved but not mirrored to inspections: {e.message}")
        return SyncResult(result.outcome, saved, result.detail)

    async def delete_employee(self, employee_id: str) -> SyncResult[str]:
        """
        Delete an employee and everything hanging off it.

        Order: unassign from jobs, drop the location, delete the employee,
        remove the inspection-employee mirror.
        """
        for job in (await self.get_jobs()).value:
            assignees = job.assigned_employee_ids or []
            if employee_id not in assignees:
                continue
            # Status is kept; update_job only demotes an assigned job left without anyone
            remaining = [emp for emp in assignees if emp != employee_id]
            await self.update_job(job.id, UpdateJobPayload(assigned_employee_ids=remaining))

        async def drop_location(_rows: Any) -> bool:
            locations = await self._load_locations()
            locations.pop(employee_id, None)
            return await self._save_locations(locations)

        await write_through(
            self._remote(lambda: self.locations.delete(employee_id)),
            drop_location,
            local_key=EMPLOYEE_LOCATIONS_KEY,
            entity=f"location of {employee_id}",
        )

        async def persist(_rows: Any) -> bool:
            storage = await self._load_storage()
            storage.employees = without_id(storage.employees, employee_id)
            return await self._save_storage(storage)

        result = await write_through(
            self._remote(lambda: self.employees.delete(employee_id)),
            persist,
            local_key=DISPATCH_STORAGE_KEY,
            entity=f"employee {employee_id}",
        )

        if self.inspections is not None:
            try:
                await self.inspections.delete_employee(employee_id)
            except SparkerySyncException as e:
                logger.warning(f"Employee {employee_id} deleted but inspection mirror kept: {e.message}")

        logger.info(f"Deleted employee {employee_id} ({result.outcome.value})")
        return SyncResult(result.outcome, employee_id, result.detail)

    async def upsert_employee_schedule(self, schedule: EmployeeSchedule) -> SyncResult[EmployeeSchedule]:
        """Schedules are kept in the local document only."""
        storage = await self._load_storage()
        put_by_id(storage.schedules, schedule, front=False)
        if not await self._save_storage(storage):
            raise LocalPersistenceError(DISPATCH_STORAGE_KEY)
        return SyncResult.local(schedule, "local-only collection")

    # =========================================================================
    # Customer Profiles
    # =========================================================================

    async def get_customer_profiles(self) -> SyncResult[list[CustomerProfile]]:
        """Profiles, most recently updated first."""
        storage = await self._load_storage()
        rows, detail = await read_remote(self.customer_profiles, "customer profiles")
        if rows is None:
            local = merge_collections([], storage.customer_profiles, key=lambda p: p.id,
                                      order_key=_profile_order, descending=True)
            return SyncResult.local(local, detail)

        merged = merge_collections(
            parse_items(CustomerProfile, rows, source="remote"), storage.customer_profiles,
            key=lambda p: p.id, order_key=_profile_order, descending=True,
        )
        storage.customer_profiles = merged
        await self._refresh_storage(storage)
        return SyncResult.remote(merged)

    async def upsert_customer_profile(self, payload: UpsertCustomerProfilePayload) -> SyncResult[CustomerProfile]:
        storage = await self._load_storage()
        now = utc_now()
        profile_id = payload.id or generate_id("customer")
        existing = find_by_id(storage.customer_profiles, profile_id)
        profile = CustomerProfile(
            id=profile_id,
            **payload.model_dump(exclude={"id"}),
            created_at=existing.created_at if existing else now,
            updated_at=now,
        )

        def apply(storage: DispatchStorage, saved: list[CustomerProfile]) -> None:
            put_by_id(storage.customer_profiles, saved[0])

        result = await self._dual_write(
            [profile],
            self.customer_profiles,
            lambda: self.customer_profiles.upsert([profile.to_row()]),
            apply,
            entity=f"customer profile {profile_id}",
        )
        return SyncResult(result.outcome, result.value[0], result.detail)

    async def delete_customer_profile(self, profile_id: str) -> SyncResult[str]:
        """Delete a profile; jobs keep their copy of the customer fields but lose the link."""
        async def persist(_rows: Any) -> bool:
            storage = await self._load_storage()
            storage.customer_profiles = without_id(storage.customer_profiles, profile_id)
            for job in storage.jobs:
                if job.customer_profile_id == profile_id:
                    job.customer_profile_id = None
            return await self._save_storage(storage)

        result = await write_through(
            self._remote(lambda: self.customer_profiles.delete(profile_id)),
            persist,
            local_key=DISPATCH_STORAGE_KEY,
            entity=f"customer profile {profile_id}",
        )
        return SyncResult(result.outcome, profile_id, result.detail)

    async def create_jobs_from_recurring_profiles(self, week_start: date, week_end: date) -> SyncResult[list[Job]]:
        """Generate and save this week's jobs for every recurring profile."""
        profiles = await self.get_customer_profiles()
        existing = await self.get_jobs(week_start, week_end)
        created = generate_recurring_jobs(profiles.value, existing.value, week_start, week_end)
        if not created:
            return SyncResult(existing.outcome, [], existing.detail)
        return await self._write_jobs(created, entity=f"{len(created)} recurring job(s)")

    # =========================================================================
    # Employee Locations
    # =========================================================================

    async def get_employee_locations(self) -> SyncResult[dict[str, EmployeeLocation]]:
        local = await self._load_locations()
        rows, detail = await read_remote(self.locations, "employee locations")
        if rows is None:
            return SyncResult.local(local, detail)

        remote = {location.employee_id: location for location in parse_items(EmployeeLocation, rows, source="remote")}
        merged = merge_mappings(remote, local)
        if not await self._save_locations(merged):
            logger.warning("Could not refresh the local employee location cache")
        return SyncResult.remote(merged)

    async def report_employee_location(
        self,
        employee_id: str,
        payload: ReportLocationPayload,
    ) -> SyncResult[EmployeeLocation]:
        """
        Record an employee's current position (overwrites the previous one).

        If the backend does not know the employee yet, it is provisioned from
        the local roster (or as a placeholder) and the write retried once.
        """
        location = EmployeeLocation(employee_id=employee_id, **payload.model_dump(), updated_at=utc_now())

        async def provision(error: ForeignKeyViolationError) -> bool:
            return await self._provision(
                error, self.employees, employee_id, lambda: self._local_employee_or_placeholder(employee_id)
            )

        saved = location

        async def persist(rows: Any) -> bool:
            nonlocal saved
            if rows:
                saved = overlay_rows([location], rows, key="employee_id")[0]
            locations = await self._load_locations()
            locations[employee_id] = saved
            return await self._save_locations(locations)

        result = await write_through(
            self._remote(lambda: self.locations.upsert([location.to_row()], provision_parent=provision)),
            persist,
            local_key=EMPLOYEE_LOCATIONS_KEY,
            entity=f"location of {employee_id}",
        )
        return SyncResult(result.outcome, saved, result.detail)

    # =========================================================================
    # Bulk Operations
    # =========================================================================

    async def migrate_local_to_remote(self) -> MigrationCounts:
        """
        Push the whole local dispatch document to a newly configured backend.

        Parents go first (employees, profiles) so jobs and locations find
        them. A backend without the locations table is tolerated.

        Raises:
            ConfigurationMissingError: Remote not configured
        """
        if not self.client.is_configured:
            raise ConfigurationMissingError("migrate local data")

        storage = await self._load_storage()
        counts = MigrationCounts()

        if storage.employees:
            await self.employees.upsert([employee.to_row() for employee in storage.employees])
            counts.employees = len(storage.employees)
        if storage.customer_profiles:
            await self.customer_profiles.upsert([profile.to_row() for profile in storage.customer_profiles])
            counts.customer_profiles = len(storage.customer_profiles)
        if storage.jobs:
            await self.jobs.upsert(
                [job.to_row() for job in storage.jobs], provision_parent=self._profile_provisioner(storage.jobs)
            )
            counts.jobs = len(storage.jobs)

        locations = await self._load_locations()
        if locations:
            async def provision(error: ForeignKeyViolationError) -> bool:
                if not error.key_value:
                    return False
                return await self._provision(
                    error, self.employees, error.key_value,
                    lambda: self._local_employee_or_placeholder(error.key_value),
                )

            try:
                await self.locations.upsert(
                    [location.to_row() for location in locations.values()], provision_parent=provision
                )
                counts.employee_locations = len(locations)
            except RelationMissingError:
                logger.warning("Backend has no employee locations table, locations stay local")

        logger.info(f"Migrated local dispatch data to remote: {counts.model_dump()}")
        return counts

    async def export_backup(self) -> str:
        """Serialize the local dispatch document (and locations) as a v1 backup."""
        storage = await self._load_storage()
        locations = await self._load_locations()
        envelope = BackupEnvelope(
            exported_at=utc_now(),
            data=storage,
            employee_locations=locations or None,
        )
        return json.dumps(envelope.to_local(), ensure_ascii=False, indent=2)

    async def import_backup(self, raw_backup: str | bytes) -> DispatchStorage:
        """
        Replace the local dispatch document with a backup.

        Everything is validated before anything is written; missing
        collections fall back to their seeds.

        Raises:
            BackupValidationError: Unparsable JSON, no data object, or invalid records
            LocalPersistenceError: The validated backup could not be written
        """
        try:
            parsed = json.loads(raw_backup)
        except ValueError as e:
            raise BackupValidationError("Backup JSON format is invalid") from e

        if not isinstance(parsed, dict) or not isinstance(parsed.get("data"), dict):
            raise BackupValidationError("Backup JSON missing data field")
        version = parsed.get("version", "v1")
        if version != "v1":
            raise BackupValidationError(f"Unsupported backup version: {version}", {"version": version})

        data = parsed["data"]
        seeds = default_dispatch_storage()
        errors: list[str] = []
        collections: dict[str, list[Any]] = {}
        for field, alias, model in (
            ("jobs", "jobs", Job),
            ("employees", "employees", Employee),
            ("schedules", "schedules", EmployeeSchedule),
            ("customer_profiles", "customerProfiles", CustomerProfile),
        ):
            items = data.get(alias)
            if not isinstance(items, list):
                items = seeds[alias]
            collections[field] = self._validate_all(model, items, alias, errors)

        locations: dict[str, EmployeeLocation] | None = None
        raw_locations = parsed.get("employeeLocations")
        if isinstance(raw_locations, dict):
            validated = self._validate_all(EmployeeLocation, list(raw_locations.values()), "employeeLocations", errors)
            locations = {location.employee_id: location for location in validated}

        if errors:
            raise BackupValidationError("Backup JSON contains invalid records", {"errors": errors[:20]})

        storage = DispatchStorage(**collections)
        # Locations first: if the main document then fails, put them back
        previous_locations = None
        if locations is not None:
            previous_locations = await self.store.load(EMPLOYEE_LOCATIONS_KEY)
            if not await self._save_locations(locations):
                raise LocalPersistenceError(EMPLOYEE_LOCATIONS_KEY)
        if not await self._save_storage(storage):
            if previous_locations is not None and not await self.store.save(EMPLOYEE_LOCATIONS_KEY, previous_locations):
                logger.error("Backup import failed and the previous employee locations could not be restored")
            raise LocalPersistenceError(DISPATCH_STORAGE_KEY)

        logger.info(
            f"Imported backup: {len(storage.jobs)} jobs, {len(storage.employees)} employees, "
            f"{len(storage.customer_profiles)} customer profiles"
        )
        return storage

    async def migrate_job_assets(self) -> AssetBackfillSummary:
        """
        Move inline job images to storage and save the rewritten jobs.

        Raises:
            ConfigurationMissingError: Remote not configured
        """
        if self.assets is None or not self.client.is_configured:
            raise ConfigurationMissingError("job asset migration")

        summary = AssetBackfillSummary()
        for job in (await self.get_jobs()).value:
            summary.scanned += 1
            if not has_inline_images(job):
                summary.unchanged += 1
                continue
            try:
                result = await self.assets.migrate_job(job)
                summary.uploaded += result.uploaded_count
                await self._write_jobs([result.record], entity=f"job {job.id}")
            except SparkerySyncException as e:
                logger.warning(f"Job {job.id} images not migrated: {e.message}")
                summary.failed.append(job.id)
                continue
            summary.migrated += 1
        return summary

    # =========================================================================
    # Write helpers
    # =========================================================================

    def _remote(self, call: Callable[[], Awaitable[Any]]) -> Callable[[], Awaitable[Any]] | None:
        return call if self.client.is_configured else None

    async def _dual_write(
        self,
        items: list[ModelT],
        mirror: RemoteMirror,
        remote_write: Callable[[], Awaitable[list[dict[str, Any]]]],
        apply: Callable[[DispatchStorage, list[ModelT]], None],
        *,
        entity: str,
    ) -> SyncResult[list[ModelT]]:
        saved = list(items)

        async def persist(rows: list[dict[str, Any]] | None) -> bool:
            nonlocal saved
            if rows:
                saved = overlay_rows(items, rows, key=mirror.spec.key)
            storage = await self._load_storage()
            apply(storage, saved)
            return await self._save_storage(storage)

        result = await write_through(
            self._remote(remote_write), persist, local_key=DISPATCH_STORAGE_KEY, entity=entity
        )
        return SyncResult(result.outcome, saved, result.detail)

    async def _provision(
        self,
        error: ForeignKeyViolationError,
        parent: RemoteMirror,
        parent_id: str,
        build: Callable[[], Awaitable[CamelModel]],
    ) -> bool:
        """Create the missing parent row remotely unless it already exists."""
        if error.parent_table and error.parent_table != parent.table:
            return False
        if await parent.get(parent_id) is None:
            row = (await build()).to_row()
            await parent.upsert([row])
            logger.info(f"Provisioned {parent.table} {parent_id} for a dependent write")
        return True

    async def _local_employee_or_placeholder(self, employee_id: str) -> Employee:
        storage = await self._load_storage()
        employee = find_by_id(storage.employees, employee_id)
        if employee is None:
            seed = find_by_id(DEFAULT_EMPLOYEES, employee_id)
            employee = Employee.model_validate(seed) if seed else Employee(id=employee_id, name=employee_id)
        return employee

    async def _local_profile_or_placeholder(self, profile_id: str, name_hint: str | None) -> CustomerProfile:
        storage = await self._load_storage()
        profile = find_by_id(storage.customer_profiles, profile_id)
        if profile is None:
            now = utc_now()
            profile = CustomerProfile(id=profile_id, name=name_hint or profile_id, created_at=now, updated_at=now)
        return profile

    # =========================================================================
    # Local helpers
    # =========================================================================

    async def _load_storage(self) -> DispatchStorage:
        return DispatchStorage.from_local(await self.store.load(DISPATCH_STORAGE_KEY))

    async def _save_storage(self, storage: DispatchStorage) -> bool:
        return await self.store.save(DISPATCH_STORAGE_KEY, storage.to_local())

    async def _refresh_storage(self, storage: DispatchStorage) -> None:
        if not await self._save_storage(storage):
            logger.warning("Could not refresh the local dispatch cache")

    async def _load_locations(self) -> dict[str, EmployeeLocation]:
        raw = await self.store.load(EMPLOYEE_LOCATIONS_KEY)
        if not isinstance(raw, dict):
            return {}
        locations = {}
        for employee_id, value in raw.items():
            try:
                locations[employee_id] = EmployeeLocation.model_validate(value)
            except ValidationError:
                logger.warning(f"Skipping invalid cached location for {employee_id}")
        return locations

    async def _save_locations(self, locations: dict[str, EmployeeLocation]) -> bool:
        return await self.store.save(
            EMPLOYEE_LOCATIONS_KEY,
            {employee_id: location.to_local() for employee_id, location in locations.items()},
        )

    @staticmethod
    def _validate_all(model: type[ModelT], items: list[Any], collection: str, errors: list[str]) -> list[ModelT]:
        validated = []
        for index, item in enumerate(items):
            try:
                validated.append(model.model_validate(item))
            except ValidationError as e:
                errors.append(f"{collection}[{index}]: {e.error_count()} validation error(s)")
        return validated
