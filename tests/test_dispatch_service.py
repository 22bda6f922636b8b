# =============================================================================
# tests/test_dispatch_service.py - Dispatch Service Tests
# =============================================================================
# This module contains tests for:
# - Remote-first writes and the local-fallback paths
# - Parent provisioning after foreign key violations
# - Optional column stripping
# - Merge-on-read of jobs, employees and locations
# - Cascades, recurring generation and the bulk migration
#
# The backend is FakeSupabase (see conftest.py), so every test runs the real
# REST client over httpx.MockTransport.
# =============================================================================

import asyncio
from datetime import date

import pytest

from app.exceptions import (
    ConfigurationMissingError,
    JobNotFoundError,
    LocalPersistenceError,
    RemoteRequestError,
)
from core.models.dispatch import (
    CreateJobPayload,
    EmployeeSchedule,
    JobStatus,
    ReportLocationPayload,
    UpdateJobPayload,
    UpsertCustomerProfilePayload,
    UpsertEmployeePayload,
)
from core.models.sync import SyncOutcome
from core.services import LOCAL_SEEDS
from core.services.dispatch_service import DISPATCH_STORAGE_KEY, DispatchService
from lib.local_store import LocalStore

JOBS = "dispatch_jobs"
EMPLOYEES = "dispatch_employees"
PROFILES = "dispatch_customer_profiles"
LOCATIONS = "dispatch_employee_locations"


def job_payload(**overrides) -> CreateJobPayload:
    data = {
        "title": "Bond clean - Unit 12",
        "serviceType": "bond",
        "scheduledDate": "2024-03-06",
        "scheduledStartTime": "09:00",
        "scheduledEndTime": "12:00",
    }
    data.update(overrides)
    return CreateJobPayload.model_validate(data)


def location_payload() -> ReportLocationPayload:
    return ReportLocationPayload(lat=-27.4698, lng=153.0251, accuracy_m=12.5, source="gps", label="Brisbane CBD")


def stored_document(store):
    return asyncio.run(store.load(DISPATCH_STORAGE_KEY))


# =============================================================================
# Write Paths
# =============================================================================

class TestWritePaths:
    """Test which path a write takes."""

    def test_remote_write_is_echoed_locally(self, dispatch_service, backend, store):
        result = asyncio.run(dispatch_service.create_job(job_payload()))

        assert result.outcome is SyncOutcome.REMOTE
        assert result.detail is None
        assert [row["id"] for row in backend.rows(JOBS)] == [result.value.id]
        assert [job["id"] for job in stored_document(store)["jobs"]] == [result.value.id]

    def test_unconfigured_remote_falls_back(self, local_dispatch_service, backend, store):
        result = asyncio.run(local_dispatch_service.create_job(job_payload()))

        assert result.outcome is SyncOutcome.LOCAL_FALLBACK
        assert result.detail == "remote not configured"
        assert result.value.status is JobStatus.PENDING
        assert backend.requests == []
        assert stored_document(store)["jobs"][0]["title"] == "Bond clean - Unit 12"

    def test_missing_table_falls_back(self, dispatch_service, backend, store):
        backend.missing_tables.add(JOBS)

        result = asyncio.run(dispatch_service.create_job(job_payload()))

        assert result.outcome is SyncOutcome.LOCAL_FALLBACK
        assert result.detail == "relation missing: dispatch_jobs"
        assert len(stored_document(store)["jobs"]) == 1

    def test_network_failure_falls_back(self, dispatch_service, backend):
        backend.offline = True

        result = asyncio.run(dispatch_service.create_job(job_payload()))

        assert result.outcome is SyncOutcome.LOCAL_FALLBACK
        assert result.detail.startswith("network failure")

    def test_unclassified_remote_error_propagates(self, dispatch_service, backend, store):
        backend.failures[JOBS] = (500, '{"message":"deadlock detected"}')

        with pytest.raises(RemoteRequestError):
            asyncio.run(dispatch_service.create_job(job_payload()))
        assert stored_document(store)["jobs"] == []

    def test_local_failure_without_remote_raises(self, tmp_path, local_client):
        store = LocalStore(tmp_path, defaults=LOCAL_SEEDS, max_bytes=64)
        service = DispatchService(local_client, store)

        with pytest.raises(LocalPersistenceError):
            asyncio.run(service.create_job(job_payload()))

    def test_local_failure_after_remote_success_still_reports_remote(self, tmp_path, client, backend):
        store = LocalStore(tmp_path, defaults=LOCAL_SEEDS, max_bytes=64)
        service = DispatchService(client, store)

        result = asyncio.run(service.create_job(job_payload()))

        assert result.outcome is SyncOutcome.REMOTE
        assert len(backend.rows(JOBS)) == 1

    def test_schedules_are_local_only(self, dispatch_service, backend, store):
        schedule = EmployeeSchedule(
            id="sched-1", employee_id="emp-1", date=date(2024, 3, 6), time_start="08:00", time_end="16:00"
        )

        result = asyncio.run(dispatch_service.upsert_employee_schedule(schedule))

        assert result.outcome is SyncOutcome.LOCAL_FALLBACK
        assert result.detail == "local-only collection"
        assert backend.requests == []
        assert stored_document(store)["schedules"][0]["id"] == "sched-1"


# =============================================================================
# Recovery
# =============================================================================

class TestParentProvisioning:
    """Test the foreign key recovery path."""

    def test_location_for_unknown_employee(self, dispatch_service, backend):
        """The employee is provisioned once and the location saved as submitted."""
        backend.foreign_keys[LOCATIONS] = [("employee_id", EMPLOYEES)]
        payload = location_payload()

        result = asyncio.run(dispatch_service.report_employee_location("emp-1", payload))

        assert result.outcome is SyncOutcome.REMOTE
        location = result.value
        assert (location.employee_id, location.lat, location.lng) == ("emp-1", payload.lat, payload.lng)
        assert (location.accuracy_m, location.source, location.label) == (12.5, payload.source, "Brisbane CBD")

        sequence = [(r.method, r.url.path.rsplit("/", 1)[-1]) for r in backend.requests]
        assert sequence == [
            ("POST", LOCATIONS),
            ("GET", EMPLOYEES),
            ("POST", EMPLOYEES),
            ("POST", LOCATIONS),
        ]
        # Provisioned from the local roster, not as a bare placeholder
        assert backend.rows(EMPLOYEES)[0]["name"] == "Alex Chen"
        assert backend.rows(LOCATIONS)[0]["lat"] == payload.lat

    def test_existing_parent_is_not_recreated(self, dispatch_service, backend):
        backend.foreign_keys[LOCATIONS] = [("employee_id", EMPLOYEES)]
        calls = []

        original = backend._check_foreign_keys

        def violate_once(table, rows):
            if table == LOCATIONS and not calls:
                calls.append(table)
                return original(table, [{"employee_id": "missing"}])
            return None

        backend._check_foreign_keys = violate_once
        backend.tables[EMPLOYEES] = {"emp-2": {"id": "emp-2", "name": "Mia Zhang"}}

        asyncio.run(dispatch_service.report_employee_location("emp-2", location_payload()))

        assert backend.calls("POST", EMPLOYEES) == []

    def test_job_provisions_its_customer_profile(self, dispatch_service, backend):
        backend.foreign_keys[JOBS] = [("customer_profile_id", PROFILES)]

        result = asyncio.run(dispatch_service.create_job(
            job_payload(customerProfileId="customer-9", customerName="Riverside Offices")
        ))

        assert result.outcome is SyncOutcome.REMOTE
        profile = backend.rows(PROFILES)[0]
        assert profile["id"] == "customer-9"
        assert profile["name"] == "Riverside Offices"

    def test_failed_provisioning_propagates(self, dispatch_service, backend):
        """If creating the parent is rejected as well, the error surfaces."""
        backend.foreign_keys[LOCATIONS] = [("employee_id", EMPLOYEES)]
        backend.foreign_keys[EMPLOYEES] = [("id", "nowhere")]

        with pytest.raises(RemoteRequestError):
            asyncio.run(dispatch_service.report_employee_location("emp-1", location_payload()))


class TestOptionalColumns:
    def test_missing_weekdays_column_is_stripped(self, dispatch_service, backend, store):
        backend.missing_columns[PROFILES] = {"recurring_weekdays"}
        payload = UpsertCustomerProfilePayload(
            name="Harbour View", recurring_enabled=True, recurring_weekdays=[1, 4],
            recurring_start_time="09:00", recurring_end_time="11:00",
        )

        result = asyncio.run(dispatch_service.upsert_customer_profile(payload))

        assert result.outcome is SyncOutcome.REMOTE
        assert len(backend.calls("POST", PROFILES)) == 2
        assert "recurring_weekdays" not in backend.rows(PROFILES)[0]
        # The submitted value survives locally
        assert result.value.recurring_weekdays == [1, 4]
        assert stored_document(store)["customerProfiles"][0]["recurringWeekdays"] == [1, 4]

    def test_required_column_missing_propagates(self, dispatch_service, backend):
        backend.missing_columns[JOBS] = {"title"}

        with pytest.raises(RemoteRequestError) as exc_info:
            asyncio.run(dispatch_service.create_job(job_payload()))
        assert exc_info.value.code == "COLUMN_MISSING"


# =============================================================================
# Reads
# =============================================================================

class TestReads:
    """Test merge-on-read."""

    def test_jobs_merge_remote_over_local(self, dispatch_service, local_dispatch_service, backend, store):
        local_only = asyncio.run(local_dispatch_service.create_job(job_payload(title="Local only"))).value
        shared = asyncio.run(local_dispatch_service.create_job(job_payload(title="Stale", scheduledStartTime="07:00"))).value
        backend.tables[JOBS] = {shared.id: {**shared.to_row(), "title": "Fresh"}}

        result = asyncio.run(dispatch_service.get_jobs())

        assert result.outcome is SyncOutcome.REMOTE
        assert [job.title for job in result.value] == ["Fresh", "Local only"]
        assert {job["id"] for job in stored_document(store)["jobs"]} == {local_only.id, shared.id}

    def test_week_window_filters_both_sources(self, dispatch_service, backend):
        asyncio.run(dispatch_service.create_job(job_payload(scheduledDate="2024-03-01")))
        inside = asyncio.run(dispatch_service.create_job(job_payload())).value

        result = asyncio.run(dispatch_service.get_jobs(date(2024, 3, 4), date(2024, 3, 10)))

        assert [job.id for job in result.value] == [inside.id]
        get = backend.calls("GET", JOBS)[-1]
        assert get.url.params.get_list("scheduled_date") == ["gte.2024-03-04", "lte.2024-03-10"]

    def test_offline_read_serves_cache(self, dispatch_service, backend):
        created = asyncio.run(dispatch_service.create_job(job_payload())).value
        backend.offline = True

        result = asyncio.run(dispatch_service.get_jobs())

        assert result.outcome is SyncOutcome.LOCAL_FALLBACK
        assert [job.id for job in result.value] == [created.id]

    def test_employees_carry_last_location(self, local_dispatch_service):
        asyncio.run(local_dispatch_service.report_employee_location("emp-2", location_payload()))

        employees = asyncio.run(local_dispatch_service.get_employees()).value

        assert [e.id for e in employees] == ["emp-1", "emp-2", "emp-3"]
        assert employees[1].last_location.lat == -27.4698
        assert employees[0].last_location is None

    def test_profiles_newest_first(self, local_dispatch_service):
        first = asyncio.run(local_dispatch_service.upsert_customer_profile(UpsertCustomerProfilePayload(name="A"))).value
        second = asyncio.run(local_dispatch_service.upsert_customer_profile(UpsertCustomerProfilePayload(name="B"))).value

        profiles = asyncio.run(local_dispatch_service.get_customer_profiles()).value

        assert profiles[0].id == (second.id if second.updated_at >= first.updated_at else first.id)
        assert len(profiles) == 2


# =============================================================================
# Job Updates
# =============================================================================

class TestJobUpdates:
    def test_existing_remote_row_is_patched(self, dispatch_service, backend):
        job = asyncio.run(dispatch_service.create_job(job_payload())).value

        result = asyncio.run(dispatch_service.update_job(job.id, UpdateJobPayload(notes="Bring ladder")))

        assert result.value.notes == "Bring ladder"
        assert result.value.title == job.title
        assert len(backend.calls("PATCH", JOBS)) == 1
        assert backend.rows(JOBS)[0]["notes"] == "Bring ladder"

    def test_unknown_job(self, dispatch_service):
        with pytest.raises(JobNotFoundError):
            asyncio.run(dispatch_service.update_job("job-missing", UpdateJobPayload(notes="x")))

    def test_assign_and_unassign(self, local_dispatch_service):
        job = asyncio.run(local_dispatch_service.create_job(job_payload())).value

        assigned = asyncio.run(local_dispatch_service.assign_job(job.id, ["emp-1", "emp-2"])).value
        cleared = asyncio.run(local_dispatch_service.assign_job(job.id, [])).value

        assert assigned.status is JobStatus.ASSIGNED
        assert cleared.status is JobStatus.PENDING
        assert cleared.assigned_employee_ids == []

    def test_assigned_status_without_assignees_becomes_pending(self, local_dispatch_service):
        job = asyncio.run(local_dispatch_service.create_job(job_payload())).value
        result = asyncio.run(local_dispatch_service.update_job_status(job.id, JobStatus.ASSIGNED))
        assert result.value.status is JobStatus.PENDING

    def test_delete_job(self, dispatch_service, backend, store):
        job = asyncio.run(dispatch_service.create_job(job_payload())).value

        result = asyncio.run(dispatch_service.delete_job(job.id))

        assert result.outcome is SyncOutcome.REMOTE
        assert backend.rows(JOBS) == []
        assert stored_document(store)["jobs"] == []


# =============================================================================
# Employees
# =============================================================================

class TestEmployees:
    def test_upsert_mirrors_to_inspection_employees(self, dispatch_service, backend):
        payload = UpsertEmployeePayload.model_validate({"name": "Alex Chen", "nameCN": "陈安", "skills": ["bond"]})

        employee = asyncio.run(dispatch_service.upsert_employee(payload)).value

        assert employee.id.startswith("emp-")
        mirrored = backend.rows("cleaning_inspection_employees")[0]
        assert mirrored["id"] == employee.id
        assert mirrored["name"] == "陈安"
        assert mirrored["payload"]["nameEn"] == "Alex Chen"

    def test_mirror_failure_does_not_fail_the_upsert(self, dispatch_service, backend):
        backend.failures["cleaning_inspection_employees"] = (500, "boom")

        result = asyncio.run(dispatch_service.upsert_employee(UpsertEmployeePayload(name="Sam")))

        assert result.outcome is SyncOutcome.REMOTE

    def test_delete_cascades(self, local_dispatch_service, store):
        job = asyncio.run(local_dispatch_service.create_job(job_payload())).value
        asyncio.run(local_dispatch_service.assign_job(job.id, ["emp-1"]))
        asyncio.run(local_dispatch_service.report_employee_location("emp-1", location_payload()))

        asyncio.run(local_dispatch_service.delete_employee("emp-1"))

        document = stored_document(store)
        assert [e["id"] for e in document["employees"]] == ["emp-2", "emp-3"]
        assert document["jobs"][0]["assignedEmployeeIds"] == []
        assert document["jobs"][0]["status"] == "pending"
        assert "emp-1" not in asyncio.run(local_dispatch_service.get_employee_locations()).value

    def test_delete_keeps_job_lifecycle(self, local_dispatch_service, store):
        """Only the assignee list changes; finished jobs stay finished."""
        service = local_dispatch_service
        shared = asyncio.run(service.create_job(job_payload())).value
        solo = asyncio.run(service.create_job(job_payload(scheduledStartTime="13:00", scheduledEndTime="15:00"))).value
        asyncio.run(service.assign_job(shared.id, ["emp-1", "emp-2"]))
        asyncio.run(service.assign_job(solo.id, ["emp-1"]))
        asyncio.run(service.update_job_status(shared.id, JobStatus.COMPLETED))
        asyncio.run(service.update_job_status(solo.id, JobStatus.IN_PROGRESS))

        asyncio.run(service.delete_employee("emp-1"))

        jobs = {job.id: job for job in asyncio.run(service.get_jobs()).value}
        assert jobs[shared.id].status is JobStatus.COMPLETED
        assert jobs[shared.id].assigned_employee_ids == ["emp-2"]
        assert jobs[solo.id].status is JobStatus.IN_PROGRESS
        assert jobs[solo.id].assigned_employee_ids == []


# =============================================================================
# Customer Profiles and Recurring Jobs
# =============================================================================

class TestProfiles:
    def test_delete_profile_unlinks_jobs(self, local_dispatch_service, store):
        profile = asyncio.run(local_dispatch_service.upsert_customer_profile(
            UpsertCustomerProfilePayload(name="Harbour View")
        )).value
        asyncio.run(local_dispatch_service.create_job(job_payload(customerProfileId=profile.id)))

        asyncio.run(local_dispatch_service.delete_customer_profile(profile.id))

        document = stored_document(store)
        assert document["customerProfiles"] == []
        assert "customerProfileId" not in document["jobs"][0]

    def test_upsert_keeps_created_at(self, local_dispatch_service):
        created = asyncio.run(local_dispatch_service.upsert_customer_profile(
            UpsertCustomerProfilePayload(name="A")
        )).value
        updated = asyncio.run(local_dispatch_service.upsert_customer_profile(
            UpsertCustomerProfilePayload(id=created.id, name="A2")
        )).value

        assert updated.created_at == created.created_at
        assert updated.name == "A2"

    def test_recurring_generation_is_idempotent(self, dispatch_service, backend):
        asyncio.run(dispatch_service.upsert_customer_profile(UpsertCustomerProfilePayload(
            name="Harbour View", recurring_enabled=True, recurring_weekday=3,
            recurring_start_time="09:00", recurring_end_time="11:00",
        )))
        week = (date(2024, 3, 4), date(2024, 3, 10))

        first = asyncio.run(dispatch_service.create_jobs_from_recurring_profiles(*week))
        second = asyncio.run(dispatch_service.create_jobs_from_recurring_profiles(*week))

        assert [job.scheduled_date for job in first.value] == [date(2024, 3, 6)]
        assert second.value == []
        assert len(backend.rows(JOBS)) == 1


# =============================================================================
# Bulk Migration
# =============================================================================

class TestMigrateLocalToRemote:
    def test_pushes_everything_parents_first(self, local_dispatch_service, dispatch_service, backend):
        profile = asyncio.run(local_dispatch_service.upsert_customer_profile(
            UpsertCustomerProfilePayload(name="Harbour View")
        )).value
        asyncio.run(local_dispatch_service.create_job(job_payload(customerProfileId=profile.id)))
        asyncio.run(local_dispatch_service.report_employee_location("emp-1", location_payload()))
        backend.foreign_keys[JOBS] = [("customer_profile_id", PROFILES)]
        backend.foreign_keys[LOCATIONS] = [("employee_id", EMPLOYEES)]

        counts = asyncio.run(dispatch_service.migrate_local_to_remote())

        assert counts.model_dump() == {"employees": 3, "customer_profiles": 1, "jobs": 1, "employee_locations": 1}
        posted = [r.url.path.rsplit("/", 1)[-1] for r in backend.requests if r.method == "POST"]
        assert posted == [EMPLOYEES, PROFILES, JOBS, LOCATIONS]

    def test_missing_locations_table_is_tolerated(self, local_dispatch_service, dispatch_service, backend):
        asyncio.run(local_dispatch_service.report_employee_location("emp-1", location_payload()))
        backend.missing_tables.add(LOCATIONS)

        counts = asyncio.run(dispatch_service.migrate_local_to_remote())

        assert counts.employee_locations == 0
        assert counts.employees == 3

    def test_requires_configuration(self, local_dispatch_service):
        with pytest.raises(ConfigurationMissingError):
            asyncio.run(local_dispatch_service.migrate_local_to_remote())


class TestJobAssets:
    def test_inline_job_images_are_migrated(self, dispatch_service, backend):
        from tests.conftest import INLINE_PNG

        job = asyncio.run(dispatch_service.create_job(job_payload(imageUrls=[INLINE_PNG]))).value

        summary = asyncio.run(dispatch_service.migrate_job_assets())

        assert (summary.scanned, summary.migrated, summary.uploaded) == (1, 1, 1)
        stored = backend.tables[JOBS][job.id]
        assert stored["image_urls"][0].startswith("https://test-project.supabase.co/storage/v1/object/public/")

    def test_rejected_write_is_reported_not_raised(self, dispatch_service, backend):
        from tests.conftest import INLINE_PNG

        job = asyncio.run(dispatch_service.create_job(job_payload(imageUrls=[INLINE_PNG]))).value
        backend.missing_columns[JOBS] = {"title"}

        summary = asyncio.run(dispatch_service.migrate_job_assets())

        assert summary.failed == [job.id]
        assert summary.migrated == 0

    def test_requires_configuration(self, store, local_client):
        service = DispatchService(local_client, store)
        with pytest.raises(ConfigurationMissingError):
            asyncio.run(service.migrate_job_assets())

