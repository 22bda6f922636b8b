# =============================================================================
# tests/test_supabase_client.py - REST Gateway Tests
# =============================================================================
# This module contains tests for:
# - Request shape (query syntax, headers, Prefer) of every operation
# - Typed errors for classified failures and transport errors
# - Per-call resolution of the runtime configuration
# =============================================================================

import asyncio
import json

import httpx
import pytest

from app.exceptions import (
    ColumnMissingError,
    ConfigurationMissingError,
    ForeignKeyViolationError,
    NetworkFailureError,
    RelationMissingError,
    RemoteRequestError,
    StorageUploadError,
    UnauthorizedError,
)
from lib.supabase_client import PREFER_UPSERT, SupabaseRestClient, build_query, encode_object_path
from tests.conftest import TEST_KEY, TEST_URL, foreign_key_body


def recording_client(runtime, responder):
    """Client whose transport records requests and answers with responder(request)."""
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return responder(request)

    return SupabaseRestClient(runtime, transport=httpx.MockTransport(handler)), seen


class TestQueryEncoding:
    def test_operator_syntax_is_kept_readable(self):
        query = build_query([
            ("select", "*"),
            ("order", "updated_at.desc.nullslast,id.asc"),
            ("scheduled_date", "gte.2024-03-04"),
            ("scheduled_date", "lte.2024-03-10"),
        ])

        assert query == (
            "select=*&order=updated_at.desc.nullslast,id.asc"
            "&scheduled_date=gte.2024-03-04&scheduled_date=lte.2024-03-10"
        )

    def test_values_are_escaped(self):
        assert build_query([("name", "eq.a&b c")]) == "name=eq.a%26b%20c"

    def test_object_path_segments(self):
        assert encode_object_path("/job-1/a b.png") == "job-1/a%20b.png"


class TestRequests:
    """Test the HTTP shape of each operation."""

    def test_select(self, runtime):
        client, seen = recording_client(runtime, lambda r: httpx.Response(200, json=[{"id": "job-1"}]))

        rows = asyncio.run(client.select("dispatch_jobs", order="scheduled_date.asc", filters=[("id", "eq.job-1")]))

        assert rows == [{"id": "job-1"}]
        request = seen[0]
        assert request.method == "GET"
        assert request.url.path == "/rest/v1/dispatch_jobs"
        assert request.url.params.multi_items() == [
            ("select", "*"), ("order", "scheduled_date.asc"), ("id", "eq.job-1"),
        ]
        assert request.headers["apikey"] == TEST_KEY
        assert request.headers["authorization"] == f"Bearer {TEST_KEY}"

    def test_upsert(self, runtime):
        client, seen = recording_client(runtime, lambda r: httpx.Response(201, content=r.content))

        rows = asyncio.run(client.upsert("dispatch_employee_locations", [{"employee_id": "emp-1"}], on_conflict="employee_id"))

        request = seen[0]
        assert request.method == "POST"
        assert request.url.params["on_conflict"] == "employee_id"
        assert request.headers["prefer"] == PREFER_UPSERT
        assert json.loads(request.content) == [{"employee_id": "emp-1"}]
        assert rows == [{"employee_id": "emp-1"}]

    def test_update_and_delete_filter_by_key(self, runtime):
        client, seen = recording_client(runtime, lambda r: httpx.Response(200, json=[]))

        asyncio.run(client.update("dispatch_jobs", "job-1", {"status": "completed"}))
        asyncio.run(client.delete("dispatch_jobs", "job-1"))

        assert [r.method for r in seen] == ["PATCH", "DELETE"]
        for request in seen:
            assert request.url.params["id"] == "eq.job-1"
            assert request.headers["prefer"] == "return=representation"

    def test_empty_response_body(self, runtime):
        client, _ = recording_client(runtime, lambda r: httpx.Response(204))
        assert asyncio.run(client.delete("dispatch_jobs", "job-1")) == []

    def test_select_one(self, runtime):
        client, _ = recording_client(runtime, lambda r: httpx.Response(200, json=[]))
        assert asyncio.run(client.select_one("dispatch_employees", "emp-1")) is None

    def test_upload_object(self, runtime):
        client, seen = recording_client(runtime, lambda r: httpx.Response(200, json={"Key": "x"}))

        url = asyncio.run(client.upload_object("inspection-assets", "job-1/a.png", b"png", "image/png"))

        request = seen[0]
        assert request.url.path == "/storage/v1/object/inspection-assets/job-1/a.png"
        assert request.headers["x-upsert"] == "true"
        assert request.headers["content-type"] == "image/png"
        assert request.content == b"png"
        assert url == f"{TEST_URL}/storage/v1/object/public/inspection-assets/job-1/a.png"


class TestErrors:
    """Test typed failures."""

    @pytest.mark.parametrize("status,body,error", [
        (404, '{"code":"PGRST205","message":"Could not find the table \'public.dispatch_jobs\' in the schema cache"}',
         RelationMissingError),
        (400, '{"code":"PGRST204","message":"Could not find the \'notes\' column of \'dispatch_jobs\' in the schema cache"}',
         ColumnMissingError),
        (409, foreign_key_body("dispatch_jobs", "customer_profile_id", "c-1", "dispatch_customer_profiles"),
         ForeignKeyViolationError),
        (401, '{"message":"Invalid API key"}', UnauthorizedError),
        (500, '{"message":"boom"}', RemoteRequestError),
    ])
    def test_classified_errors(self, runtime, status, body, error):
        client, _ = recording_client(runtime, lambda r: httpx.Response(status, text=body))

        with pytest.raises(error) as exc_info:
            asyncio.run(client.select("dispatch_jobs"))

        assert type(exc_info.value) is error
        assert exc_info.value.status == status
        assert exc_info.value.details["path"].startswith("/rest/v1/dispatch_jobs")

    def test_foreign_key_details(self, runtime):
        body = foreign_key_body("dispatch_jobs", "customer_profile_id", "c-1", "dispatch_customer_profiles")
        client, _ = recording_client(runtime, lambda r: httpx.Response(409, text=body))

        with pytest.raises(ForeignKeyViolationError) as exc_info:
            asyncio.run(client.upsert("dispatch_jobs", [{"id": "job-1"}]))

        assert exc_info.value.parent_table == "dispatch_customer_profiles"
        assert exc_info.value.key_value == "c-1"

    def test_transport_error_is_network_failure(self, runtime):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        client, _ = recording_client(runtime, refuse)

        with pytest.raises(NetworkFailureError) as exc_info:
            asyncio.run(client.select("dispatch_jobs"))
        assert "connection refused" in exc_info.value.message

    def test_storage_rejection(self, runtime):
        client, _ = recording_client(runtime, lambda r: httpx.Response(400, json={"error": "Bucket not found"}))

        with pytest.raises(StorageUploadError):
            asyncio.run(client.upload_object("missing", "a.png", b"x", "image/png"))


class TestConfiguration:
    """Test per-call resolution of RuntimeConfig."""

    def test_unconfigured_raises_before_io(self, local_runtime):
        client, seen = recording_client(local_runtime, lambda r: httpx.Response(200, json=[]))

        with pytest.raises(ConfigurationMissingError):
            asyncio.run(client.select("dispatch_jobs"))
        assert seen == []

    def test_blank_key_is_unconfigured(self):
        from app.config import RuntimeConfig

        assert RuntimeConfig(url="https://x.supabase.co", anon_key="   ").resolve() is None

    def test_update_applies_to_next_call(self, local_runtime):
        client, seen = recording_client(local_runtime, lambda r: httpx.Response(200, json=[]))
        assert client.is_configured is False

        local_runtime.update("https://other.supabase.co/", "other-key")
        asyncio.run(client.select("dispatch_jobs"))

        assert seen[0].url.host == "other.supabase.co"
        assert seen[0].headers["apikey"] == "other-key"
