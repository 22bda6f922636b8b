# =============================================================================
# tests/conftest.py - Pytest Configuration
# =============================================================================
# This module provides pytest fixtures and configuration for all tests.
#
# Key features:
# - Sets up environment variables before any imports
# - FakeSupabase: an in-memory PostgREST + Storage backend served through
#   httpx.MockTransport, so services run their real HTTP code paths
# - Fixtures for a temporary LocalStore, runtime configs and services
# =============================================================================

import json
import os
import tempfile

# =============================================================================
# Set up test environment BEFORE any imports
# =============================================================================
# This must happen before importing app.config which loads settings immediately

os.environ.setdefault("ENVIRONMENT", "development")
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("LOCAL_STORE_DIR", tempfile.mkdtemp(prefix="sparkery-test-store-"))

import httpx
import pytest

from app.config import RuntimeConfig
from core.services import LOCAL_SEEDS
from core.services.asset_migration import AssetMigrationPipeline, UploadCache
from core.services.dispatch_service import DispatchService
from core.services.inspection_service import InspectionService
from core.services.storage_service import StorageService
from lib.local_store import LocalStore
from lib.supabase_client import SupabaseRestClient

TEST_URL = "https://test-project.supabase.co"
TEST_KEY = "test-anon-key"
TEST_BUCKET = "inspection-assets"

# 1x1 transparent PNG
PNG_BASE64 = (
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNkYPhfDwAChwGA60e6kgAAAABJRU5ErkJggg=="
)
INLINE_PNG = f"data:image/png;base64,{PNG_BASE64}"


# =============================================================================
# Fake Backend
# =============================================================================

def relation_missing_body(table: str) -> str:
    return json.dumps({
        "code": "PGRST205",
        "details": None,
        "hint": None,
        "message": f"Could not find the table 'public.{table}' in the schema cache",
    })


def column_missing_body(table: str, column: str) -> str:
    return json.dumps({
        "code": "PGRST204",
        "details": None,
        "hint": None,
        "message": f"Could not find the '{column}' column of '{table}' in the schema cache",
    })


def foreign_key_body(table: str, column: str, value: str, parent: str) -> str:
    return json.dumps({
        "code": "23503",
        "details": f'Key ({column})=({value}) is not present in table "{parent}".',
        "hint": None,
        "message": (
            f'insert or update on table "{table}" violates foreign key constraint '
            f'"{table}_{column}_fkey"'
        ),
    })


class FakeSupabase:
    """
    In-memory PostgREST/Storage stand-in.

    - tables: table -> {key: row}
    - missing_tables: tables answering with PGRST205
    - foreign_keys: child table -> [(column, parent table)]
    - missing_columns: table -> columns rejected with PGRST204
    - offline: every request fails with a connection error
    - failures: table -> (status, body) answered to every request on it
    """

    def __init__(self):
        self.tables: dict[str, dict[str, dict]] = {}
        self.missing_tables: set[str] = set()
        self.foreign_keys: dict[str, list[tuple[str, str]]] = {}
        self.missing_columns: dict[str, set[str]] = {}
        self.offline = False
        self.failures: dict[str, tuple[int, str]] = {}
        self.requests: list[httpx.Request] = []
        self.uploads: list[str] = []
        self.fail_uploads = False

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def rows(self, table: str) -> list[dict]:
        return list(self.tables.get(table, {}).values())

    def calls(self, method: str, table: str) -> list[httpx.Request]:
        return [
            request for request in self.requests
            if request.method == method and request.url.path == f"/rest/v1/{table}"
        ]

    # -------------------------------------------------------------------------

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.offline:
            raise httpx.ConnectError("connection refused", request=request)

        path = request.url.path
        if path.startswith("/storage/v1/object/"):
            return self._upload(request, path[len("/storage/v1/object/"):])

        table = path[len("/rest/v1/"):]
        if table in self.missing_tables:
            return httpx.Response(404, text=relation_missing_body(table))
        if table in self.failures:
            status, text = self.failures[table]
            return httpx.Response(status, text=text)

        params = request.url.params.multi_items()
        filters = [(name, value) for name, value in params if name not in ("select", "order", "on_conflict")]
        store = self.tables.setdefault(table, {})

        if request.method == "GET":
            return httpx.Response(200, json=[row for row in store.values() if self._matches(row, filters)])

        if request.method == "DELETE":
            deleted = [row for row in store.values() if self._matches(row, filters)]
            for row in deleted:
                store.pop(self._key_of(row, filters), None)
            return httpx.Response(200, json=deleted)

        body = json.loads(request.content)
        rows = body if isinstance(body, list) else [body]

        rejected = self._check_columns(table, rows)
        if rejected is not None:
            return rejected
        violation = self._check_foreign_keys(table, rows)
        if violation is not None:
            return violation

        if request.method == "POST":
            key = dict(params).get("on_conflict", "id")
            for row in rows:
                store[row[key]] = {**store.get(row[key], {}), **row}
            return httpx.Response(201, json=[store[row[key]] for row in rows])

        if request.method == "PATCH":
            updated = []
            for stored_key, row in list(store.items()):
                if self._matches(row, filters):
                    store[stored_key] = {**row, **rows[0]}
                    updated.append(store[stored_key])
            return httpx.Response(200, json=updated)

        return httpx.Response(405)

    def _upload(self, request: httpx.Request, object_path: str) -> httpx.Response:
        if self.fail_uploads:
            return httpx.Response(400, json={"error": "Bucket not found"})
        self.uploads.append(object_path)
        return httpx.Response(200, json={"Key": object_path})

    @staticmethod
    def _matches(row: dict, filters: list[tuple[str, str]]) -> bool:
        for column, expression in filters:
            operator, _, value = expression.partition(".")
            current = row.get(column)
            if operator == "eq" and str(current) != value:
                return False
            if operator == "gte" and (current is None or str(current) < value):
                return False
            if operator == "lte" and (current is None or str(current) > value):
                return False
        return True

    @staticmethod
    def _key_of(row: dict, filters: list[tuple[str, str]]) -> str:
        column = filters[0][0] if filters else "id"
        return row[column]

    def _check_columns(self, table: str, rows: list[dict]) -> httpx.Response | None:
        for column in self.missing_columns.get(table, set()):
            if any(column in row for row in rows):
                return httpx.Response(400, text=column_missing_body(table, column))
        return None

    def _check_foreign_keys(self, table: str, rows: list[dict]) -> httpx.Response | None:
        for column, parent in self.foreign_keys.get(table, []):
            for row in rows:
                value = row.get(column)
                if value and value not in self.tables.get(parent, {}):
                    return httpx.Response(409, text=foreign_key_body(table, column, value, parent))
        return None


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def store(tmp_path):
    """LocalStore in a temporary directory with the production seeds."""
    return LocalStore(tmp_path / "store", defaults=LOCAL_SEEDS)


@pytest.fixture
def runtime():
    """Configured remote."""
    return RuntimeConfig(url=TEST_URL, anon_key=TEST_KEY)


@pytest.fixture
def local_runtime():
    """Unconfigured remote (local-only mode)."""
    return RuntimeConfig()


@pytest.fixture
def backend():
    return FakeSupabase()


@pytest.fixture
def client(runtime, backend):
    return SupabaseRestClient(runtime, transport=backend.transport)


@pytest.fixture
def local_client(local_runtime, backend):
    return SupabaseRestClient(local_runtime, transport=backend.transport)


@pytest.fixture
def pipeline(client):
    """Asset pipeline with a private cache and deterministic object names."""
    return AssetMigrationPipeline(
        StorageService(client, TEST_BUCKET),
        UploadCache(),
        clock=lambda: 1767225600000,
        suffix=lambda: "abc123",
    )


@pytest.fixture
def inspection_service(client, store, pipeline):
    return InspectionService(client, store, assets=pipeline)


@pytest.fixture
def dispatch_service(client, store, inspection_service, pipeline):
    return DispatchService(client, store, inspections=inspection_service, assets=pipeline)


@pytest.fixture
def local_dispatch_service(local_client, store):
    return DispatchService(local_client, store)
