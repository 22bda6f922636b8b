# =============================================================================
# lib/supabase_client.py - Supabase REST Gateway
# =============================================================================
# This module provides a typed async wrapper around the two Supabase HTTP
# surfaces the sync layer needs:
# - PostgREST (/rest/v1): select, upsert, update, delete on a table
# - Storage   (/storage/v1): raw object upload + public URL derivation
#
# Configuration is not read from globals. The client holds a reference to
# the process RuntimeConfig and resolves it once per call; when the URL or
# key is blank every public method raises ConfigurationMissingError before
# any network I/O.
#
# Failures are typed:
# - non-2xx responses are classified (lib.error_classifier) and raised as the
#   matching RemoteRequestError subclass
# - transport failures (connect, DNS, timeout) raise NetworkFailureError
#
# Usage:
#   client = SupabaseRestClient(runtime_config)
#   rows = await client.select("dispatch_jobs", order="scheduled_date.asc")
#   await client.upsert("dispatch_jobs", [row])
# =============================================================================

from __future__ import annotations

import logging
from typing import Any, Iterable, Sequence
from urllib.parse import quote

import httpx

from app.config import RemoteConfig, RuntimeConfig
from app.exceptions import (
    ColumnMissingError,
    ConfigurationMissingError,
    ForeignKeyViolationError,
    NetworkFailureError,
    RelationMissingError,
    RemoteNotFoundError,
    RemoteRequestError,
    StorageUploadError,
    UnauthorizedError,
)
from lib.error_classifier import RemoteErrorKind, classify_remote_error

# Set up logging for this module
logger = logging.getLogger(__name__)

PREFER_UPSERT = "resolution=merge-duplicates,return=representation"
PREFER_RETURN = "return=representation"

_ERRORS_BY_KIND: dict[RemoteErrorKind, type[RemoteRequestError]] = {
    RemoteErrorKind.RELATION_MISSING: RelationMissingError,
    RemoteErrorKind.COLUMN_MISSING: ColumnMissingError,
    RemoteErrorKind.FOREIGN_KEY_VIOLATION: ForeignKeyViolationError,
    RemoteErrorKind.NOT_FOUND: RemoteNotFoundError,
    RemoteErrorKind.UNAUTHORIZED: UnauthorizedError,
    RemoteErrorKind.UNCLASSIFIED: RemoteRequestError,
}

# Characters PostgREST expects literally in query values (select=*, order=a.asc,b.desc)
_QUERY_SAFE = "*.,:()-_"


def build_query(params: Iterable[tuple[str, str]]) -> str:
    """
    Encode PostgREST query parameters, keeping operator syntax readable.

    Repeated keys are preserved (scheduled_date=gte.X&scheduled_date=lte.Y).
    """
    return "&".join(f"{quote(name, safe='_')}={quote(str(value), safe=_QUERY_SAFE)}" for name, value in params)


def encode_object_path(path: str) -> str:
    """Percent-encode each segment of a storage object path."""
    return "/".join(quote(segment, safe="") for segment in path.split("/") if segment)


def raise_for_response(response: httpx.Response, path: str) -> None:
    """Raise the classified RemoteRequestError for a non-2xx response."""
    if response.is_success:
        return
    body = response.text
    info = classify_remote_error(response.status_code, body)
    error_cls = _ERRORS_BY_KIND[info.kind]
    raise error_cls(response.status_code, body, info, path=path)


class SupabaseRestClient:
    """
    Async gateway to a PostgREST-style relational API and Supabase Storage.

    One short-lived httpx.AsyncClient is opened per call, because the target
    URL and credential can change between calls.

    Example:
        client = SupabaseRestClient(RuntimeConfig(url="https://x.supabase.co", anon_key="k"))
        employees = await client.select("dispatch_employees", order="id.asc")
    """

    def __init__(
        self,
        runtime: RuntimeConfig,
        *,
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.runtime = runtime
        self.timeout = timeout
        self._transport = transport

    # -------------------------------------------------------------------------
    # Configuration
    # -------------------------------------------------------------------------

    @property
    def is_configured(self) -> bool:
        return self.runtime.is_configured

    def _require_config(self, operation: str) -> RemoteConfig:
        config = self.runtime.resolve()
        if config is None:
            raise ConfigurationMissingError(operation)
        return config

    @staticmethod
    def _headers(config: RemoteConfig, extra: dict[str, str] | None = None) -> dict[str, str]:
        headers = {
            "apikey": config.anon_key,
            "Authorization": f"Bearer {config.anon_key}",
            "Content-Type": "application/json",
        }
        if extra:
            headers.update(extra)
        return headers

    # -------------------------------------------------------------------------
    # Transport
    # -------------------------------------------------------------------------

    async def _send(
        self,
        method: str,
        url: str,
        *,
        path: str,
        headers: dict[str, str],
        json_body: Any = None,
        content: bytes | None = None,
    ) -> httpx.Response:
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as http:
                response = await http.request(
                    method,
                    url,
                    headers=headers,
                    json=json_body,
                    content=content,
                )
        except httpx.TransportError as e:
            logger.warning(f"Supabase {method} {path} unreachable: {e}")
            raise NetworkFailureError(str(e) or e.__class__.__name__, path=path) from e

        logger.debug(f"Supabase {method} {path} -> {response.status_code}")
        return response

    async def _rest(
        self,
        method: str,
        table: str,
        *,
        operation: str,
        params: Sequence[tuple[str, str]] = (),
        json_body: Any = None,
        prefer: str | None = None,
    ) -> list[dict[str, Any]]:
        config = self._require_config(operation)
        query = build_query(params)
        path = f"/rest/v1/{table}" + (f"?{query}" if query else "")
        headers = self._headers(config, {"Prefer": prefer} if prefer else None)

        response = await self._send(
            method, f"{config.url}{path}", path=path, headers=headers, json_body=json_body
        )
        raise_for_response(response, path)

        if not response.content:
            return []
        data = response.json()
        if isinstance(data, list):
            return data
        return [data] if isinstance(data, dict) else []

    # -------------------------------------------------------------------------
    # PostgREST Operations
    # -------------------------------------------------------------------------

    async def select(
        self,
        table: str,
        *,
        filters: Sequence[tuple[str, str]] = (),
        order: str | None = None,
        columns: str = "*",
    ) -> list[dict[str, Any]]:
        """
        Fetch rows from a table.

        Args:
            table: Table or view name
            filters: PostgREST filters as (column, "op.value") pairs
            order: Order clause, e.g. "updated_at.desc.nullslast,id.asc"
            columns: Column list for select=

        Returns:
            List of row dicts (possibly empty)
        """
        params: list[tuple[str, str]] = [("select", columns)]
        if order:
            params.append(("order", order))
        params.extend(filters)
        return await self._rest("GET", table, operation=f"select {table}", params=params)

    async def select_one(
        self,
        table: str,
        value: str,
        *,
        column: str = "id",
    ) -> dict[str, Any] | None:
        """Fetch the single row whose column equals value, or None."""
        rows = await self._rest(
            "GET",
            table,
            operation=f"select {table}",
            params=[("select", "*"), (column, f"eq.{value}")],
        )
        return rows[0] if rows else None

    async def upsert(
        self,
        table: str,
        rows: list[dict[str, Any]],
        *,
        on_conflict: str = "id",
    ) -> list[dict[str, Any]]:
        """
        Insert-or-update rows keyed by on_conflict.

        Identifiers are client-generated, so writes never use insert-only.
        """
        return await self._rest(
            "POST",
            table,
            operation=f"upsert {table}",
            params=[("on_conflict", on_conflict)],
            json_body=rows,
            prefer=PREFER_UPSERT,
        )

    async def update(
        self,
        table: str,
        value: str,
        row: dict[str, Any],
        *,
        column: str = "id",
    ) -> list[dict[str, Any]]:
        """PATCH the row whose column equals value."""
        return await self._rest(
            "PATCH",
            table,
            operation=f"update {table}",
            params=[(column, f"eq.{value}")],
            json_body=row,
            prefer=PREFER_RETURN,
        )

    async def delete(
        self,
        table: str,
        value: str,
        *,
        column: str = "id",
    ) -> list[dict[str, Any]]:
        """DELETE the row whose column equals value; returns the deleted rows."""
        return await self._rest(
            "DELETE",
            table,
            operation=f"delete {table}",
            params=[(column, f"eq.{value}")],
            prefer=PREFER_RETURN,
        )

    # -------------------------------------------------------------------------
    # Storage Operations
    # -------------------------------------------------------------------------

    def public_object_url(self, bucket: str, object_path: str) -> str:
        """Public URL of an object in a public bucket."""
        config = self._require_config("public object url")
        return f"{config.storage_url}/object/public/{bucket}/{encode_object_path(object_path)}"

    async def upload_object(
        self,
        bucket: str,
        object_path: str,
        data: bytes,
        content_type: str,
    ) -> str:
        """
        Upload raw bytes to storage (overwriting any existing object).

        Returns:
            The public URL of the uploaded object

        Raises:
            ConfigurationMissingError: Remote is not configured
            NetworkFailureError: Storage unreachable
            StorageUploadError: Storage rejected the upload
        """
        config = self._require_config("storage upload")
        encoded = encode_object_path(object_path)
        path = f"/storage/v1/object/{bucket}/{encoded}"
        headers = self._headers(config, {"Content-Type": content_type, "x-upsert": "true"})

        response = await self._send("POST", f"{config.url}{path}", path=path, headers=headers, content=data)
        if not response.is_success:
            raise StorageUploadError(object_path, f"{response.status_code}: {response.text or 'No details'}")

        logger.info(f"Uploaded object to storage: {bucket}/{object_path} ({len(data)} bytes)")
        return f"{config.storage_url}/object/public/{bucket}/{encoded}"
