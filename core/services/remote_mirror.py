# =============================================================================
# core/services/remote_mirror.py - Remote Write State Machine + Dual Write
# =============================================================================
# RemoteMirror wraps one backend table and owns the recovery rules for writes:
#
#   attempt -> success                           -> remote row
#           -> ForeignKeyViolation -> provision parent -> retry once
#           -> ColumnMissing (optional column) -> strip it -> retry once
#           -> anything else                     -> propagate
#
# RelationMissing and network failures also propagate from here; deciding
# to fall back to the local cache belongs to write_through() for writes and
# read_remote() for reads. Both report which source served the result.
# =============================================================================

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Sequence, TypeVar

from pydantic import BaseModel, ValidationError

from app.exceptions import (
    ColumnMissingError,
    ConfigurationMissingError,
    ForeignKeyViolationError,
    LocalPersistenceError,
    NetworkFailureError,
    RelationMissingError,
)
from core.models.sync import SyncResult
from lib.supabase_client import SupabaseRestClient

logger = logging.getLogger(__name__)

T = TypeVar("T")
ModelT = TypeVar("ModelT", bound=BaseModel)

Row = dict[str, Any]
ProvisionParent = Callable[[ForeignKeyViolationError], Awaitable[bool]]

NOT_CONFIGURED = "remote not configured"


@dataclass(frozen=True)
class TableSpec:
    """
    Static description of a mirrored table.

    optional_columns may be stripped from a payload when the backend reports
    them missing (older schema); any other missing column is an error.
    """
    name: str
    key: str = "id"
    order: str | None = None
    optional_columns: frozenset[str] = field(default_factory=frozenset)


class RemoteMirror:
    """
    Per-table gateway with the write retry rules.

    Example:
        jobs = RemoteMirror(client, TableSpec("dispatch_jobs", order="scheduled_date.asc"))
        rows = await jobs.upsert([job.to_row()], provision_parent=provision_profile)
    """

    def __init__(self, client: SupabaseRestClient, spec: TableSpec):
        self.client = client
        self.spec = spec

    @property
    def table(self) -> str:
        return self.spec.name

    @property
    def is_configured(self) -> bool:
        return self.client.is_configured

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def list(self, filters: Sequence[tuple[str, str]] = ()) -> list[Row]:
        return await self.client.select(self.table, filters=filters, order=self.spec.order)

    async def get(self, value: str) -> Row | None:
        return await self.client.select_one(self.table, value, column=self.spec.key)

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    async def upsert(
        self,
        rows: list[Row],
        *,
        provision_parent: ProvisionParent | None = None,
    ) -> list[Row]:
        """Upsert rows keyed by the table key, applying the retry rules."""
        return await self._with_retries(
            lambda payload: self.client.upsert(self.table, payload, on_conflict=self.spec.key),
            rows,
            provision_parent,
        )

    async def update(
        self,
        value: str,
        row: Row,
        *,
        provision_parent: ProvisionParent | None = None,
    ) -> list[Row]:
        """PATCH one row, applying the retry rules."""
        return await self._with_retries(
            lambda payload: self.client.update(self.table, value, payload[0], column=self.spec.key),
            [row],
            provision_parent,
        )

    async def delete(self, value: str) -> list[Row]:
        return await self.client.delete(self.table, value, column=self.spec.key)

    async def _with_retries(
        self,
        send: Callable[[list[Row]], Awaitable[list[Row]]],
        rows: list[Row],
        provision_parent: ProvisionParent | None,
    ) -> list[Row]:
        try:
            return await send(rows)
        except ForeignKeyViolationError as e:
            if provision_parent is None:
                raise
            logger.info(
                f"{self.table}: missing parent in {e.parent_table or 'unknown table'}, provisioning"
            )
            if not await provision_parent(e):
                raise
            return await send(rows)
        except ColumnMissingError as e:
            column = e.column
            if not column or column not in self.spec.optional_columns:
                raise
            logger.warning(f"{self.table}: backend lacks optional column {column}, retrying without it")
            stripped = [{k: v for k, v in row.items() if k != column} for row in rows]
            return await send(stripped)


# =============================================================================
# Dual Write
# =============================================================================

async def write_through(
    remote_call: Callable[[], Awaitable[T]] | None,
    local_call: Callable[[T | None], Awaitable[bool]],
    *,
    local_key: str,
    entity: str,
) -> SyncResult[T | None]:
    """
    Write remotely when possible, always keep the local cache in step.

    Args:
        remote_call: The remote write, or None when the remote is unconfigured
        local_call: Persists locally; receives the remote value (None on fallback)
            and returns False when local persistence is unavailable
        local_key: LocalStore key, for errors
        entity: Label for logs

    Returns:
        SyncResult tagged remote, or local-fallback with the reason

    Raises:
        LocalPersistenceError: Remote unavailable and the local write failed
        SparkerySyncException: Any remote failure other than a missing
            relation or a network failure
    """
    detail = NOT_CONFIGURED
    if remote_call is not None:
        try:
            value = await remote_call()
        except ConfigurationMissingError:
            detail = NOT_CONFIGURED
        except RelationMissingError as e:
            detail = f"relation missing: {e.relation or 'unknown'}"
            logger.warning(f"{entity}: remote table missing, saving locally only")
        except NetworkFailureError as e:
            detail = f"network failure: {e.details.get('error', '')}".rstrip(": ")
            logger.warning(f"{entity}: remote unreachable, saving locally only")
        else:
            if not await local_call(value):
                logger.warning(f"{entity}: remote write succeeded but local cache update failed ({local_key})")
            return SyncResult.remote(value)

    if not await local_call(None):
        raise LocalPersistenceError(local_key)
    return SyncResult.local(None, detail)


# =============================================================================
# Read Policy
# =============================================================================

async def read_remote(
    mirror: RemoteMirror,
    entity: str,
    filters: Sequence[tuple[str, str]] = (),
) -> tuple[list[Row] | None, str | None]:
    """
    Fetch a table for a merge-on-read.

    Returns:
        (rows, None) when the backend answered, or (None, reason) when the
        cache alone must serve the read: remote unconfigured, relation
        missing, or backend unreachable. Other failures propagate.
    """
    if not mirror.is_configured:
        return None, NOT_CONFIGURED
    try:
        rows = await mirror.list(filters)
    except RelationMissingError as e:
        logger.warning(f"{entity}: remote table missing, serving local cache")
        return None, f"relation missing: {e.relation or mirror.table}"
    except NetworkFailureError as e:
        logger.warning(f"{entity}: remote unreachable, serving local cache")
        return None, f"network failure: {e.details.get('error', '')}".rstrip(": ")
    return rows, None


def overlay_rows(
    items: list[ModelT],
    rows: list[Row],
    *,
    key: str = "id",
) -> list[ModelT]:
    """
    Apply the rows a write returned onto the submitted models.

    Fields the backend did not echo (e.g. an optional column it lacks) keep
    their submitted value. A row that does not validate is ignored.
    """
    returned = {row.get(key): row for row in rows if isinstance(row, dict)}
    saved: list[ModelT] = []
    for item in items:
        row = returned.get(getattr(item, key))
        if row is None:
            saved.append(item)
            continue
        try:
            saved.append(type(item).model_validate({**item.to_row(), **row}))
        except ValidationError as e:
            logger.warning(f"Ignoring invalid row echoed for {getattr(item, key)}: {e.error_count()} error(s)")
            saved.append(item)
    return saved
