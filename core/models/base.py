# =============================================================================
# core/models/base.py - Shared Model Plumbing
# =============================================================================
# Base class and field types shared by the dispatch and inspection models.
#
# Two serializations exist for every entity:
# - local documents use the dashboard's camelCase keys (to_local)
# - remote rows use snake_case column names, i.e. the python field names
# Both are accepted on input (populate_by_name).
# =============================================================================

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Annotated, Any, Iterable, TypeVar

from pydantic import AfterValidator, BaseModel, BeforeValidator, ConfigDict, ValidationError
from pydantic.alias_generators import to_camel

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        return None
    return value


def _ensure_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# Optional free text; "" is stored as None so rows and documents agree
OptionalText = Annotated[str | None, BeforeValidator(_blank_to_none)]

# Timestamps are always timezone-aware
UtcDatetime = Annotated[datetime, AfterValidator(_ensure_utc)]


class CamelModel(BaseModel):
    """Base model: camelCase aliases for local JSON, field names for remote rows."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=False,
    )

    def to_local(self) -> dict[str, Any]:
        """Serialize for a local JSON document (camelCase, no nulls)."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


def parse_items(model: type[ModelT], items: Iterable[Any] | None, *, source: str) -> list[ModelT]:
    """
    Validate a list of raw dicts, skipping (and logging) invalid entries.

    Used when reading caches and remote tables, which must never fail a whole
    read because of one malformed record.
    """
    parsed: list[ModelT] = []
    for raw in items or []:
        try:
            parsed.append(model.model_validate(raw))
        except ValidationError as e:
            logger.warning(f"Skipping invalid {model.__name__} from {source}: {e.error_count()} error(s)")
    return parsed
