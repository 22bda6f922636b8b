# =============================================================================
# lib/utils.py - Shared Utilities
# =============================================================================
# Common helpers used across the services: client-side identifiers,
# timestamps and id-keyed list edits on cached collections. Identifiers
# are generated on the client because every remote write is an upsert
# keyed by them.
# =============================================================================

import secrets
import string
import time
from datetime import datetime, timezone
from typing import Any

_ID_ALPHABET = string.ascii_lowercase + string.digits


def random_suffix(length: int = 6) -> str:
    """Lowercase alphanumeric suffix, e.g. 'k3x9qa'."""
    return "".join(secrets.choice(_ID_ALPHABET) for _ in range(length))


def generate_id(prefix: str) -> str:
    """
    Generate a client-side identifier.

    Format: {prefix}-{epoch millis}-{6 random chars}

    Example:
        generate_id("job")  # "job-1767225600000-a1b2c3"
    """
    return f"{prefix}-{int(time.time() * 1000)}-{random_suffix()}"


def utc_now() -> datetime:
    """Timezone-aware current time in UTC."""
    return datetime.now(timezone.utc)


def put_by_id(items: list, item: Any, *, key: str = "id", front: bool = True) -> None:
    """
    Replace the entry with the same id in place, or add it.

    New entries go to the front (newest first) unless front is False.
    Works on models (attribute) and dicts (key lookup).
    """
    item_id = _id_of(item, key)
    for index, existing in enumerate(items):
        if _id_of(existing, key) == item_id:
            items[index] = item
            return
    if front:
        items.insert(0, item)
    else:
        items.append(item)


def without_id(items: list, item_id: str, *, key: str = "id") -> list:
    """Copy of items minus the entry with item_id."""
    return [existing for existing in items if _id_of(existing, key) != item_id]


def find_by_id(items: list, item_id: str, *, key: str = "id") -> Any | None:
    for existing in items:
        if _id_of(existing, key) == item_id:
            return existing
    return None


def _id_of(item: Any, key: str) -> Any:
    if isinstance(item, dict):
        return item.get(key)
    return getattr(item, key, None)
