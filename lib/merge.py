# =============================================================================
# lib/merge.py - Remote/Local Collection Merge
# =============================================================================
# Combines a collection fetched from the backend with the local cache so a
# read can tolerate partial connectivity:
# - id in both sources      -> remote value
# - id only in local        -> kept (not yet synchronized)
# - id only in remote       -> added
#
# Duplicate ids inside one source resolve to that source's last occurrence.
# Between sources, remote always outranks local no matter how the inputs are
# ordered. Output order is the entity's freshness order with the id as the
# tie-breaker, so the result is deterministic.
#
# Known limitation: an offline edit to a record that also exists remotely is
# replaced by the remote copy; fields are not reconciled.
# =============================================================================

from __future__ import annotations

from typing import Any, Callable, Iterable, TypeVar

T = TypeVar("T")

KeyFunc = Callable[[T], str]
OrderFunc = Callable[[T], Any]


def _index(items: Iterable[T], key: KeyFunc) -> dict[str, T]:
    indexed: dict[str, T] = {}
    for item in items:
        item_id = key(item)
        if item_id:
            indexed[item_id] = item
    return indexed


def merge_collections(
    remote: Iterable[T],
    local: Iterable[T],
    *,
    key: KeyFunc,
    order_key: OrderFunc | None = None,
    descending: bool = False,
) -> list[T]:
    """
    Merge two collections keyed by identifier, preferring remote values.

    Args:
        remote: Items fetched from the backend
        local: Items from the local cache
        key: Returns the identifier of an item; items with an empty id are dropped
        order_key: Freshness metric used to sort the result (defaults to the id)
        descending: Sort newest first (e.g. inspections by submission time)

    Returns:
        New list; the inputs are not modified.

    Example:
        merged = merge_collections(remote_jobs, local_jobs, key=lambda j: j.id,
                                   order_key=lambda j: (j.scheduled_date, j.scheduled_start_time))
    """
    merged = _index(local, key)
    merged.update(_index(remote, key))

    items = list(merged.values())
    # Two stable sorts: id as the tie-breaker, then the freshness metric.
    items.sort(key=key)
    if order_key is not None:
        items.sort(key=order_key, reverse=descending)
    elif descending:
        items.reverse()
    return items


def merge_mappings(
    remote: dict[str, T],
    local: dict[str, T],
) -> dict[str, T]:
    """
    Merge two id -> value mappings with the same precedence rule.

    Used for collections stored as maps (employee locations keyed by employee id).
    """
    merged = dict(local)
    merged.update(remote)
    return {item_id: merged[item_id] for item_id in sorted(merged)}
