"""
In-memory evaluation of fetch predicates and sort orders.

DocumentStore.fetch() does not filter or sort. Callers fetch every
snapshot of a kind and then narrow the result here.

Example:
    >>> result = await store.fetch(FetchDescriptor(TRIP))
    >>> confirmed = filter_snapshots(result.snapshots, lambda s: s.values["is_confirmed"])
    >>> by_start = sort_snapshots(confirmed, "start_date")
"""

from __future__ import annotations

from typing import Any, Callable, Iterable

from ..codec.identifiers import Identifier
from ..codec.snapshot import Snapshot

SnapshotPredicate = Callable[[Snapshot], bool]


def filter_snapshots(
    snapshots: Iterable[Snapshot],
    predicate: SnapshotPredicate,
) -> list[Snapshot]:
    """Keep the snapshots matching predicate, preserving order."""
    return [s for s in snapshots if predicate(s)]


def _sort_key(value: Any) -> tuple:
    # None sorts first; references sort by token
    if value is None:
        return (0, "")
    if isinstance(value, Identifier):
        return (1, value.token)
    return (1, value)


def sort_snapshots(
    snapshots: Iterable[Snapshot],
    *keys: str,
    reverse: bool = False,
) -> list[Snapshot]:
    """Sort snapshots by one or more field names.

    Ties are broken by identifier token so the result is deterministic.
    """
    return sorted(
        snapshots,
        key=lambda s: tuple(_sort_key(s.values.get(k)) for k in keys) + (s.identifier.token,),
        reverse=reverse,
    )


def references_to(field_name: str, identifier: Identifier) -> SnapshotPredicate:
    """Predicate matching snapshots whose field_name references identifier."""
    return lambda s: s.values.get(field_name) == identifier
