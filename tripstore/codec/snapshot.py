"""
Immutable entity snapshots.

A Snapshot is the self-contained serialized form of one entity version:
its identifier plus a mapping of field name to value. Values are JSON
scalars, timezone-aware datetimes, or Identifier references.

Invariants:
    - A snapshot never changes after construction; copy() returns a new one
    - Two snapshots are equal when identifier and values are equal
"""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Mapping

from .identifiers import Identifier


@dataclass(frozen=True)
class Snapshot:
    """One entity version, keyed by its identifier.

    Attributes:
        identifier: Identifier of the entity
        values: Read-only mapping of field name to value

    Example:
        >>> snap = Snapshot(trip_id, {"name": "Yosemite", "living_accommodation": stay_id})
        >>> snap.entity_name
        'Trip'
    """

    identifier: Identifier
    values: Mapping[str, Any]

    def __post_init__(self) -> None:
        object.__setattr__(self, "values", MappingProxyType(dict(self.values)))

    def __hash__(self) -> int:
        return hash(self.identifier)

    @property
    def entity_name(self) -> str:
        return self.identifier.entity_name

    def references(self) -> dict[str, Identifier]:
        """Fields whose value is a reference to another entity."""
        return {name: v for name, v in self.values.items() if isinstance(v, Identifier)}

    def copy(
        self,
        identifier: Identifier | None = None,
        remapped_identifiers: Mapping[Identifier, Identifier] | None = None,
    ) -> Snapshot:
        """Return a new snapshot with a new identifier and/or remapped references.

        Args:
            identifier: Replacement identifier (defaults to the current one)
            remapped_identifiers: Old -> new identifier mapping applied to
                every reference-valued field

        Returns:
            New Snapshot; fields not holding a remapped reference are unchanged
        """
        values = dict(self.values)
        if remapped_identifiers:
            for name, value in values.items():
                if isinstance(value, Identifier) and value in remapped_identifiers:
                    values[name] = remapped_identifiers[value]
        return Snapshot(identifier or self.identifier, values)

    def __repr__(self) -> str:
        return f"Snapshot({self.identifier.token}, {dict(self.values)!r})"
