"""
Snapshot codec: entity objects to snapshots and back.

The codec uses the SchemaRegistry to know which fields an entity kind
carries and how to validate them. Conversion to a snapshot is pure; the
reverse direction validates every field before building the entity.

Invariants:
    - to_snapshot() never fails for a registered entity class
    - from_snapshot() either returns a fully built entity or raises DecodeError
    - remap_references() only touches reference-valued fields
"""

from __future__ import annotations

import logging
from typing import Any, Mapping

from ..schema.registry import SchemaRegistry, UnknownEntityTypeError
from .errors import DecodeError
from .identifiers import Identifier
from .snapshot import Snapshot

logger = logging.getLogger(__name__)


class SnapshotCodec:
    """Converts registered entity objects to snapshots and back.

    Example:
        >>> codec = SnapshotCodec(build_trip_registry())
        >>> snap = codec.to_snapshot(trip, Identifier.provisional_for("trips_data", "Trip"))
        >>> codec.from_snapshot(snap) == trip
        True
    """

    def __init__(self, registry: SchemaRegistry) -> None:
        self.registry = registry

    def to_snapshot(self, entity: Any, identifier: Identifier) -> Snapshot:
        """Capture the current field values of an entity.

        Raises:
            UnknownEntityTypeError: If the entity's class is not registered
            ValueError: If identifier names a different entity kind
        """
        entity_type = self.registry.get_for_entity(entity)
        if identifier.entity_name != entity_type.name:
            raise ValueError(
                f"Identifier {identifier.token} does not name a '{entity_type.name}'"
            )
        values = {f.name: getattr(entity, f.name) for f in entity_type.fields}
        return Snapshot(identifier, values)

    def from_snapshot(self, snapshot: Snapshot) -> Any:
        """Build an entity object from a snapshot.

        Optional fields absent from the snapshot take their schema default.

        Raises:
            DecodeError: If the kind is unknown or a field is missing or malformed
        """
        token = snapshot.identifier.token
        try:
            entity_type = self.registry.get(snapshot.entity_name)
        except UnknownEntityTypeError as e:
            raise DecodeError(str(e), identifier=token)

        values = dict(snapshot.values)
        is_valid, errors = entity_type.validate_values(values)
        if not is_valid:
            raise DecodeError(
                f"Snapshot {token} does not match entity type '{entity_type.name}'",
                identifier=token,
                errors=errors,
            )

        kwargs = {f.name: values.get(f.name, f.default) for f in entity_type.fields}
        return entity_type.factory(**kwargs)


def remap_references(
    snapshot: Snapshot,
    mapping: Mapping[Identifier, Identifier],
) -> Snapshot:
    """Rewrite every reference in snapshot found in mapping.

    Returns the same snapshot object when nothing needs rewriting.
    """
    if not mapping or not any(ref in mapping for ref in snapshot.references().values()):
        return snapshot
    return snapshot.copy(remapped_identifiers=mapping)
