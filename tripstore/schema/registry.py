"""
Registry of the entity kinds a store may hold.

The codec resolves snapshots to entity types by name and entities to
entity types by class, both through this registry. A DocumentStore
configured with a registry refuses to save kinds it does not know.

Invariants:
    - Built once at startup, then frozen before a store opens
    - Entity names are unique
    - The fingerprint covers every entity kind and field, sorted by name

Example:
    >>> registry = SchemaRegistry()
    >>> registry.register(TripType)
    >>> registry.freeze()
    'sha256:...'
    >>> registry.get("Trip").get_field("destination")
    FieldDef(name='destination', kind=<FieldKind.STRING: 'str'>, ...)
"""

from __future__ import annotations

import hashlib
import json
import logging
import threading
from typing import Any, Iterator

from .types import EntityTypeDef

logger = logging.getLogger(__name__)


class RegistryFrozenError(Exception):
    """The registry was modified after freeze()."""
    pass


class DuplicateRegistrationError(Exception):
    """An entity name was registered twice."""
    pass


class UnknownEntityTypeError(LookupError):
    """An entity kind or class is not registered."""
    pass


class SchemaRegistry:
    """Entity types by name and by factory class.

    Thread safety:
        register() and freeze() hold a lock. Lookups take none; the
        registry is expected to be frozen before concurrent use.
    """

    def __init__(self) -> None:
        self._by_name: dict[str, EntityTypeDef] = {}
        self._by_factory: dict[Any, EntityTypeDef] = {}
        self._fingerprint: str | None = None
        self._lock = threading.Lock()

    @property
    def frozen(self) -> bool:
        return self._fingerprint is not None

    @property
    def fingerprint(self) -> str | None:
        """sha256 of the canonical schema, set by freeze()."""
        return self._fingerprint

    def register(self, entity_type: EntityTypeDef) -> None:
        """Add an entity type.

        Raises:
            RegistryFrozenError: If freeze() was already called
            DuplicateRegistrationError: If the name is taken
        """
        with self._lock:
            if self.frozen:
                raise RegistryFrozenError(
                    f"Cannot register '{entity_type.name}' after the registry was frozen"
                )
            if entity_type.name in self._by_name:
                raise DuplicateRegistrationError(
                    f"Entity type '{entity_type.name}' is already registered"
                )
            self._by_name[entity_type.name] = entity_type
            self._by_factory[entity_type.factory] = entity_type

        logger.debug("Registered entity type", extra={"entity": entity_type.name})

    def get(self, name: str) -> EntityTypeDef:
        """Entity type registered under name.

        Raises:
            UnknownEntityTypeError: If name is not registered
        """
        entity_type = self._by_name.get(name)
        if entity_type is None:
            raise UnknownEntityTypeError(f"Unknown entity type '{name}'")
        return entity_type

    def get_for_entity(self, entity: Any) -> EntityTypeDef:
        """Entity type whose factory is the class of entity.

        Raises:
            UnknownEntityTypeError: If the class is not registered
        """
        entity_type = self._by_factory.get(type(entity))
        if entity_type is None:
            raise UnknownEntityTypeError(
                f"No entity type registered for class {type(entity).__name__}"
            )
        return entity_type

    def __contains__(self, name: object) -> bool:
        return name in self._by_name

    def entity_types(self) -> Iterator[EntityTypeDef]:
        for name in self.entity_names():
            yield self._by_name[name]

    def entity_names(self) -> list[str]:
        return sorted(self._by_name)

    def freeze(self) -> str:
        """Stop accepting registrations and compute the fingerprint.

        Returns:
            The fingerprint, "sha256:<hex>"

        Raises:
            RegistryFrozenError: If already frozen
        """
        with self._lock:
            if self.frozen:
                raise RegistryFrozenError("Registry is already frozen")
            canonical = json.dumps(self.to_dict(), sort_keys=True, separators=(",", ":"))
            self._fingerprint = "sha256:" + hashlib.sha256(canonical.encode("utf-8")).hexdigest()

        logger.info(
            "Schema registry frozen",
            extra={"entity_types": self.entity_names(), "fingerprint": self._fingerprint},
        )
        return self._fingerprint

    def to_dict(self) -> dict[str, Any]:
        return {"entity_types": [t.to_dict() for t in self.entity_types()]}

    def validate_all(self) -> list[str]:
        """Report reference fields that point at unregistered kinds."""
        return [
            f"Field '{f.name}' in entity type '{t.name}' "
            f"references unknown entity type '{f.ref_entity}'"
            for t in self.entity_types()
            for f in t.get_reference_fields()
            if f.ref_entity not in self._by_name
        ]
