"""
Schema module for tripstore.

This module provides the type system for persisted entities, including:
- Type definitions (EntityTypeDef, FieldDef)
- Schema registry for type management
- The Trip / LivingAccommodation domain model

Invariants:
    - Entity names are immutable once data has been written with them
    - All entity types must be registered before a store is opened
"""

from .registry import (
    DuplicateRegistrationError,
    RegistryFrozenError,
    SchemaRegistry,
    UnknownEntityTypeError,
)
from .trips import (
    LIVING_ACCOMMODATION,
    TRIP,
    LivingAccommodation,
    LivingAccommodationType,
    Trip,
    TripType,
    build_trip_registry,
)
from .types import EntityTypeDef, FieldDef, FieldKind, field

__all__ = [
    # Types
    "FieldDef",
    "FieldKind",
    "EntityTypeDef",
    "field",
    # Registry
    "SchemaRegistry",
    "RegistryFrozenError",
    "DuplicateRegistrationError",
    "UnknownEntityTypeError",
    # Trip model
    "Trip",
    "LivingAccommodation",
    "TripType",
    "LivingAccommodationType",
    "TRIP",
    "LIVING_ACCOMMODATION",
    "build_trip_registry",
]
