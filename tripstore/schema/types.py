"""
Entity and field definitions for persisted trip data.

An EntityTypeDef tells the codec which attributes of an entity object are
stored, what each one may hold, and how to rebuild the object from a
snapshot.

Invariants:
    - Entity names are unique within a registry and appear in identifiers
    - Field names are unique within an entity type
    - REFERENCE fields always name the entity kind they point at
    - DATE values are timezone-aware datetimes

How to change safely:
    - Add new fields as optional (required=False) with a default
    - Never rename an entity kind; existing identifiers embed the name
    - Never change the kind of an existing field

Example:
    >>> Place = EntityTypeDef(
    ...     name="Place",
    ...     factory=Place,
    ...     fields=(
    ...         field("name", "str", required=True),
    ...         field("visited", "bool", default=False),
    ...     ),
    ... )
"""

from __future__ import annotations

from dataclasses import dataclass
from dataclasses import field as dataclass_field
from datetime import datetime
from enum import Enum
from typing import Any, Callable


class FieldKind(Enum):
    """Value kinds a snapshot field can hold."""

    STRING = "str"
    INTEGER = "int"
    FLOAT = "float"
    BOOLEAN = "bool"
    DATE = "date"  # aware datetime
    REFERENCE = "ref"  # Identifier

    @classmethod
    def from_str(cls, value: str) -> FieldKind:
        """Look up a kind by its short name ("str", "ref", ...).

        Raises:
            ValueError: If no kind has that name
        """
        try:
            return cls(value)
        except ValueError:
            names = ", ".join(k.value for k in cls)
            raise ValueError(f"Unknown field kind {value!r} (expected one of: {names})") from None


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


_SCALAR_CHECKS: dict[FieldKind, Callable[[Any], bool]] = {
    FieldKind.STRING: lambda v: isinstance(v, str),
    FieldKind.INTEGER: _is_int,
    FieldKind.FLOAT: lambda v: _is_int(v) or isinstance(v, float),
    FieldKind.BOOLEAN: lambda v: isinstance(v, bool),
    FieldKind.DATE: lambda v: isinstance(v, datetime) and v.tzinfo is not None,
}


@dataclass(frozen=True)
class FieldDef:
    """One stored attribute of an entity.

    Attributes:
        name: Attribute name on the entity object and key in the snapshot
        kind: Kind of value stored
        required: Whether a snapshot must carry a non-null value
        default: Value used when the snapshot omits an optional field
        ref_entity: Entity kind referenced, for REFERENCE fields
        description: Free-form note
    """

    name: str
    kind: FieldKind
    required: bool = False
    default: Any = None
    ref_entity: str | None = None
    description: str = ""

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("FieldDef needs a name")
        if self.kind is FieldKind.REFERENCE and not self.ref_entity:
            raise ValueError(f"ref_entity required for REFERENCE field '{self.name}'")

    def validate_value(self, value: Any) -> tuple[bool, str | None]:
        """Check one snapshot value.

        Returns:
            (True, None) if the value is acceptable, else (False, message)
        """
        if value is None:
            return (False, f"Field '{self.name}' is required") if self.required else (True, None)

        if self.kind is not FieldKind.REFERENCE:
            if _SCALAR_CHECKS[self.kind](value):
                return True, None
            return False, f"Field '{self.name}' expects {self.kind.value}, got {type(value).__name__}"

        # Imported lazily: the codec package depends on this module.
        from ..codec.identifiers import Identifier

        if not isinstance(value, Identifier):
            return False, f"Field '{self.name}' must be an Identifier, got {type(value).__name__}"
        if value.entity_name != self.ref_entity:
            return (
                False,
                f"Field '{self.name}' must reference '{self.ref_entity}', got '{value.entity_name}'",
            )
        return True, None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"name": self.name, "kind": self.kind.value}
        if self.required:
            data["required"] = True
        if self.ref_entity is not None:
            data["ref_entity"] = self.ref_entity
        return data


def field(
    name: str,
    kind: str | FieldKind,
    *,
    required: bool = False,
    default: Any = None,
    ref_entity: str | None = None,
    description: str = "",
) -> FieldDef:
    """Shorthand for FieldDef accepting the kind's short name.

    Example:
        >>> field("trip", "ref", ref_entity="Trip")
    """
    return FieldDef(
        name,
        FieldKind.from_str(kind) if isinstance(kind, str) else kind,
        required=required,
        default=default,
        ref_entity=ref_entity,
        description=description,
    )


@dataclass(frozen=True)
class EntityTypeDef:
    """A persisted entity kind.

    Attributes:
        name: Entity kind name, embedded in every identifier of this kind
        factory: Callable building the entity from keyword field values
        fields: Stored fields, in declaration order
        description: Free-form note

    The factory must accept every field name as a keyword argument.
    """

    name: str
    factory: Callable[..., Any]
    fields: tuple[FieldDef, ...] = dataclass_field(default_factory=tuple)
    description: str = ""

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("EntityTypeDef needs a name")
        if "/" in self.name or ":" in self.name:
            raise ValueError(f"Entity type name cannot contain '/' or ':': {self.name!r}")
        names = self.get_field_names()
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ValueError(f"Entity type '{self.name}' declares {duplicates} more than once")

    def get_field(self, name: str) -> FieldDef | None:
        return next((f for f in self.fields if f.name == name), None)

    def get_field_names(self) -> list[str]:
        return [f.name for f in self.fields]

    def get_reference_fields(self) -> list[FieldDef]:
        return [f for f in self.fields if f.kind is FieldKind.REFERENCE]

    def validate_values(self, values: dict[str, Any]) -> tuple[bool, list[str]]:
        """Check a snapshot's values against this entity type.

        Optional fields missing from values are checked using their default.

        Returns:
            (is_valid, errors)
        """
        errors: list[str] = []

        extra = sorted(set(values) - set(self.get_field_names()))
        if extra:
            errors.append(f"Unknown fields: {extra}")

        for f in self.fields:
            if f.required and f.name not in values:
                errors.append(f"Field '{f.name}' is required")
                continue
            ok, message = f.validate_value(values.get(f.name, f.default))
            if not ok:
                errors.append(message or f"Field '{f.name}' is invalid")

        return not errors, errors

    def to_dict(self) -> dict[str, Any]:
        """Canonical form used for the registry fingerprint."""
        return {"name": self.name, "fields": [f.to_dict() for f in self.fields]}
