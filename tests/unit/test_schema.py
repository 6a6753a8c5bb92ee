"""
Unit tests for the schema types and registry.
"""

from dataclasses import dataclass
from datetime import datetime, timezone

import pytest

from tripstore.codec import Identifier
from tripstore.schema import (
    LIVING_ACCOMMODATION,
    TRIP,
    DuplicateRegistrationError,
    EntityTypeDef,
    FieldKind,
    RegistryFrozenError,
    SchemaRegistry,
    TripType,
    UnknownEntityTypeError,
    build_trip_registry,
    field,
)


@dataclass
class Flight:
    number: str
    trip: Identifier | None = None


FlightType = EntityTypeDef(
    name="Flight",
    factory=Flight,
    fields=(
        field("number", "str", required=True),
        field("trip", "ref", ref_entity=TRIP),
    ),
)


class TestFieldDef:
    """Tests for FieldDef validation."""

    def test_kind_from_str(self):
        assert FieldKind.from_str("ref") is FieldKind.REFERENCE
        with pytest.raises(ValueError):
            FieldKind.from_str("uuid")

    def test_reference_requires_target(self):
        with pytest.raises(ValueError):
            field("trip", "ref")

    @pytest.mark.parametrize(
        "kind,value,valid",
        [
            ("str", "x", True),
            ("str", 1, False),
            ("int", 1, True),
            ("int", True, False),
            ("float", 1, True),
            ("bool", False, True),
            ("bool", 0, False),
            ("date", datetime(2024, 1, 1, tzinfo=timezone.utc), True),
            ("date", datetime(2024, 1, 1), False),
        ],
    )
    def test_validate_value(self, kind, value, valid):
        is_valid, _ = field("f", kind).validate_value(value)

        assert is_valid is valid

    def test_reference_target_kind_checked(self):
        f = field("trip", "ref", ref_entity=TRIP)

        assert f.validate_value(Identifier("s", TRIP, "1")) == (True, None)
        assert f.validate_value(Identifier("s", LIVING_ACCOMMODATION, "1"))[0] is False
        assert f.validate_value("p:s/Trip/1")[0] is False


class TestEntityTypeDef:
    """Tests for EntityTypeDef."""

    def test_name_cannot_contain_separators(self):
        with pytest.raises(ValueError):
            EntityTypeDef(name="Trip/Leg", factory=dict)

    def test_duplicate_field_names(self):
        with pytest.raises(ValueError):
            EntityTypeDef(name="X", factory=dict, fields=(field("a", "str"), field("a", "int")))

    def test_unknown_fields_reported(self):
        is_valid, errors = FlightType.validate_values({"number": "UA1", "gate": "B2"})

        assert is_valid is False
        assert errors == ["Unknown fields: ['gate']"]

    def test_reference_fields(self):
        assert [f.name for f in TripType.get_reference_fields()] == ["living_accommodation"]


class TestSchemaRegistry:
    """Tests for SchemaRegistry."""

    def test_trip_registry(self):
        registry = build_trip_registry()

        assert registry.frozen
        assert registry.entity_names() == [LIVING_ACCOMMODATION, TRIP]
        assert registry.fingerprint.startswith("sha256:")
        assert registry.validate_all() == []

    def test_fingerprint_stable(self):
        assert build_trip_registry().fingerprint == build_trip_registry().fingerprint

    def test_frozen_rejects_registration(self):
        with pytest.raises(RegistryFrozenError):
            build_trip_registry().register(FlightType)

    def test_duplicate_registration(self):
        registry = SchemaRegistry()
        registry.register(FlightType)

        with pytest.raises(DuplicateRegistrationError):
            registry.register(FlightType)

    def test_unknown_lookup(self):
        with pytest.raises(UnknownEntityTypeError):
            build_trip_registry().get("Flight")

    def test_lookup_by_entity_class(self):
        registry = SchemaRegistry()
        registry.register(FlightType)

        assert registry.get_for_entity(Flight("UA1")) is FlightType
        assert "Flight" in registry

    def test_dangling_reference_reported(self):
        registry = SchemaRegistry()
        registry.register(FlightType)

        errors = registry.validate_all()

        assert errors == ["Field 'trip' in entity type 'Flight' references unknown entity type 'Trip'"]
