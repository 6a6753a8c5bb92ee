"""
Trip domain model.

A Trip owns at most one LivingAccommodation. The accommodation is the
child in the parent/child relation the change reducer follows: edits made
to an accommodation mark its trip as unread.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from ..codec.identifiers import Identifier
from .registry import SchemaRegistry
from .types import EntityTypeDef, field

TRIP = "Trip"
LIVING_ACCOMMODATION = "LivingAccommodation"


@dataclass
class Trip:
    """A planned trip.

    Attributes:
        name: Trip name
        destination: Where the trip goes
        start_date: Departure (timezone-aware)
        end_date: Return (timezone-aware)
        living_accommodation: Identifier of the trip's accommodation, if any
    """

    name: str
    destination: str
    start_date: datetime
    end_date: datetime
    living_accommodation: Identifier | None = None


@dataclass
class LivingAccommodation:
    """Where a trip stays.

    Attributes:
        address: Street address
        name: Place name
        is_confirmed: Whether the booking is confirmed
        trip: Identifier of the owning trip, if linked
    """

    address: str
    name: str
    is_confirmed: bool = False
    trip: Identifier | None = None

    @property
    def display_address(self) -> str:
        return self.address or "No Address"

    @property
    def display_place_name(self) -> str:
        return self.name or "No Place"


TripType = EntityTypeDef(
    name=TRIP,
    factory=Trip,
    fields=(
        field("name", "str", required=True),
        field("destination", "str", required=True),
        field("start_date", "date", required=True),
        field("end_date", "date", required=True),
        field("living_accommodation", "ref", ref_entity=LIVING_ACCOMMODATION),
    ),
    description="A planned trip",
)

LivingAccommodationType = EntityTypeDef(
    name=LIVING_ACCOMMODATION,
    factory=LivingAccommodation,
    fields=(
        field("address", "str", required=True),
        field("name", "str", required=True),
        field("is_confirmed", "bool", default=False),
        field("trip", "ref", ref_entity=TRIP),
    ),
    description="Where a trip stays",
)


def build_trip_registry() -> SchemaRegistry:
    """Build and freeze the registry holding the trip entity types."""
    registry = SchemaRegistry()
    registry.register(TripType)
    registry.register(LivingAccommodationType)
    registry.freeze()
    return registry
