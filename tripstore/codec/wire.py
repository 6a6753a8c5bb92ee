"""
On-disk record format for snapshots.

Each snapshot is stored as one JSON object:

    {
        "entity": "LivingAccommodation",
        "identifier": "p:trips_data/LivingAccommodation/0B6E...",
        "values": {
            "address": "Yosemite National Park, CA 95389",
            "is_confirmed": true,
            "name": "Yosemite",
            "trip": {"$ref": "p:trips_data/Trip/6F1C..."}
        }
    }

Tagged values:
    {"$ref": "<token>"}   reference to another entity
    {"$date": "<iso>"}    timezone-explicit date, always written in UTC

Invariants:
    - Record shape is validated before any value is decoded
    - Dates are always written with an explicit +00:00 offset
    - Decoding never returns a partially-populated snapshot
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError

from .errors import DecodeError
from .identifiers import Identifier
from .snapshot import Snapshot

REF_TAG = "$ref"
DATE_TAG = "$date"


class SnapshotRecord(BaseModel):
    """Validated shape of one stored snapshot."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    identifier: str
    entity: str
    values: dict[str, Any] = {}


def encode_value(value: Any) -> Any:
    """Encode one snapshot value into its JSON form."""
    if isinstance(value, Identifier):
        return {REF_TAG: value.token}
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return {DATE_TAG: value.astimezone(timezone.utc).isoformat()}
    return value


def decode_value(value: Any) -> Any:
    """Decode one JSON value, resolving tagged references and dates.

    Raises:
        DecodeError: If a tagged value is malformed
    """
    if isinstance(value, dict) and len(value) == 1:
        if REF_TAG in value:
            return Identifier.from_token(value[REF_TAG])
        if DATE_TAG in value:
            raw = value[DATE_TAG]
            try:
                parsed = datetime.fromisoformat(raw)
            except (TypeError, ValueError) as e:
                raise DecodeError(f"Invalid date value {raw!r}: {e}")
            if parsed.tzinfo is None:
                raise DecodeError(f"Date value {raw!r} has no timezone")
            return parsed
    return value


def encode_snapshot(snapshot: Snapshot) -> dict[str, Any]:
    """Convert a snapshot to its JSON record."""
    return {
        "identifier": snapshot.identifier.token,
        "entity": snapshot.entity_name,
        "values": {name: encode_value(v) for name, v in snapshot.values.items()},
    }


def decode_snapshot(data: Any) -> Snapshot:
    """Build a snapshot from its JSON record.

    Raises:
        DecodeError: If the record shape, identifier or any value is invalid
    """
    try:
        record = SnapshotRecord.model_validate(data)
    except ValidationError as e:
        token = data.get("identifier") if isinstance(data, dict) else None
        raise DecodeError(
            f"Invalid snapshot record: {e.error_count()} error(s)",
            identifier=token if isinstance(token, str) else None,
            errors=[err["msg"] for err in e.errors()],
        )

    identifier = Identifier.from_token(record.identifier)
    if identifier.entity_name != record.entity:
        raise DecodeError(
            f"Entity tag '{record.entity}' does not match identifier {record.identifier}",
            identifier=record.identifier,
        )

    try:
        values = {name: decode_value(v) for name, v in record.values.items()}
    except DecodeError as e:
        raise DecodeError(str(e), identifier=record.identifier)

    return Snapshot(identifier, values)
