"""
Persistent identifiers for stored entities.

An Identifier names one entity in one store. Two flavours exist:
- provisional: minted by the client for an entity that was never saved
- permanent: minted by the DocumentStore when the entity is first inserted

Token format:
    <p|t>:<store_id>/<entity_name>/<primary_key>

    "p" marks a permanent identifier, "t" a provisional (temporary) one.
    Example: p:trips_data/Trip/6F1C9A40-0E0B-4C1E-9B59-2C3E3F0D8B11

Invariants:
    - Equality and hashing cover all four components
    - A permanent identifier never changes
    - store_id and entity_name never contain '/'
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass

from .errors import DecodeError

PERMANENT_PREFIX = "p"
PROVISIONAL_PREFIX = "t"


@dataclass(frozen=True)
class Identifier:
    """Identifier of one entity in one store.

    Attributes:
        store_id: Identifier of the owning store (document file name)
        entity_name: Entity kind
        primary_key: Key unique within (store_id, entity_name)
        provisional: True until the store assigns a permanent identifier
    """

    store_id: str
    entity_name: str
    primary_key: str
    provisional: bool = False

    def __post_init__(self) -> None:
        if not self.store_id or "/" in self.store_id:
            raise ValueError(f"Invalid store_id: {self.store_id!r}")
        if not self.entity_name or "/" in self.entity_name:
            raise ValueError(f"Invalid entity_name: {self.entity_name!r}")
        if not self.primary_key:
            raise ValueError("primary_key cannot be empty")

    @classmethod
    def provisional_for(cls, store_id: str, entity_name: str) -> Identifier:
        """Mint a client-side identifier for a not yet saved entity."""
        return cls(store_id, entity_name, uuid.uuid4().hex, provisional=True)

    @classmethod
    def permanent_for(cls, store_id: str, entity_name: str) -> Identifier:
        """Mint a store-assigned identifier."""
        return cls(store_id, entity_name, str(uuid.uuid4()).upper())

    @property
    def token(self) -> str:
        """Compact string form of the identifier."""
        prefix = PROVISIONAL_PREFIX if self.provisional else PERMANENT_PREFIX
        return f"{prefix}:{self.store_id}/{self.entity_name}/{self.primary_key}"

    @classmethod
    def from_token(cls, token: str) -> Identifier:
        """Parse a compact token.

        Raises:
            DecodeError: If the token is malformed
        """
        if not isinstance(token, str):
            raise DecodeError(f"Identifier token must be a string, got {type(token).__name__}")

        prefix, sep, rest = token.partition(":")
        if not sep or prefix not in (PERMANENT_PREFIX, PROVISIONAL_PREFIX):
            raise DecodeError(f"Invalid identifier token: {token!r}", identifier=token)

        parts = rest.split("/", 2)
        if len(parts) != 3:
            raise DecodeError(f"Invalid identifier token: {token!r}", identifier=token)

        try:
            return cls(
                store_id=parts[0],
                entity_name=parts[1],
                primary_key=parts[2],
                provisional=prefix == PROVISIONAL_PREFIX,
            )
        except ValueError as e:
            raise DecodeError(f"Invalid identifier token {token!r}: {e}", identifier=token)

    def __str__(self) -> str:
        return self.token
