"""
Base protocol and types for the transaction log.

Every successful DocumentStore.save() appends one Transaction describing
which entities it inserted, updated or deleted. Readers keep a
HistoryToken cursor and ask for the transactions committed after it.

Invariants:
    - Tokens are strictly increasing integers starting at 1
    - Transactions are immutable once appended
    - scan_after() returns transactions in commit order
    - ChangeKind is a closed set; unknown kinds fail to decode

How to change safely:
    - Protocol changes require updating all implementations
    - Adding a ChangeKind member requires handling it in the change reducer
"""

from __future__ import annotations

import json
from abc import abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol, Sequence, runtime_checkable

from ..codec.errors import DecodeError
from ..codec.identifiers import Identifier


class TransactionLogError(Exception):
    """Base exception for transaction log operations."""
    pass


class LogDecodeError(TransactionLogError):
    """A log entry or history token could not be decoded."""
    pass


class ChangeKind(Enum):
    """Kind of change a transaction made to one entity."""

    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True)
class Change:
    """Change made to one entity by a transaction.

    Attributes:
        kind: Insert, update or delete
        identifier: Permanent identifier of the changed entity
    """

    kind: ChangeKind
    identifier: Identifier

    @property
    def entity_name(self) -> str:
        return self.identifier.entity_name

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind.value, "identifier": self.identifier.token}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Change:
        """Create from dictionary.

        Raises:
            LogDecodeError: If the kind is unknown or the identifier is malformed
        """
        try:
            return cls(
                kind=ChangeKind(data["kind"]),
                identifier=Identifier.from_token(data["identifier"]),
            )
        except (KeyError, TypeError, ValueError, DecodeError) as e:
            raise LogDecodeError(f"Invalid change record {data!r}: {e}")


@dataclass(frozen=True, order=True)
class HistoryToken:
    """Position in the transaction log.

    The token of a transaction is the cursor value after it was committed.
    """

    value: int

    def to_bytes(self) -> bytes:
        """Serialize for the preference store."""
        return json.dumps({"value": self.value}).encode("utf-8")

    @classmethod
    def from_bytes(cls, data: bytes) -> HistoryToken:
        """Deserialize a cursor blob.

        Raises:
            LogDecodeError: If the blob is not a valid token
        """
        try:
            value = json.loads(data.decode("utf-8"))["value"]
        except (UnicodeDecodeError, json.JSONDecodeError, KeyError, TypeError) as e:
            raise LogDecodeError(f"Invalid history token: {e}")
        if not isinstance(value, int) or isinstance(value, bool) or value < 0:
            raise LogDecodeError(f"Invalid history token value: {value!r}")
        return cls(value)

    def __str__(self) -> str:
        return str(self.value)


@dataclass(frozen=True)
class Transaction:
    """One committed save.

    Attributes:
        token: Cursor value after this transaction
        author: Who made the write (e.g. "widget"); None when unattributed
        changes: Per-entity changes, in the order the save applied them
        timestamp_ms: Commit time (Unix ms)
    """

    token: HistoryToken
    author: str | None
    changes: tuple[Change, ...] = field(default_factory=tuple)
    timestamp_ms: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "token": self.token.value,
            "author": self.author,
            "timestamp_ms": self.timestamp_ms,
            "changes": [c.to_dict() for c in self.changes],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Transaction:
        """Create from dictionary.

        Raises:
            LogDecodeError: If any field is missing or malformed
        """
        if not isinstance(data, dict):
            raise LogDecodeError(f"Transaction record must be an object, got {type(data).__name__}")
        try:
            token = data["token"]
        except KeyError as e:
            raise LogDecodeError(f"Invalid transaction record: missing {e}")
        author = data.get("author")
        changes = data.get("changes", [])
        timestamp_ms = data.get("timestamp_ms", 0)

        if not isinstance(token, int) or isinstance(token, bool) or token < 1:
            raise LogDecodeError(f"Invalid transaction token: {token!r}")
        if not isinstance(timestamp_ms, int) or isinstance(timestamp_ms, bool):
            raise LogDecodeError(f"Invalid transaction timestamp: {timestamp_ms!r}")
        if author is not None and not isinstance(author, str):
            raise LogDecodeError(f"Invalid transaction author: {author!r}")
        if not isinstance(changes, list):
            raise LogDecodeError("Transaction changes must be a list")

        return cls(
            token=HistoryToken(token),
            author=author,
            changes=tuple(Change.from_dict(c) for c in changes),
            timestamp_ms=timestamp_ms,
        )

    def __str__(self) -> str:
        return f"Transaction(token={self.token}, author={self.author}, changes={len(self.changes)})"


@runtime_checkable
class TransactionLog(Protocol):
    """Protocol for transaction log backends.

    Ordering contract:
        - append() assigns the next token; tokens never repeat
        - scan_after() yields transactions in token order

    Example:
        >>> log = InMemoryTransactionLog()
        >>> txn = await log.append("widget", [Change(ChangeKind.UPDATE, stay_id)])
        >>> await log.scan_after(None, "widget")
        [Transaction(token=1, author=widget, changes=1)]
    """

    @abstractmethod
    async def append(
        self,
        author: str | None,
        changes: Sequence[Change],
    ) -> Transaction:
        """Append a transaction and return it with its assigned token.

        Raises:
            TransactionLogError: If the entry cannot be stored
        """
        ...

    @abstractmethod
    async def scan_after(
        self,
        token: HistoryToken | None,
        author: str | None,
    ) -> list[Transaction]:
        """Return transactions strictly after token written by author.

        Args:
            token: Cursor; None returns the whole log for the author
            author: Author to match exactly

        Raises:
            TransactionLogError: If the log cannot be read
        """
        ...

    @abstractmethod
    async def last_token(self) -> HistoryToken | None:
        """Token of the most recent transaction, None for an empty log."""
        ...
