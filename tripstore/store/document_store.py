"""
JSON document store for tripstore.

This module persists a whole object graph as a single JSON file: an array
of snapshot records, one per live entity. Every save reads the full
document, applies the batch, and atomically replaces the file.

Invariants:
    - One JSON file per store; a missing file is an empty document
    - No two records share an identifier
    - Deleted entities are removed, never tombstoned
    - Inserted entities receive permanent identifiers; every reference to
      their provisional identifiers is rewritten in the same save
    - The file is replaced atomically; readers never see a partial write
    - Saves on one DocumentStore are serialized by an asyncio lock

Limitations:
    - Saves are not isolated across processes. Two processes saving the
      same document lose one of the saves (last writer wins). Only the app
      process writes; the widget only reads.
    - fetch() does not evaluate predicates or sort orders. Callers fetch a
      whole entity kind and use filter_snapshots() / sort_snapshots().

Document format:
    [
      {"entity": "Trip", "identifier": "p:trips_data/Trip/...", "values": {...}},
      ...
    ]

    Records are sorted by identifier token and written with sorted keys so
    the file diffs cleanly.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping

from ..codec.errors import DecodeError
from ..codec.identifiers import Identifier
from ..codec.snapshot import Snapshot
from ..codec.wire import decode_snapshot, encode_snapshot
from ..codec.codec import remap_references
from ..history.base import Change, ChangeKind, Transaction, TransactionLog, TransactionLogError
from ..schema.registry import SchemaRegistry, UnknownEntityTypeError
from .files import atomic_write
from .query import SnapshotPredicate

logger = logging.getLogger(__name__)


class DocumentStoreError(Exception):
    """Base exception for document store operations."""
    pass


class CorruptDocumentError(DocumentStoreError):
    """The document file exists but is not a valid document."""
    pass


class DocumentWriteError(DocumentStoreError):
    """The document file could not be replaced; the old file is intact."""
    pass


class UnsupportedQueryError(DocumentStoreError):
    """A fetch asked the store to filter or sort.

    Re-issue the fetch without predicate/sort_by and evaluate them in
    memory with filter_snapshots() / sort_snapshots().
    """
    pass


class PreferInMemoryFilterError(UnsupportedQueryError):
    """A fetch carried a predicate."""
    pass


class PreferInMemorySortError(UnsupportedQueryError):
    """A fetch carried sort keys."""
    pass


@dataclass(frozen=True)
class JSONStoreConfiguration:
    """Configuration of one document store.

    Attributes:
        name: Logical store name (e.g. "trips_v1")
        file_path: Path of the JSON document
        schema: Registry used to reject snapshots of unknown entity kinds
    """

    name: str
    file_path: Path
    schema: SchemaRegistry | None = None

    @property
    def identifier(self) -> str:
        """Store identifier embedded in permanent identifiers."""
        return Path(self.file_path).name


@dataclass(frozen=True)
class SaveRequest:
    """Batch of changes for one save.

    Attributes:
        inserted: Snapshots of new entities (provisional identifiers)
        updated: Snapshots replacing existing entities
        deleted: Snapshots of entities to remove
    """

    inserted: tuple[Snapshot, ...] = ()
    updated: tuple[Snapshot, ...] = ()
    deleted: tuple[Snapshot, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "inserted", tuple(self.inserted))
        object.__setattr__(self, "updated", tuple(self.updated))
        object.__setattr__(self, "deleted", tuple(self.deleted))

    @property
    def is_empty(self) -> bool:
        return not (self.inserted or self.updated or self.deleted)


@dataclass(frozen=True)
class SaveResult:
    """Outcome of a save.

    Attributes:
        store_identifier: Identifier of the store that saved the batch
        identifier_mapping: Provisional -> permanent identifier for each insert
        transaction: Log entry for the save, None if nothing was logged
    """

    store_identifier: str
    identifier_mapping: dict[Identifier, Identifier] = field(default_factory=dict)
    transaction: Transaction | None = None


@dataclass(frozen=True)
class FetchDescriptor:
    """What to fetch.

    Only entity_name is evaluated by the store. A predicate or sort_by
    makes fetch() raise UnsupportedQueryError.
    """

    entity_name: str
    predicate: SnapshotPredicate | None = None
    sort_by: tuple[str, ...] = ()


@dataclass(frozen=True)
class FetchResult:
    """Fetched snapshots.

    Attributes:
        descriptor: The descriptor that was fetched
        snapshots: Every snapshot of the requested kind
        related_snapshots: The same snapshots keyed by identifier
    """

    descriptor: FetchDescriptor
    snapshots: list[Snapshot]
    related_snapshots: dict[Identifier, Snapshot]


class DocumentStore:
    """Single-file JSON store of entity snapshots.

    Thread safety:
        write() and save() hold an asyncio lock, so saves issued from one
        event loop never interleave. read() and fetch() take no lock; the
        atomic file replacement keeps them consistent.

    Example:
        >>> store = DocumentStore(JSONStoreConfiguration("trips_v1", path))
        >>> stay = Identifier.provisional_for(store.identifier, "LivingAccommodation")
        >>> result = await store.save(SaveRequest(inserted=[Snapshot(stay, {...})]))
        >>> result.identifier_mapping[stay]
        Identifier(store_id='trips_data', entity_name='LivingAccommodation', ...)
    """

    def __init__(
        self,
        configuration: JSONStoreConfiguration,
        transaction_log: TransactionLog | None = None,
        default_author: str | None = None,
    ) -> None:
        """Initialize the store.

        Args:
            configuration: Store configuration
            transaction_log: Log receiving one Transaction per save
            default_author: Author recorded when save() is given none
        """
        self.configuration = configuration
        self.transaction_log = transaction_log
        self.default_author = default_author
        self._lock = asyncio.Lock()

    @property
    def identifier(self) -> str:
        return self.configuration.identifier

    @property
    def file_path(self) -> Path:
        return Path(self.configuration.file_path)

    async def read(self, entity_name: str | None = None) -> dict[Identifier, Snapshot]:
        """Load the document.

        Args:
            entity_name: Only return snapshots of this kind

        Returns:
            Mapping of identifier to snapshot; empty if the file does not exist

        Raises:
            CorruptDocumentError: If the file exists but cannot be parsed
        """
        return self._read_document(entity_name)

    async def write(self, snapshots: Mapping[Identifier, Snapshot]) -> None:
        """Replace the whole document with snapshots.

        Raises:
            DocumentWriteError: If the file cannot be replaced
        """
        async with self._lock:
            self._write_document(snapshots)

    async def save(self, request: SaveRequest, author: str | None = None) -> SaveResult:
        """Apply a batch of inserts, updates and deletes.

        Steps:
            1. Read the current document
            2. Give each inserted snapshot a permanent identifier
            3. Overwrite updated snapshots
            4. Remove deleted snapshots
            5. Rewrite provisional references in every surviving snapshot
            6. Write the document back
            7. Append a Transaction to the log

        Args:
            request: The batch to apply
            author: Transaction author (defaults to default_author)

        Returns:
            SaveResult with the provisional -> permanent mapping

        Raises:
            CorruptDocumentError: If the current document cannot be read
            DocumentWriteError: If the document cannot be written
            UnknownEntityTypeError: If a snapshot's kind is not in the schema
        """
        author = author if author is not None else self.default_author
        self._check_entity_kinds(request)

        async with self._lock:
            snapshots = self._read_document()
            remapped: dict[Identifier, Identifier] = {}
            changes: list[Change] = []

            for snapshot in request.inserted:
                permanent = Identifier.permanent_for(self.identifier, snapshot.entity_name)
                snapshots[permanent] = snapshot.copy(identifier=permanent)
                remapped[snapshot.identifier] = permanent
                changes.append(Change(ChangeKind.INSERT, permanent))

            for snapshot in request.updated:
                identifier = remapped.get(snapshot.identifier, snapshot.identifier)
                snapshots[identifier] = snapshot.copy(identifier=identifier)
                changes.append(Change(ChangeKind.UPDATE, identifier))

            for snapshot in request.deleted:
                identifier = remapped.get(snapshot.identifier, snapshot.identifier)
                snapshots.pop(identifier, None)
                changes.append(Change(ChangeKind.DELETE, identifier))

            snapshots = {
                identifier: remap_references(snapshot, remapped)
                for identifier, snapshot in snapshots.items()
            }

            self._write_document(snapshots)
            transaction = await self._append_transaction(author, changes)

        logger.debug(
            "Saved document",
            extra={
                "store": self.identifier,
                "inserted": len(request.inserted),
                "updated": len(request.updated),
                "deleted": len(request.deleted),
                "author": author,
            },
        )

        return SaveResult(
            store_identifier=self.identifier,
            identifier_mapping=remapped,
            transaction=transaction,
        )

    async def fetch(self, descriptor: FetchDescriptor) -> FetchResult:
        """Fetch every snapshot of one entity kind.

        Raises:
            PreferInMemoryFilterError: If descriptor has a predicate
            PreferInMemorySortError: If descriptor has sort keys
            CorruptDocumentError: If the document cannot be parsed
        """
        if descriptor.predicate is not None:
            raise PreferInMemoryFilterError(
                f"Fetch of '{descriptor.entity_name}' with a predicate: filter in memory"
            )
        if descriptor.sort_by:
            raise PreferInMemorySortError(
                f"Fetch of '{descriptor.entity_name}' with sort keys: sort in memory"
            )

        related = self._read_document(descriptor.entity_name)
        return FetchResult(
            descriptor=descriptor,
            snapshots=list(related.values()),
            related_snapshots=related,
        )

    def _check_entity_kinds(self, request: SaveRequest) -> None:
        schema = self.configuration.schema
        if schema is None:
            return
        for snapshot in (*request.inserted, *request.updated):
            if snapshot.entity_name not in schema:
                raise UnknownEntityTypeError(
                    f"Cannot save {snapshot.identifier.token}: "
                    f"entity type '{snapshot.entity_name}' is not registered"
                )

    async def _append_transaction(
        self,
        author: str | None,
        changes: list[Change],
    ) -> Transaction | None:
        """Log the save; a log failure does not undo the document write."""
        if self.transaction_log is None or not changes:
            return None
        try:
            return await self.transaction_log.append(author, changes)
        except TransactionLogError as e:
            logger.error(
                f"Failed to append transaction for saved document: {e}",
                extra={"store": self.identifier, "author": author},
            )
            return None

    def _read_document(self, entity_name: str | None = None) -> dict[Identifier, Snapshot]:
        """Read and decode the document file, skipping malformed records."""
        try:
            raw = self.file_path.read_bytes()
        except FileNotFoundError:
            return {}
        except OSError as e:
            raise CorruptDocumentError(f"Failed to read {self.file_path}: {e}") from e

        try:
            records = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise CorruptDocumentError(f"Document {self.file_path} is not valid JSON: {e}") from e

        if not isinstance(records, list):
            raise CorruptDocumentError(
                f"Document {self.file_path} must be a JSON array, got {type(records).__name__}"
            )

        snapshots: dict[Identifier, Snapshot] = {}
        for index, record in enumerate(records):
            try:
                snapshot = decode_snapshot(record)
            except DecodeError as e:
                logger.warning(
                    f"Skipping undecodable snapshot: {e}",
                    extra={
                        "store": self.identifier,
                        "index": index,
                        "identifier": e.identifier,
                        "errors": e.errors,
                    },
                )
                continue
            if entity_name is None or snapshot.entity_name == entity_name:
                snapshots[snapshot.identifier] = snapshot
        return snapshots

    def _write_document(self, snapshots: Mapping[Identifier, Snapshot]) -> None:
        """Serialize snapshots sorted by token and atomically replace the file."""
        records = [
            encode_snapshot(snapshots[identifier])
            for identifier in sorted(snapshots, key=lambda i: i.token)
        ]
        data = json.dumps(records, indent=2, sort_keys=True, ensure_ascii=False).encode("utf-8")
        try:
            atomic_write(self.file_path, data)
        except OSError as e:
            raise DocumentWriteError(f"Failed to write {self.file_path}: {e}") from e
