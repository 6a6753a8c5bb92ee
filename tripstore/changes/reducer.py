"""
Change reducer: unread trips from the transaction log.

The reducer scans transactions written by one author (the widget) since
its persisted cursor and works out which parent entities (trips) were
affected through their child entity (the living accommodation).

Fold policy, applied per change in commit order:
    - insert or update of a child -> its parent is added to the result
    - delete of a child           -> its parent is removed from the result,
                                     even if an earlier change added it

A change whose child is no longer linked from any parent has no effect.
Changes to entity kinds other than the link's child kind are ignored.

Invariants:
    - The cursor only moves forward, to the last transaction actually scanned
    - The cursor is persisted before compute_changed_parents() returns, and
      only after the unread list it covers
    - Log read failures and undecodable cursors mean "scan from the start"
      or "nothing new"; they never raise
    - Running twice with no new transactions yields an empty set

How to change safely:
    - A new ChangeKind must get an explicit branch in _fold()
    - Keep the preference blob formats backward compatible
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Iterable, assert_never

from ..codec.errors import DecodeError
from ..codec.identifiers import Identifier
from ..codec.snapshot import Snapshot
from ..history.base import (
    ChangeKind,
    HistoryToken,
    LogDecodeError,
    Transaction,
    TransactionLog,
    TransactionLogError,
)
from ..prefs.base import PreferenceKey, PreferenceStore
from ..schema.trips import LIVING_ACCOMMODATION, TRIP
from ..store.document_store import DocumentStore, FetchDescriptor

logger = logging.getLogger(__name__)

WIDGET_AUTHOR = "widget"


@dataclass(frozen=True)
class ParentLink:
    """Parent/child relation followed by the reducer.

    Attributes:
        parent_entity: Kind of the parent entity
        child_entity: Kind of the child entity
        child_field: Reference field on the parent holding the child
    """

    parent_entity: str
    child_entity: str
    child_field: str


TRIP_ACCOMMODATION_LINK = ParentLink(
    parent_entity=TRIP,
    child_entity=LIVING_ACCOMMODATION,
    child_field="living_accommodation",
)


@dataclass(frozen=True)
class ChangeScan:
    """Result of scanning the log after a cursor.

    Attributes:
        changed: Parents with a live insert/update of their child
        removed: Parents whose last relevant change was a delete
        token: Token of the last scanned transaction (or the input cursor)
        transaction_count: Number of transactions scanned
        live_parents: Every parent present in the document at scan time
    """

    changed: frozenset[Identifier] = frozenset()
    removed: frozenset[Identifier] = frozenset()
    token: HistoryToken | None = None
    transaction_count: int = 0
    live_parents: frozenset[Identifier] = field(default_factory=frozenset)


def _by_token(identifiers: Iterable[Identifier]) -> list[Identifier]:
    return sorted(identifiers, key=lambda i: i.token)


class ChangeReducer:
    """Derives changed parent entities from the transaction log.

    Example:
        >>> reducer = ChangeReducer(store, log, prefs)
        >>> trips, token = await reducer.compute_changed_parents()
        >>> await reducer.find_unread_identifiers()
        [Identifier(store_id='trips_data', entity_name='Trip', ...)]
    """

    def __init__(
        self,
        store: DocumentStore,
        transaction_log: TransactionLog,
        preferences: PreferenceStore,
        link: ParentLink = TRIP_ACCOMMODATION_LINK,
        author: str = WIDGET_AUTHOR,
    ) -> None:
        """Initialize the reducer.

        Args:
            store: Document store used for parent lookups
            transaction_log: Log to scan
            preferences: Where the cursor and unread list are persisted
            link: Parent/child relation to follow
            author: Only transactions by this author are scanned
        """
        self.store = store
        self.transaction_log = transaction_log
        self.preferences = preferences
        self.link = link
        self.author = author

    # Cursor

    def load_token(self) -> HistoryToken | None:
        """Load the persisted cursor; undecodable bytes read as no cursor."""
        data = self.preferences.get_data(PreferenceKey.HISTORY_TOKEN)
        if data is None:
            return None
        try:
            return HistoryToken.from_bytes(data)
        except LogDecodeError as e:
            logger.warning(f"Ignoring undecodable history token, rescanning: {e}")
            return None

    def save_token(self, token: HistoryToken) -> None:
        self.preferences.set_data(PreferenceKey.HISTORY_TOKEN, token.to_bytes())

    # Unread list

    def unread_identifiers(self) -> list[Identifier]:
        """Identifiers of unread parents persisted by the last scan."""
        data = self.preferences.get_data(PreferenceKey.UNREAD_TRIP_IDENTIFIERS)
        if data is None:
            return []
        try:
            tokens = json.loads(data.decode("utf-8"))
            if not isinstance(tokens, list):
                raise ValueError("unread identifiers must be a list")
            return [Identifier.from_token(t) for t in tokens]
        except (UnicodeDecodeError, ValueError, DecodeError) as e:
            logger.warning(f"Ignoring undecodable unread identifiers: {e}")
            return []

    def set_unread_identifiers(self, identifiers: Iterable[Identifier]) -> None:
        tokens = [i.token for i in identifiers]
        self.preferences.set_data(
            PreferenceKey.UNREAD_TRIP_IDENTIFIERS,
            json.dumps(tokens).encode("utf-8"),
        )

    def mark_read(self, identifiers: Iterable[Identifier]) -> list[Identifier]:
        """Remove identifiers from the unread list and return what remains."""
        read = set(identifiers)
        remaining = [i for i in self.unread_identifiers() if i not in read]
        self.set_unread_identifiers(remaining)
        return remaining

    # Scanning

    async def scan(self, since: HistoryToken | None) -> ChangeScan:
        """Fold transactions after since into affected parents.

        Does not persist anything.

        Raises:
            CorruptDocumentError: If the document cannot be read for lookups
        """
        try:
            transactions = await self.transaction_log.scan_after(since, self.author)
        except (TransactionLogError, OSError) as e:
            logger.warning(f"Transaction log unavailable, treating as no changes: {e}")
            return ChangeScan(token=since)

        if not transactions:
            return ChangeScan(token=since)

        result = await self.store.fetch(FetchDescriptor(self.link.parent_entity))
        parent_of = self._index_parents(result.snapshots)
        changed, removed = self._fold(transactions, parent_of)

        logger.debug(
            "Scanned transaction log",
            extra={
                "since": since.value if since else None,
                "token": transactions[-1].token.value,
                "transactions": len(transactions),
                "changed": len(changed),
                "removed": len(removed),
            },
        )

        return ChangeScan(
            changed=frozenset(changed),
            removed=frozenset(removed),
            token=transactions[-1].token,
            transaction_count=len(transactions),
            live_parents=frozenset(result.related_snapshots),
        )

    async def compute_changed_parents(
        self,
        since: HistoryToken | None = None,
    ) -> tuple[set[Identifier], HistoryToken | None]:
        """Scan from a cursor and persist the outcome.

        Merges the result into the unread list (affected parents are added,
        parents whose window ended in a delete and parents no longer in the
        document are dropped), then persists the new cursor. The cursor is
        written last so a failed unread-list write is retried by the next
        scan.

        Args:
            since: Scan after this token; defaults to the persisted cursor

        Returns:
            Tuple of (changed parent identifiers, new cursor)

        Raises:
            PreferenceStoreError: If the unread list or cursor cannot be written
        """
        if since is None:
            since = self.load_token()
        result = await self.scan(since)

        if result.transaction_count == 0:
            return set(), since

        unread = [
            i
            for i in self.unread_identifiers()
            if i not in result.removed and i in result.live_parents
        ]
        for identifier in _by_token(result.changed):
            if identifier not in unread:
                unread.append(identifier)
        self.set_unread_identifiers(unread)
        self.save_token(result.token)

        logger.info(
            "Computed changed parents",
            extra={
                "token": result.token.value,
                "changed": len(result.changed),
                "unread": len(unread),
            },
        )
        return set(result.changed), result.token

    async def find_unread_identifiers(self) -> list[Identifier]:
        """Run an incremental scan and return the updated unread list."""
        await self.compute_changed_parents()
        return self.unread_identifiers()

    def _index_parents(self, parents: Iterable[Snapshot]) -> dict[Identifier, Identifier]:
        """Map child identifier -> parent identifier for the current document."""
        index: dict[Identifier, Identifier] = {}
        for parent in sorted(parents, key=lambda s: s.identifier.token):
            child = parent.values.get(self.link.child_field)
            if isinstance(child, Identifier):
                index.setdefault(child, parent.identifier)
        return index

    def _fold(
        self,
        transactions: list[Transaction],
        parent_of: dict[Identifier, Identifier],
    ) -> tuple[set[Identifier], set[Identifier]]:
        """Apply the insert/update/delete policy across transactions."""
        state: dict[Identifier, bool] = {}
        for transaction in transactions:
            for change in transaction.changes:
                if change.entity_name != self.link.child_entity:
                    continue
                parent = parent_of.get(change.identifier)
                if parent is None:
                    continue

                kind = change.kind
                if kind is ChangeKind.INSERT or kind is ChangeKind.UPDATE:
                    state[parent] = True
                elif kind is ChangeKind.DELETE:
                    state[parent] = False
                else:
                    assert_never(kind)

        changed = {p for p, live in state.items() if live}
        removed = {p for p, live in state.items() if not live}
        return changed, removed
