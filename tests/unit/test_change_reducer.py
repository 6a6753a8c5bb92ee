"""
Unit tests for ChangeReducer.

Tests cover:
- Folding widget transactions into affected trips
- Cursor persistence and idempotent rescans
- Delete-overrides-insert within one scan
- The persisted unread trip list
- Degraded inputs (log failures, undecodable preferences)
"""

import tempfile
from datetime import datetime, timezone
from pathlib import Path

import pytest

from tripstore.changes import WIDGET_AUTHOR, ChangeReducer
from tripstore.codec import Identifier, Snapshot
from tripstore.history import HistoryToken, InMemoryTransactionLog, TransactionLogError
from tripstore.prefs import InMemoryPreferenceStore, PreferenceKey, PreferenceStoreError
from tripstore.schema import LIVING_ACCOMMODATION, TRIP
from tripstore.store import DocumentStore, JSONStoreConfiguration, SaveRequest

STORE = "trips_data"


def trip_values(name, stay=None):
    return {
        "name": name,
        "destination": "Yosemite",
        "start_date": datetime(2024, 8, 1, tzinfo=timezone.utc),
        "end_date": datetime(2024, 8, 5, tzinfo=timezone.utc),
        "living_accommodation": stay,
    }


def stay_values(address):
    return {"address": address, "name": "Camp 4", "is_confirmed": False}


class UnavailableTransactionLog(InMemoryTransactionLog):
    async def scan_after(self, token, author):
        raise TransactionLogError("log file unreadable")


class FailOnceUnreadStore(InMemoryPreferenceStore):
    """Rejects the first write of the unread list."""

    def __init__(self):
        super().__init__()
        self.failed = False

    def set_data(self, key, value):
        if key == PreferenceKey.UNREAD_TRIP_IDENTIFIERS and not self.failed:
            self.failed = True
            raise PreferenceStoreError("preferences unavailable")
        super().set_data(key, value)


class TestChangeReducer:
    """Tests for ChangeReducer."""

    @pytest.fixture
    def data_dir(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            yield Path(tmpdir)

    @pytest.fixture
    def log(self):
        return InMemoryTransactionLog()

    @pytest.fixture
    def prefs(self):
        return InMemoryPreferenceStore()

    @pytest.fixture
    def store(self, data_dir, log):
        return DocumentStore(
            JSONStoreConfiguration("trips_v1", data_dir / STORE),
            transaction_log=log,
            default_author="app",
        )

    @pytest.fixture
    def reducer(self, store, log, prefs):
        return ChangeReducer(store, log, prefs)

    async def add_trip(self, store, name):
        """App creates a trip with a linked stay; returns (trip_id, stay_id)."""
        stay = Snapshot(Identifier.provisional_for(STORE, LIVING_ACCOMMODATION), stay_values(f"{name} street"))
        trip = Snapshot(Identifier.provisional_for(STORE, TRIP), trip_values(name, stay=stay.identifier))
        result = await store.save(SaveRequest(inserted=[trip, stay]), author="app")
        return result.identifier_mapping[trip.identifier], result.identifier_mapping[stay.identifier]

    async def widget_update(self, store, stay_id, address="Updated"):
        result = await store.save(
            SaveRequest(updated=[Snapshot(stay_id, stay_values(address))]),
            author=WIDGET_AUTHOR,
        )
        return result.transaction.token

    # Folding

    @pytest.mark.asyncio
    async def test_no_widget_transactions(self, store, reducer, prefs):
        """App-only writes produce nothing and persist no cursor."""
        await self.add_trip(store, "Camping")

        changed, token = await reducer.compute_changed_parents()

        assert changed == set()
        assert token is None
        assert prefs.get_data(PreferenceKey.HISTORY_TOKEN) is None

    @pytest.mark.asyncio
    async def test_widget_update_marks_trip(self, store, reducer):
        """A widget edit of a stay marks its trip as changed."""
        trip_id, stay_id = await self.add_trip(store, "Camping")
        token = await self.widget_update(store, stay_id)

        changed, new_token = await reducer.compute_changed_parents()

        assert changed == {trip_id}
        assert new_token == token
        assert reducer.load_token() == token

    @pytest.mark.asyncio
    async def test_second_scan_is_empty(self, store, reducer):
        """Without new transactions a rescan returns nothing and keeps the cursor."""
        _, stay_id = await self.add_trip(store, "Camping")
        await self.widget_update(store, stay_id)
        _, first_token = await reducer.compute_changed_parents()

        changed, token = await reducer.compute_changed_parents()

        assert changed == set()
        assert token == first_token
        assert reducer.load_token() == first_token

    @pytest.mark.asyncio
    async def test_only_new_transactions_scanned(self, store, reducer):
        trip_a, stay_a = await self.add_trip(store, "A")
        trip_b, stay_b = await self.add_trip(store, "B")
        await self.widget_update(store, stay_a)
        await reducer.compute_changed_parents()

        await self.widget_update(store, stay_b)
        changed, _ = await reducer.compute_changed_parents()

        assert changed == {trip_b}

    @pytest.mark.asyncio
    async def test_delete_overrides_earlier_insert(self, store, reducer):
        """A stay inserted then deleted in one scan window leaves its trip out."""
        trip_id, _ = await self.add_trip(store, "Camping")
        stay = Snapshot(Identifier.provisional_for(STORE, LIVING_ACCOMMODATION), stay_values("New"))
        result = await store.save(
            SaveRequest(
                inserted=[stay],
                updated=[Snapshot(trip_id, trip_values("Camping", stay=stay.identifier))],
            ),
            author=WIDGET_AUTHOR,
        )
        stay_id = result.identifier_mapping[stay.identifier]
        await store.save(SaveRequest(deleted=[Snapshot(stay_id, {})]), author=WIDGET_AUTHOR)

        changed, token = await reducer.compute_changed_parents()

        assert changed == set()
        assert token == HistoryToken(3)

    @pytest.mark.asyncio
    async def test_update_after_delete_marks_trip(self, store, reducer):
        """The last relevant change wins."""
        trip_id, stay_id = await self.add_trip(store, "Camping")
        await store.save(SaveRequest(deleted=[Snapshot(stay_id, {})]), author=WIDGET_AUTHOR)
        await store.save(
            SaveRequest(inserted=[], updated=[Snapshot(stay_id, stay_values("Back"))]),
            author=WIDGET_AUTHOR,
        )

        changed, _ = await reducer.compute_changed_parents()

        assert changed == {trip_id}

    @pytest.mark.asyncio
    async def test_unlinked_child_ignored(self, store, reducer):
        """A stay no trip points at affects nothing, but the cursor still advances."""
        stay = Snapshot(Identifier.provisional_for(STORE, LIVING_ACCOMMODATION), stay_values("Orphan"))
        result = await store.save(SaveRequest(inserted=[stay]), author=WIDGET_AUTHOR)

        changed, token = await reducer.compute_changed_parents()

        assert changed == set()
        assert token == result.transaction.token
        assert reducer.load_token() == token

    @pytest.mark.asyncio
    async def test_parent_changes_ignored(self, store, reducer):
        """Widget edits of a trip itself do not count."""
        trip_id, stay_id = await self.add_trip(store, "Camping")
        await store.save(
            SaveRequest(updated=[Snapshot(trip_id, trip_values("Renamed", stay=stay_id))]),
            author=WIDGET_AUTHOR,
        )

        changed, token = await reducer.compute_changed_parents()

        assert changed == set()
        assert token is not None

    @pytest.mark.asyncio
    async def test_other_authors_ignored(self, store, reducer):
        _, stay_id = await self.add_trip(store, "Camping")
        await store.save(SaveRequest(updated=[Snapshot(stay_id, stay_values("App edit"))]), author="app")

        changed, token = await reducer.compute_changed_parents()

        assert changed == set()
        assert token is None

    @pytest.mark.asyncio
    async def test_scan_does_not_persist(self, store, reducer, prefs):
        trip_id, stay_id = await self.add_trip(store, "Camping")
        await self.widget_update(store, stay_id)

        result = await reducer.scan(None)

        assert result.changed == {trip_id}
        assert result.transaction_count == 1
        assert prefs.keys() == []

    @pytest.mark.asyncio
    async def test_explicit_since_overrides_cursor(self, store, reducer):
        """A caller-supplied token is scanned from instead of the saved cursor."""
        trip_a, stay_a = await self.add_trip(store, "A")
        trip_b, stay_b = await self.add_trip(store, "B")
        first = await self.widget_update(store, stay_a)
        second = await self.widget_update(store, stay_b)
        reducer.save_token(second)

        changed, token = await reducer.compute_changed_parents(since=first)

        assert changed == {trip_b}
        assert token == second
        assert reducer.load_token() == second

    @pytest.mark.asyncio
    async def test_explicit_since_from_start(self, store, reducer):
        trip_a, stay_a = await self.add_trip(store, "A")
        token = await self.widget_update(store, stay_a)
        reducer.save_token(token)

        changed, _ = await reducer.compute_changed_parents(since=HistoryToken(0))

        assert changed == {trip_a}

    # Degraded inputs

    @pytest.mark.asyncio
    async def test_undecodable_cursor_rescans(self, store, reducer, prefs):
        trip_id, stay_id = await self.add_trip(store, "Camping")
        await self.widget_update(store, stay_id)
        prefs.set_data(PreferenceKey.HISTORY_TOKEN, b"not a token")

        changed, _ = await reducer.compute_changed_parents()

        assert changed == {trip_id}

    @pytest.mark.asyncio
    async def test_log_failure_reports_nothing(self, store, prefs):
        """An unreadable log yields no changes and keeps the cursor."""
        prefs.set_data(PreferenceKey.HISTORY_TOKEN, HistoryToken(5).to_bytes())
        reducer = ChangeReducer(store, UnavailableTransactionLog(), prefs)

        changed, token = await reducer.compute_changed_parents()

        assert changed == set()
        assert token == HistoryToken(5)

    @pytest.mark.asyncio
    async def test_failed_unread_write_keeps_cursor(self, store, log):
        """A failed unread-list write leaves the cursor so the retry reports the trip."""
        prefs = FailOnceUnreadStore()
        reducer = ChangeReducer(store, log, prefs)
        trip_id, stay_id = await self.add_trip(store, "Camping")
        token = await self.widget_update(store, stay_id)

        with pytest.raises(PreferenceStoreError):
            await reducer.compute_changed_parents()

        assert reducer.load_token() is None

        changed, new_token = await reducer.compute_changed_parents()

        assert changed == {trip_id}
        assert new_token == token
        assert reducer.unread_identifiers() == [trip_id]

    # Unread list

    @pytest.mark.asyncio
    async def test_unread_list_accumulates(self, store, reducer):
        trip_a, stay_a = await self.add_trip(store, "A")
        trip_b, stay_b = await self.add_trip(store, "B")

        await self.widget_update(store, stay_a)
        assert await reducer.find_unread_identifiers() == [trip_a]

        await self.widget_update(store, stay_b)
        unread = await reducer.find_unread_identifiers()

        assert unread == [trip_a, trip_b]

    @pytest.mark.asyncio
    async def test_mark_read(self, store, reducer):
        trip_a, stay_a = await self.add_trip(store, "A")
        trip_b, stay_b = await self.add_trip(store, "B")
        await self.widget_update(store, stay_a)
        await self.widget_update(store, stay_b)
        await reducer.find_unread_identifiers()

        remaining = reducer.mark_read([trip_a])

        assert remaining == [trip_b]
        assert reducer.unread_identifiers() == [trip_b]

    @pytest.mark.asyncio
    async def test_deleted_stay_leaves_unread_list(self, store, reducer):
        trip_id, stay_id = await self.add_trip(store, "Camping")
        await self.widget_update(store, stay_id)
        assert await reducer.find_unread_identifiers() == [trip_id]

        await store.save(SaveRequest(deleted=[Snapshot(stay_id, {})]), author=WIDGET_AUTHOR)

        assert await reducer.find_unread_identifiers() == []

    @pytest.mark.asyncio
    async def test_deleted_trip_pruned(self, store, reducer):
        """Trips that no longer exist drop out on the next scan."""
        trip_a, stay_a = await self.add_trip(store, "A")
        trip_b, stay_b = await self.add_trip(store, "B")
        await self.widget_update(store, stay_a)
        await reducer.find_unread_identifiers()

        await store.save(SaveRequest(deleted=[Snapshot(trip_a, {})]), author="app")
        await self.widget_update(store, stay_b)

        assert await reducer.find_unread_identifiers() == [trip_b]

    def test_undecodable_unread_list(self, reducer, prefs):
        prefs.set_data(PreferenceKey.UNREAD_TRIP_IDENTIFIERS, b'["not-a-token"]')

        assert reducer.unread_identifiers() == []

    def test_unread_list_format(self, reducer, prefs):
        trip_id = Identifier(STORE, TRIP, "T1")

        reducer.set_unread_identifiers([trip_id])

        assert prefs.get_data(PreferenceKey.UNREAD_TRIP_IDENTIFIERS) == b'["p:trips_data/Trip/T1"]'
