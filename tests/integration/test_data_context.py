"""
Integration tests: app and widget sharing one data directory.

These tests use the file-backed document, transaction log and preference
store, with separate DataContext instances standing in for the app and
widget processes.
"""

import asyncio
import json
import tempfile
from datetime import datetime, timezone
from pathlib import Path

import pytest

from tripstore.changes import WIDGET_AUTHOR
from tripstore.codec import Identifier
from tripstore.config import Settings
from tripstore.context import DataContext
from tripstore.schema import LIVING_ACCOMMODATION, TRIP, LivingAccommodation, Trip
from tripstore.store import FetchDescriptor, SaveRequest
from tripstore.tools import AdminCLI
from tripstore.tools.admin_cli import main


class TestAppAndWidget:
    """End-to-end unread-trip flow over shared files."""

    @pytest.fixture
    def data_dir(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            yield Path(tmpdir)

    @pytest.fixture
    def settings(self, data_dir):
        return Settings(data_dir=data_dir, log_format="text")

    @pytest.fixture
    def app(self, settings):
        return DataContext.open(settings)

    @pytest.fixture
    def widget(self, settings):
        return DataContext.open(settings)

    async def create_trip(self, context):
        """Insert a trip and its stay the way the app's editor does."""
        stay_id = context.provisional_identifier(LIVING_ACCOMMODATION)
        trip_id = context.provisional_identifier(TRIP)
        trip = Trip(
            name="Camping",
            destination="Yosemite",
            start_date=datetime(2024, 8, 1, tzinfo=timezone.utc),
            end_date=datetime(2024, 8, 5, tzinfo=timezone.utc),
            living_accommodation=stay_id,
        )
        stay = LivingAccommodation(address="Yosemite National Park, CA 95389", name="Yosemite", trip=trip_id)

        result = await context.save(SaveRequest(inserted=[
            context.codec.to_snapshot(trip, trip_id),
            context.codec.to_snapshot(stay, stay_id),
        ]))
        return result.identifier_mapping[trip_id], result.identifier_mapping[stay_id]

    async def confirm_stay(self, context, stay_id):
        """Toggle the confirmed flag the way the widget does."""
        snapshot = (await context.store.read())[stay_id]
        stay = context.codec.from_snapshot(snapshot)
        stay.is_confirmed = not stay.is_confirmed
        return await context.save(
            SaveRequest(updated=[context.codec.to_snapshot(stay, stay_id)]),
            author=WIDGET_AUTHOR,
        )

    @pytest.mark.asyncio
    async def test_saved_graph_decodes(self, app):
        """Entities decode with references rewritten to permanent identifiers."""
        trip_id, stay_id = await self.create_trip(app)

        snapshots = await app.store.read()
        trip = app.codec.from_snapshot(snapshots[trip_id])
        stay = app.codec.from_snapshot(snapshots[stay_id])

        assert trip.living_accommodation == stay_id
        assert stay.trip == trip_id
        assert not trip_id.provisional and not stay_id.provisional

    @pytest.mark.asyncio
    async def test_widget_edit_shows_as_unread(self, app, widget):
        """A widget edit surfaces its trip in the app's unread list."""
        trip_id, stay_id = await self.create_trip(app)
        assert await app.reducer.find_unread_identifiers() == []

        await self.confirm_stay(widget, stay_id)

        assert await app.reducer.find_unread_identifiers() == [trip_id]
        stay = app.codec.from_snapshot((await app.store.read())[stay_id])
        assert stay.is_confirmed is True

    @pytest.mark.asyncio
    async def test_cursor_survives_restart(self, settings, app, widget):
        """A reopened context resumes from the persisted cursor."""
        trip_id, stay_id = await self.create_trip(app)
        await self.confirm_stay(widget, stay_id)
        changed, token = await app.reducer.compute_changed_parents()
        assert changed == {trip_id}

        reopened = DataContext.open(settings)
        changed, reopened_token = await reopened.reducer.compute_changed_parents()

        assert changed == set()
        assert reopened_token == token
        assert reopened.reducer.unread_identifiers() == [trip_id]

    @pytest.mark.asyncio
    async def test_reload_listeners(self, app):
        calls = []

        def failing():
            raise RuntimeError("render failed")

        app.add_reload_listener(failing)
        app.add_reload_listener(lambda: calls.append("reloaded"))

        await self.create_trip(app)

        assert calls == ["reloaded"]

        app.remove_reload_listener(failing)
        app.reload_presentation()
        assert calls == ["reloaded", "reloaded"]

    @pytest.mark.asyncio
    async def test_files_created(self, settings, app):
        await self.create_trip(app)

        assert settings.document_path.exists()
        assert settings.history_path.exists()
        assert len(settings.history_path.read_text().splitlines()) == 1


class TestAdminCLI:
    """Tests for the admin CLI against a real data directory."""

    @pytest.fixture
    def data_dir(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            yield Path(tmpdir)

    @pytest.fixture
    def settings(self, data_dir):
        return Settings(data_dir=data_dir, log_format="text")

    @pytest.fixture
    def trip_ids(self, settings):
        """Seed one trip edited by the widget; returns (trip_id, stay_id)."""
        async def seed():
            helper = TestAppAndWidget()
            context = DataContext.open(settings)
            trip_id, stay_id = await helper.create_trip(context)
            await helper.confirm_stay(context, stay_id)
            return trip_id, stay_id

        return asyncio.run(seed())

    @pytest.fixture
    def cli(self, settings):
        return AdminCLI(DataContext.open(settings))

    @pytest.mark.asyncio
    async def test_dump_entity(self, cli, trip_ids):
        trip_id, _ = trip_ids

        records = json.loads(await cli.dump(TRIP))

        assert [r["identifier"] for r in records] == [trip_id.token]

    @pytest.mark.asyncio
    async def test_scan_and_mark_read(self, cli, trip_ids):
        trip_id, _ = trip_ids

        report = await cli.scan_changes()

        assert report == {"token": 2, "changed": [trip_id.token], "unread": [trip_id.token]}
        assert cli.mark_read([trip_id.token]) == []
        assert cli.unread() == []

    def test_main_dump(self, data_dir, trip_ids, capsys, monkeypatch):
        monkeypatch.setenv("TRIPSTORE_LOG_FORMAT", "text")

        with pytest.raises(SystemExit) as exc_info:
            main(["--data-dir", str(data_dir), "dump", "--entity", LIVING_ACCOMMODATION])

        assert exc_info.value.code == 0
        records = json.loads(capsys.readouterr().out)
        assert records[0]["values"]["is_confirmed"] is True

    def test_main_rejects_bad_token(self, data_dir, capsys, monkeypatch):
        monkeypatch.setenv("TRIPSTORE_LOG_FORMAT", "text")

        with pytest.raises(SystemExit) as exc_info:
            main(["--data-dir", str(data_dir), "mark-read", "not-a-token"])

        assert exc_info.value.code == 1
        assert "Error:" in capsys.readouterr().err

    @pytest.mark.asyncio
    async def test_fetch_of_missing_kind_is_empty(self, cli):
        result = await cli.context.store.fetch(FetchDescriptor("Flight"))

        assert result.snapshots == []
        assert isinstance(cli.context.provisional_identifier(TRIP), Identifier)
