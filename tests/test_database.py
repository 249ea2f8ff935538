"""
Tests for FakeForge Database

Tests:
- Insert, read, seed and flush of JSON tables
- Events published on changes
- Enabled/disabled directory handling
"""

import json

import pytest

from fakeforge.database import MARKER_FILE, MERGE_LIMIT, JsonDatabase, JsonTable
from fakeforge.events import DATABASE_FLUSHED, DATABASE_INSERTED, EventBus


@pytest.fixture
def bus_events():
    """EventBus with recorded database events."""
    bus = EventBus()
    events = []
    bus.subscribe(DATABASE_INSERTED, lambda p: events.append((DATABASE_INSERTED, p)))
    bus.subscribe(DATABASE_FLUSHED, lambda p: events.append((DATABASE_FLUSHED, p)))
    return bus, events


class TestJsonTable:
    """Test a single table."""

    def test_read_missing_table_is_empty(self, tmp_path):
        """Test tables start empty."""
        assert JsonTable(tmp_path, 'user').read() == []

    def test_insert_appends(self, tmp_path, bus_events):
        """Test inserts accumulate and report the total."""
        bus, events = bus_events
        table = JsonTable(tmp_path, 'user', bus=bus)

        assert table.insert([{'id': 1}, {'id': 2}]) == 2
        assert table.insert({'id': 3}) == 3

        assert table.read() == [{'id': 1}, {'id': 2}, {'id': 3}]
        assert json.loads((tmp_path / 'user.json').read_text()) == table.read()
        assert events == [
            (DATABASE_INSERTED, {'name': 'user', 'count': 2}),
            (DATABASE_INSERTED, {'name': 'user', 'count': 1}),
        ]

    def test_flush(self, tmp_path, bus_events):
        """Test flush empties the table and reports removed rows."""
        bus, events = bus_events
        table = JsonTable(tmp_path, 'user', bus=bus)
        table.insert([{'id': 1}, {'id': 2}])

        assert table.flush() == 2
        assert table.read() == []
        assert events[-1] == (DATABASE_FLUSHED, {'name': 'user', 'count': 2})

    def test_corrupt_file_reads_empty(self, tmp_path):
        """Test a corrupt table file is treated as empty."""
        (tmp_path / 'user.json').write_text("{not json")

        assert JsonTable(tmp_path, 'user').read() == []

    def test_no_temp_files_left(self, tmp_path):
        """Test atomic writes clean up after themselves."""
        JsonTable(tmp_path, 'user').insert({'id': 1})

        assert [p.name for p in tmp_path.iterdir()] == ['user.json']


class TestJsonDatabase:
    """Test the table directory."""

    def test_enabled_creates_directory(self, tmp_path):
        """Test prepare() creates the directory."""
        database = JsonDatabase('.fakeforge/db', enabled=True, base_dir=tmp_path)
        database.prepare()

        assert (tmp_path / '.fakeforge' / 'db').is_dir()
        assert database.table('user') is database.table('user')

    def test_disabled_removes_created_directory(self, tmp_path):
        """Test prepare() removes a directory an enabled run created."""
        directory = tmp_path / 'db'
        JsonDatabase(str(directory), enabled=True).prepare()
        (directory / 'user.json').write_text('[]')

        database = JsonDatabase(str(directory), enabled=False)
        database.prepare()

        assert not directory.exists()
        assert database.table('user') is None

    def test_disabled_removes_default_directory(self, tmp_path):
        """Test the default location is cleaned up even without a marker."""
        directory = tmp_path / '.fakeforge' / 'db'
        directory.mkdir(parents=True)
        (directory / 'user.json').write_text('[]')

        JsonDatabase('.fakeforge/db', enabled=False, base_dir=tmp_path).prepare()

        assert not directory.exists()

    def test_disabled_keeps_foreign_directory(self, tmp_path):
        """Test a configured directory fakeforge did not create is never deleted."""
        directory = tmp_path / 'data'
        directory.mkdir()
        (directory / 'important.json').write_text('{"keep": true}')

        JsonDatabase(str(directory), enabled=False).prepare()

        assert (directory / 'important.json').read_text() == '{"keep": true}'

    def test_enabled_writes_marker(self, tmp_path):
        """Test prepare() marks the directory as fakeforge-owned."""
        JsonDatabase(str(tmp_path / 'db'), enabled=True).prepare()

        assert (tmp_path / 'db' / MARKER_FILE).exists()


class TestSeed:
    """Test seeding strategies."""

    def test_reset_replaces_rows(self, tmp_path, bus_events):
        """Test reset drops existing rows."""
        bus, events = bus_events
        table = JsonTable(tmp_path, 'user', bus=bus)
        table.insert([{'id': 1}, {'id': 2}])

        assert table.seed([{'id': 3}]) == 1
        assert table.read() == [{'id': 3}]
        assert events[-1] == (DATABASE_INSERTED, {'name': 'user', 'count': 1})

    def test_once_skips_populated_table(self, tmp_path):
        """Test once only seeds an empty table."""
        table = JsonTable(tmp_path, 'user')

        assert table.seed([{'id': 1}], strategy='once') == 1
        assert table.seed([{'id': 2}], strategy='once') == 0
        assert table.read() == [{'id': 1}]

    def test_merge_updates_and_appends(self, tmp_path):
        """Test merge replaces rows by id and appends new ones."""
        table = JsonTable(tmp_path, 'user')
        table.insert([{'id': 1, 'name': 'a'}, {'id': 2, 'name': 'b'}])

        assert table.seed([{'id': 2, 'name': 'B'}, {'id': 3, 'name': 'c'}], strategy='merge') == 2
        assert table.read() == [
            {'id': 1, 'name': 'a'},
            {'id': 2, 'name': 'B'},
            {'id': 3, 'name': 'c'},
        ]

    def test_merge_keeps_newest_rows(self, tmp_path):
        """Test a merged table is capped at MERGE_LIMIT rows."""
        table = JsonTable(tmp_path, 'user')
        table.insert([{'id': i} for i in range(MERGE_LIMIT)])

        table.seed([{'id': MERGE_LIMIT}, {'id': MERGE_LIMIT + 1}], strategy='merge')

        rows = table.read()
        assert len(rows) == MERGE_LIMIT
        assert rows[0] == {'id': 2}
        assert rows[-1] == {'id': MERGE_LIMIT + 1}

    def test_unknown_strategy(self, tmp_path):
        """Test an unknown strategy is rejected without writing."""
        table = JsonTable(tmp_path, 'user')

        with pytest.raises(ValueError, match="Unknown seed strategy"):
            table.seed([{'id': 1}], strategy='append')

        assert not (tmp_path / 'user.json').exists()
