"""
Unit tests for the SQLite settings store.

Tests cover:
- Persistence across store instances
- Reset deleting the stored row
- Enum and value encoding
- Store factory
"""

import tempfile
from dataclasses import replace

import pytest

from apputils.gnc_prefs.config import PrefsConfig, StorageConfig, StoreBackend
from apputils.gnc_prefs.schema.source import SchemaSource
from apputils.gnc_prefs.schema.types import SchemaDef, key
from apputils.gnc_prefs.store import InMemorySettingsStore, SqliteSettingsStore, create_store

GENERAL = SchemaDef(
    schema_id="org.gnucash.general",
    keys=(
        key("autosave-interval-minutes", "int", 3, range=(0, 99)),
        key("date-format", "enum", "locale", choices={"us": 0, "uk": 1, "locale": 4}),
        key("last-geometry", "value", None),
    ),
)


def make_source():
    source = SchemaSource()
    source.register(GENERAL)
    return source


class TestSqliteSettingsStore:
    """Tests for SqliteSettingsStore."""

    @pytest.fixture
    def data_dir(self):
        """Create temporary data directory."""
        with tempfile.TemporaryDirectory() as tmpdir:
            yield tmpdir

    @pytest.fixture
    def store(self, data_dir):
        return SqliteSettingsStore(make_source(), data_dir, wal_mode=False)

    def test_creates_database(self, store):
        """The database file is created on construction."""
        assert store.db_path.exists()

    def test_values_persist(self, data_dir):
        """Values written by one instance are read by the next."""
        first = SqliteSettingsStore(make_source(), data_dir, wal_mode=False)
        general = first.open_schema("org.gnucash.general")
        assert first.set_int(general, "autosave-interval-minutes", 15) is True
        assert first.set_enum(general, "date-format", 1) is True
        first.close()

        second = SqliteSettingsStore(make_source(), data_dir, wal_mode=False)
        general = second.open_schema("org.gnucash.general")

        assert second.get_int(general, "autosave-interval-minutes") == 15
        assert second.get_enum(general, "date-format") == 1

    def test_only_user_values_stored(self, store):
        """Defaults are never written."""
        general = store.open_schema("org.gnucash.general")
        assert store.get_int(general, "autosave-interval-minutes") == 3

        store.set_value(general, "last-geometry", {"x": 10, "y": 20})

        assert store.user_values("org.gnucash.general") == {"last-geometry": {"x": 10, "y": 20}}

    def test_reset_deletes_row(self, store):
        """reset() removes the stored value."""
        general = store.open_schema("org.gnucash.general")
        store.set_int(general, "autosave-interval-minutes", 15)

        store.reset(general, "autosave-interval-minutes")

        assert store.user_values("org.gnucash.general") == {}
        assert store.get_int(general, "autosave-interval-minutes") == 3

    def test_overwrite(self, store):
        """A second write replaces the first."""
        general = store.open_schema("org.gnucash.general")
        store.set_int(general, "autosave-interval-minutes", 15)
        store.set_int(general, "autosave-interval-minutes", 20)

        assert store.user_values("org.gnucash.general") == {"autosave-interval-minutes": 20}

    def test_unserializable_value_rejected(self, store):
        """Values that cannot be encoded are rejected, not raised."""
        general = store.open_schema("org.gnucash.general")

        assert store.set_value(general, "last-geometry", object()) is False
        assert store.get_value(general, "last-geometry") is None

    def test_notifies_on_change(self, store):
        """Change callbacks fire after a persisted write."""
        general = store.open_schema("org.gnucash.general")
        seen = []
        store.subscribe(general, "changed::autosave-interval-minutes", lambda s, k, d: seen.append(k))

        store.set_int(general, "autosave-interval-minutes", 9)

        assert seen == ["autosave-interval-minutes"]


class TestCreateStore:
    """Tests for the create_store factory."""

    def test_memory_backend(self):
        """The memory backend builds an InMemorySettingsStore."""
        config = PrefsConfig(storage=StorageConfig(backend=StoreBackend.MEMORY))

        store = create_store(config, make_source())

        assert isinstance(store, InMemorySettingsStore)

    def test_sqlite_backend(self):
        """The sqlite backend uses the configured data dir."""
        with tempfile.TemporaryDirectory() as tmpdir:
            config = PrefsConfig(
                storage=replace(StorageConfig(), backend=StoreBackend.SQLITE, data_dir=tmpdir)
            )

            store = create_store(config, make_source())

            assert isinstance(store, SqliteSettingsStore)
            assert str(store.data_dir) == tmpdir

    def test_read_only_passed_through(self):
        """read_only configuration reaches the store."""
        config = PrefsConfig(storage=StorageConfig(backend=StoreBackend.MEMORY, read_only=True))

        store = create_store(config, make_source())

        assert store.read_only is True
