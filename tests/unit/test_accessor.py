"""
Unit tests for the key-validated preference backend.

Tests cover:
- Zero values for unknown schemas and invalid keys
- Rejected writes
- Callback registration and removal
- Schema reset and binding
"""

import logging

import pytest

from apputils.gnc_prefs.accessor import GSettingsBackend
from apputils.gnc_prefs.schema.registry import SchemaRegistry
from apputils.gnc_prefs.schema.source import SchemaSource
from apputils.gnc_prefs.schema.types import SchemaDef, key
from apputils.gnc_prefs.store.memory import InMemorySettingsStore

GENERAL = SchemaDef(
    schema_id="org.gnucash.general",
    keys=(
        key("show-splash-screen", "bool", True),
        key("autosave-interval-minutes", "int", 3, range=(0, 99)),
        key("ratio", "float", 1.5),
        key("currency-other", "string", ""),
        key("date-format", "enum", "locale", choices={"us": 0, "uk": 1, "locale": 4}),
        key("last-geometry", "value", None),
    ),
)


class Recorder:
    """Collects change callbacks."""

    def __init__(self):
        self.calls = []

    def __call__(self, schema, key, user_data):
        self.calls.append(key)


class TestGSettingsBackend:
    """Tests for GSettingsBackend."""

    @pytest.fixture
    def store(self):
        source = SchemaSource()
        source.register(GENERAL)
        return InMemorySettingsStore(source)

    @pytest.fixture
    def backend(self, store):
        return GSettingsBackend(SchemaRegistry(store, prefix="org.gnucash"))

    def test_round_trip(self, backend):
        """Values set through the backend read back."""
        assert backend.set_bool("general", "show-splash-screen", False) is True
        assert backend.set_int("general", "autosave-interval-minutes", 5) is True
        assert backend.set_float("general", "ratio", 2.25) is True
        assert backend.set_string("general", "currency-other", "EUR") is True
        assert backend.set_enum("general", "date-format", 1) is True
        assert backend.set_value("general", "last-geometry", [1, 2]) is True

        assert backend.get_bool("general", "show-splash-screen") is False
        assert backend.get_int("general", "autosave-interval-minutes") == 5
        assert backend.get_float("general", "ratio") == 2.25
        assert backend.get_string("general", "currency-other") == "EUR"
        assert backend.get_enum("general", "date-format") == 1
        assert backend.get_value("general", "last-geometry") == [1, 2]

    def test_qualified_schema_name(self, backend):
        """Fully-qualified names address the same schema."""
        backend.set_int("general", "autosave-interval-minutes", 5)

        assert backend.get_int("org.gnucash.general", "autosave-interval-minutes") == 5

    def test_invalid_key_returns_zero_values(self, backend, caplog):
        """Undeclared keys read as zero values with an error logged."""
        with caplog.at_level(logging.ERROR):
            assert backend.get_bool("general", "nope") is False
            assert backend.get_int("general", "nope") == 0
            assert backend.get_float("general", "nope") == 0.0
            assert backend.get_string("general", "nope") is None
            assert backend.get_enum("general", "nope") == 0
            assert backend.get_value("general", "nope") is None

        assert "Invalid key nope for schema general" in caplog.text

    def test_key_is_case_sensitive(self, backend):
        """Keys differing only in case are invalid."""
        assert backend.set_bool("general", "Show-Splash-Screen", False) is False
        assert backend.get_bool("general", "show-splash-screen") is True

    def test_unknown_schema_returns_zero_values(self, backend, caplog):
        """Unknown schemas read as zero values with a warning logged."""
        with caplog.at_level(logging.WARNING):
            assert backend.get_int("nonexistent", "any") == 0
            assert backend.set_int("nonexistent", "any", 1) is False

        assert "unknown settings schema org.gnucash.nonexistent" in caplog.text

    def test_wrong_kind_returns_zero(self, backend):
        """Reading a key with the wrong typed getter returns the zero value."""
        assert backend.get_int("general", "show-splash-screen") == 0

    def test_rejected_write_logged(self, backend, caplog):
        """Out-of-range writes return False and log an error."""
        with caplog.at_level(logging.ERROR):
            assert backend.set_int("general", "autosave-interval-minutes", 500) is False

        assert "Unable to set value for key autosave-interval-minutes" in caplog.text
        assert backend.get_int("general", "autosave-interval-minutes") == 3

    def test_register_cb_for_key(self, backend):
        """A keyed callback fires only for its key."""
        recorder = Recorder()
        handler_id = backend.register_cb("general", "currency-other", recorder)

        backend.set_int("general", "autosave-interval-minutes", 5)
        backend.set_string("general", "currency-other", "EUR")

        assert handler_id > 0
        assert recorder.calls == ["currency-other"]

    def test_register_cb_empty_key_is_any(self, backend):
        """An empty key registers for every key."""
        recorder = Recorder()
        backend.register_cb("general", "", recorder)

        backend.set_int("general", "autosave-interval-minutes", 5)
        backend.set_string("general", "currency-other", "EUR")

        assert recorder.calls == ["autosave-interval-minutes", "currency-other"]

    def test_register_cb_invalid_key(self, backend, store):
        """An invalid key registers nothing and returns 0."""
        assert backend.register_cb("general", "nope", Recorder()) == 0
        assert store.subscription_count() == 0

    def test_register_cb_unknown_schema(self, backend):
        """An unknown schema returns 0."""
        assert backend.register_cb("nonexistent", "", Recorder()) == 0

    def test_register_cb_without_func(self, backend):
        """A missing callback returns 0."""
        assert backend.register_cb("general", "currency-other", None) == 0

    def test_remove_cb_by_func_matches_all(self, backend, store):
        """Removal requires key, function and user data to all match."""
        a, b = Recorder(), Recorder()
        ctx = object()
        backend.register_cb("general", "currency-other", a, ctx)
        backend.register_cb("general", "currency-other", b, ctx)
        backend.register_cb("general", "ratio", a, ctx)

        removed = backend.remove_cb_by_func("general", "currency-other", a, ctx)

        assert removed == 1
        assert store.subscription_count() == 2
        backend.set_string("general", "currency-other", "EUR")
        assert a.calls == []
        assert b.calls == ["currency-other"]

    def test_remove_cb_by_func_invalid_key(self, backend, store):
        """An invalid key removes nothing."""
        recorder = Recorder()
        backend.register_cb("general", "currency-other", recorder)

        assert backend.remove_cb_by_func("general", "nope", recorder) == 0
        assert store.subscription_count() == 1

    def test_remove_cb_by_id(self, backend):
        """A removed callback no longer fires."""
        recorder = Recorder()
        handler_id = backend.register_cb("general", "currency-other", recorder)

        backend.remove_cb_by_id("general", handler_id)
        backend.set_string("general", "currency-other", "EUR")

        assert recorder.calls == []

    def test_any_cb(self, backend, store):
        """register_any_cb/remove_any_cb_by_func handle schema-wide callbacks."""
        recorder = Recorder()
        backend.register_any_cb("general", recorder, "ctx")
        backend.register_cb("general", "ratio", recorder, "ctx")

        assert backend.remove_any_cb_by_func("general", recorder, "ctx") == 1
        assert store.subscription_count() == 1

    def test_reset(self, backend):
        """reset() restores the default."""
        backend.set_int("general", "autosave-interval-minutes", 5)

        backend.reset("general", "autosave-interval-minutes")

        assert backend.get_int("general", "autosave-interval-minutes") == 3

    def test_reset_schema(self, backend):
        """reset_schema() restores every key."""
        backend.set_int("general", "autosave-interval-minutes", 5)
        backend.set_bool("general", "show-splash-screen", False)
        backend.set_enum("general", "date-format", 0)

        backend.reset_schema("general")

        assert backend.get_int("general", "autosave-interval-minutes") == 3
        assert backend.get_bool("general", "show-splash-screen") is True
        assert backend.get_enum("general", "date-format") == 4

    def test_bind(self, backend):
        """Bound attributes follow the key."""
        class Target:
            pass

        target = Target()
        backend.bind("general", "currency-other", target, "text")
        backend.set_string("general", "currency-other", "CHF")

        assert target.text == "CHF"

    def test_bind_invalid_key(self, backend, caplog):
        """Binding an invalid key logs an error and leaves the target alone."""
        class Target:
            pass

        target = Target()
        with caplog.at_level(logging.ERROR):
            backend.bind("general", "nope", target, "text")

        assert not hasattr(target, "text")
        assert "Invalid key nope" in caplog.text
