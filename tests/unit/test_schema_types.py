"""
Unit tests for schema type definitions.

Tests cover:
- Key value checks per kind
- Enum nick/value mapping
- Definition validation
- Dictionary round trip of schema files
"""

import pytest

from apputils.gnc_prefs.schema.types import KeyDef, KeyKind, SchemaDef, key


class TestKeyKind:
    """Tests for KeyKind."""

    def test_from_str(self):
        """Kinds parse from their file spelling."""
        assert KeyKind.from_str("bool") == KeyKind.BOOLEAN
        assert KeyKind.from_str("float") == KeyKind.FLOAT
        assert KeyKind.from_str("value") == KeyKind.VALUE

    def test_from_str_invalid(self):
        """Unknown kinds are rejected with the valid list."""
        with pytest.raises(ValueError, match="Invalid key kind 'double'"):
            KeyKind.from_str("double")


class TestKeyDef:
    """Tests for KeyDef."""

    def test_bool_accepts_only_bool(self):
        """Boolean keys reject integers."""
        k = key("show-hints", "bool", True)

        assert k.accepts(False) is True
        assert k.accepts(1) is False
        assert k.accepts("true") is False

    def test_int_range(self):
        """Integer keys honour their inclusive range."""
        k = key("autosave-interval-minutes", "int", 3, range=(0, 99))

        assert k.accepts(0) is True
        assert k.accepts(99) is True
        assert k.accepts(100) is False
        assert k.accepts(-1) is False

    def test_int_rejects_bool_and_float(self):
        """Integer keys reject bools and floats."""
        k = key("count", "int", 0)

        assert k.accepts(True) is False
        assert k.accepts(1.5) is False

    def test_float_accepts_int(self):
        """Float keys accept any number in range."""
        k = key("rows", "float", 20.0, range=(1.0, 200.0))

        assert k.accepts(15) is True
        assert k.accepts(2.5) is True
        assert k.accepts(0.5) is False
        assert k.accepts(False) is False

    def test_enum_accepts_nicks(self):
        """Enum keys accept declared nicks only."""
        k = key("date-format", "enum", "locale", choices={"us": 0, "uk": 1, "locale": 4})

        assert k.accepts("uk") is True
        assert k.accepts("iso") is False
        assert k.accepts(1) is False

    def test_enum_mapping(self):
        """Nicks map to integers and back."""
        k = key("date-format", "enum", "locale", choices={"us": 0, "uk": 1, "locale": 4})

        assert k.enum_value("locale") == 4
        assert k.enum_nick(1) == "uk"
        assert k.enum_nick(7) is None

    def test_value_accepts_anything(self):
        """Value keys take any JSON-compatible value."""
        k = key("last-geometry", "value", None)

        assert k.accepts([0, 0, 640, 480]) is True
        assert k.accepts({"x": 1}) is True

    def test_enum_requires_choices(self):
        """Enum keys without choices are invalid."""
        with pytest.raises(ValueError, match="requires choices"):
            key("style", "enum", "ledger")

    def test_range_only_for_numbers(self):
        """A range on a string key is invalid."""
        with pytest.raises(ValueError, match="range only applies"):
            key("name", "string", "", range=(0, 1))

    def test_default_must_be_valid(self):
        """Defaults must satisfy the key's own constraints."""
        with pytest.raises(ValueError, match="is not a valid int"):
            key("count", "int", 200, range=(0, 99))

    def test_from_dict_choice_list(self):
        """A list of choices is numbered in order."""
        k = KeyDef.from_dict(
            {"name": "style", "kind": "enum", "default": "journal",
             "choices": ["ledger", "auto-ledger", "journal"]}
        )

        assert k.choices == {"ledger": 0, "auto-ledger": 1, "journal": 2}
        assert k.enum_value(k.default) == 2


class TestSchemaDef:
    """Tests for SchemaDef."""

    def test_key_order_preserved(self):
        """Keys enumerate in declaration order."""
        schema = SchemaDef(
            schema_id="org.gnucash.test",
            keys=(key("b", "bool", False), key("a", "int", 0)),
        )

        assert schema.key_names() == ["b", "a"]
        assert [k.name for k in schema] == ["b", "a"]

    def test_duplicate_key_raises(self):
        """Duplicate key names are rejected."""
        with pytest.raises(ValueError, match="Duplicate key 'a'"):
            SchemaDef(
                schema_id="org.gnucash.test",
                keys=(key("a", "bool", False), key("a", "int", 0)),
            )

    def test_keys_case_sensitive(self):
        """Key lookup is case-sensitive."""
        schema = SchemaDef(schema_id="org.gnucash.test", keys=(key("Name", "string", ""),))

        assert schema.get_key("Name") is not None
        assert schema.get_key("name") is None

    def test_dict_round_trip(self):
        """to_dict output loads back into an equal definition."""
        schema = SchemaDef(
            schema_id="org.gnucash.test",
            keys=(
                key("count", "int", 1, range=(0, 10), summary="Count"),
                key("mode", "enum", "a", choices={"a": 0, "b": 1}),
            ),
        )

        assert SchemaDef.from_dict(schema.to_dict()) == schema
