"""
Core type definitions for preference schemas.

This module defines the foundational types of the schema system:
- KeyKind: The value kinds a key can hold
- KeyDef: Definition of a single typed key with its default
- SchemaDef: A named namespace of keys

Invariants:
    - Key names are unique within a schema and compared case-sensitively
    - A key's kind never changes once released
    - Enum choices are append-only (nick -> integer value)
    - Defaults always satisfy the key's own constraints

How to change safely:
    - Add new keys with new names
    - Add new enum choices with new integer values
    - Never remove or renumber enum choices

Example:
    >>> from apputils.gnc_prefs.schema.types import SchemaDef, key
    >>> General = SchemaDef(
    ...     schema_id="org.gnucash.general",
    ...     keys=(
    ...         key("autosave-interval-minutes", "int", 3, range=(0, 99)),
    ...         key("date-format", "enum", "locale", choices={"us": 0, "uk": 1, "locale": 4}),
    ...     ),
    ... )
"""

from __future__ import annotations

from dataclasses import dataclass
from dataclasses import field as dataclass_field
from enum import Enum
from typing import Any, Dict, Iterator, Optional, Tuple


class KeyKind(Enum):
    """Supported key kinds.

    These map to the typed getters and setters of the store.
    """

    BOOLEAN = "bool"
    INTEGER = "int"
    FLOAT = "float"
    STRING = "string"
    ENUM = "enum"
    VALUE = "value"  # Arbitrary JSON-compatible value

    @classmethod
    def from_str(cls, value: str) -> KeyKind:
        """Convert string representation to KeyKind.

        Raises:
            ValueError: If value is not a valid key kind
        """
        for kind in cls:
            if kind.value == value:
                return kind
        valid = [k.value for k in cls]
        raise ValueError(f"Invalid key kind '{value}'. Valid kinds: {valid}")


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


@dataclass(frozen=True)
class KeyDef:
    """Definition of a single key within a schema.

    Attributes:
        name: Key name, unique within the schema
        kind: The value kind of the key
        default: Value returned until the user sets one
        choices: Enum nick -> integer value mapping (ENUM only)
        range: Inclusive (min, max) bounds (INTEGER/FLOAT only)
        summary: One-line summary
        description: Longer description
    """

    name: str
    kind: KeyKind
    default: Any = None
    choices: Optional[Dict[str, int]] = None
    range: Optional[Tuple[float, float]] = None
    summary: str = ""
    description: str = ""

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("Key name is required")
        if self.kind == KeyKind.ENUM and not self.choices:
            raise ValueError(f"Enum key '{self.name}' requires choices")
        if self.range is not None and self.kind not in (KeyKind.INTEGER, KeyKind.FLOAT):
            raise ValueError(f"Key '{self.name}': range only applies to int and float keys")
        if not self.accepts(self.default):
            raise ValueError(
                f"Key '{self.name}': default {self.default!r} is not a valid {self.kind.value}"
            )

    def accepts(self, value: Any) -> bool:
        """Check whether a value may be stored under this key.

        Enum keys store the nick, so only nicks from ``choices`` are accepted.
        """
        if self.kind == KeyKind.BOOLEAN:
            return isinstance(value, bool)
        if self.kind == KeyKind.INTEGER:
            return _is_int(value) and self._in_range(value)
        if self.kind == KeyKind.FLOAT:
            return _is_number(value) and self._in_range(value)
        if self.kind == KeyKind.STRING:
            return isinstance(value, str)
        if self.kind == KeyKind.ENUM:
            return isinstance(value, str) and value in (self.choices or {})
        return True

    def _in_range(self, value: float) -> bool:
        if self.range is None:
            return True
        low, high = self.range
        return low <= value <= high

    def enum_value(self, nick: str) -> int:
        """Map an enum nick to its integer value."""
        return (self.choices or {})[nick]

    def enum_nick(self, value: int) -> Optional[str]:
        """Map an integer value back to its nick, or None if undeclared."""
        for nick, number in (self.choices or {}).items():
            if number == value:
                return nick
        return None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary representation."""
        result: dict[str, Any] = {
            "name": self.name,
            "kind": self.kind.value,
            "default": self.default,
        }
        if self.choices is not None:
            result["choices"] = dict(self.choices)
        if self.range is not None:
            result["range"] = list(self.range)
        if self.summary:
            result["summary"] = self.summary
        if self.description:
            result["description"] = self.description
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> KeyDef:
        """Create from dictionary representation.

        ``choices`` may be a mapping of nick to value or a plain list of
        nicks, numbered from zero in list order.
        """
        choices = data.get("choices")
        if isinstance(choices, (list, tuple)):
            choices = {nick: idx for idx, nick in enumerate(choices)}
        elif choices is not None:
            choices = {str(nick): int(number) for nick, number in choices.items()}

        bounds = data.get("range")
        return cls(
            name=data["name"],
            kind=KeyKind.from_str(data["kind"]),
            default=data.get("default"),
            choices=choices,
            range=tuple(bounds) if bounds is not None else None,
            summary=data.get("summary", ""),
            description=data.get("description", ""),
        )


def key(
    name: str,
    kind: str | KeyKind,
    default: Any = None,
    **kwargs: Any,
) -> KeyDef:
    """Shorthand for building a KeyDef.

    Example:
        >>> key("show-hints", "bool", True)
    """
    if isinstance(kind, str):
        kind = KeyKind.from_str(kind)
    return KeyDef(name=name, kind=kind, default=default, **kwargs)


@dataclass(frozen=True)
class SchemaDef:
    """A named namespace of configuration keys.

    Attributes:
        schema_id: Fully-qualified schema name (e.g. "org.gnucash.general")
        keys: Ordered key definitions; order is the enumeration order
        path: Optional source file the definition was loaded from
    """

    schema_id: str
    keys: Tuple[KeyDef, ...] = ()
    path: Optional[str] = dataclass_field(default=None, compare=False)

    def __post_init__(self) -> None:
        if not self.schema_id:
            raise ValueError("schema_id is required")
        seen: set[str] = set()
        for key_def in self.keys:
            if key_def.name in seen:
                raise ValueError(
                    f"Duplicate key '{key_def.name}' in schema '{self.schema_id}'"
                )
            seen.add(key_def.name)

    def key_names(self) -> list[str]:
        """Key names in declaration order."""
        return [k.name for k in self.keys]

    def get_key(self, name: str) -> Optional[KeyDef]:
        """Look up a key definition by exact name."""
        for key_def in self.keys:
            if key_def.name == name:
                return key_def
        return None

    def __iter__(self) -> Iterator[KeyDef]:
        return iter(self.keys)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "id": self.schema_id,
            "keys": [k.to_dict() for k in self.keys],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any], path: Optional[str] = None) -> SchemaDef:
        """Create from dictionary representation."""
        return cls(
            schema_id=data["id"],
            keys=tuple(KeyDef.from_dict(k) for k in data.get("keys", [])),
            path=path,
        )
