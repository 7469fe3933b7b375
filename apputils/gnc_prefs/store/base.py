"""
Base protocol and types for settings store backends.

This module defines the SettingsStore protocol every backend implements,
plus BaseSettingsStore, which carries all backend-independent behaviour
(value checks, enum mapping, change emission, bindings) on top of three raw
persistence hooks.

Invariants:
    - Handler id 0 is never issued; it means "no subscription"
    - A "changed::<key>" subscription fires only for that key
    - A "changed" subscription fires for every key of its schema
    - Change emission happens after the value is stored, outside the lock
    - Rejected writes leave the stored value untouched

How to change safely:
    - Protocol changes require updating all implementations
    - New backends should subclass BaseSettingsStore and only implement
      _read_raw, _write_raw, _delete_raw and close
"""

from __future__ import annotations

import copy
import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Flag, auto
from typing import (
    Any,
    Callable,
    Dict,
    List,
    Optional,
    Protocol,
    Tuple,
    TYPE_CHECKING,
    runtime_checkable,
)

from ..schema.source import SchemaSource
from ..schema.types import KeyDef, KeyKind, SchemaDef

if TYPE_CHECKING:
    from ..config import PrefsConfig

logger = logging.getLogger(__name__)

CHANGED_SIGNAL = "changed"
DETAIL_SEPARATOR = "::"

ChangeCallback = Callable[[Any, str, Any], None]


class StoreError(Exception):
    """Base exception for settings store operations."""
    pass


class UnknownKeyError(StoreError):
    """Key is not declared by the schema."""
    pass


class StoreTypeError(StoreError):
    """Typed accessor used on a key of a different kind."""
    pass


class SignalMatch(Flag):
    """Dimensions compared when removing subscriptions by match."""

    ID = auto()
    DETAIL = auto()
    FUNC = auto()
    DATA = auto()


class _Missing:
    def __repr__(self) -> str:
        return "<missing>"


MISSING = _Missing()


def changed_signal(key: Optional[str] = None) -> str:
    """Spell the change signal for a key, or for any key when key is empty."""
    if not key:
        return CHANGED_SIGNAL
    return f"{CHANGED_SIGNAL}{DETAIL_SEPARATOR}{key}"


def parse_signal(signal: Optional[str]) -> Optional[str]:
    """Split a change signal into its key detail.

    Returns:
        The key for "changed::<key>", None for plain "changed"

    Raises:
        ValueError: If the signal is not a change signal
    """
    if signal == CHANGED_SIGNAL:
        return None
    prefix = CHANGED_SIGNAL + DETAIL_SEPARATOR
    if signal and signal.startswith(prefix) and len(signal) > len(prefix):
        return signal[len(prefix):]
    raise ValueError(f"Malformed change signal {signal!r}")


@dataclass(frozen=True)
class StoreSchema:
    """Opaque store-side object for an opened schema.

    Attributes:
        definition: The installed schema definition
    """

    definition: SchemaDef

    @property
    def schema_id(self) -> str:
        return self.definition.schema_id

    def __str__(self) -> str:
        return self.schema_id


@dataclass
class Subscription:
    """A registered change callback.

    Attributes:
        handler_id: Identifier returned at registration (never 0)
        schema_id: Schema the callback is attached to
        signal: "changed" or "changed::<key>"
        func: Callback invoked as func(schema, key, user_data)
        user_data: Opaque context handed back to the callback
    """

    handler_id: int
    schema_id: str
    signal: str
    func: ChangeCallback
    user_data: Any = None

    @property
    def detail(self) -> Optional[str]:
        return parse_signal(self.signal)

    def fires_for(self, key: str) -> bool:
        detail = self.detail
        return detail is None or detail == key

    def matches(
        self,
        mask: SignalMatch,
        detail: Optional[str],
        func: Optional[ChangeCallback],
        user_data: Any,
        handler_id: int = 0,
    ) -> bool:
        """Whether every dimension selected by mask is equal."""
        if SignalMatch.ID in mask and self.handler_id != handler_id:
            return False
        if SignalMatch.DETAIL in mask and self.detail != detail:
            return False
        if SignalMatch.FUNC in mask and self.func != func:
            return False
        if SignalMatch.DATA in mask and self.user_data is not user_data:
            return False
        return True


@dataclass
class Binding:
    """Live two-way binding between a key and an object attribute."""

    schema: StoreSchema
    key: str
    target: Any
    prop: str
    handler_id: int = 0
    active: bool = field(default=True)


@runtime_checkable
class SettingsStore(Protocol):
    """Protocol for settings store backends.

    This is the contract the preference core requires from the underlying
    key-value engine. Values are addressed by (schema, key); the schema
    object comes from open_schema().

    Example:
        >>> store = InMemorySettingsStore(SchemaSource("/usr/share/gnucash/schemas"))
        >>> general = store.open_schema("org.gnucash.general")
        >>> store.set_int(general, "autosave-interval-minutes", 5)
        True
    """

    @abstractmethod
    def open_schema(self, name: str) -> Optional[StoreSchema]:
        """Open an installed schema, or return None if it is unknown."""
        ...

    @abstractmethod
    def list_keys(self, schema: StoreSchema) -> List[str]:
        """List the schema's declared keys in declaration order."""
        ...

    @abstractmethod
    def get_boolean(self, schema: StoreSchema, key: str) -> bool: ...

    @abstractmethod
    def get_int(self, schema: StoreSchema, key: str) -> int: ...

    @abstractmethod
    def get_double(self, schema: StoreSchema, key: str) -> float: ...

    @abstractmethod
    def get_string(self, schema: StoreSchema, key: str) -> str: ...

    @abstractmethod
    def get_enum(self, schema: StoreSchema, key: str) -> int: ...

    @abstractmethod
    def get_value(self, schema: StoreSchema, key: str) -> Any: ...

    @abstractmethod
    def set_boolean(self, schema: StoreSchema, key: str, value: bool) -> bool: ...

    @abstractmethod
    def set_int(self, schema: StoreSchema, key: str, value: int) -> bool: ...

    @abstractmethod
    def set_double(self, schema: StoreSchema, key: str, value: float) -> bool: ...

    @abstractmethod
    def set_string(self, schema: StoreSchema, key: str, value: str) -> bool: ...

    @abstractmethod
    def set_enum(self, schema: StoreSchema, key: str, value: int) -> bool: ...

    @abstractmethod
    def set_value(self, schema: StoreSchema, key: str, value: Any) -> bool: ...

    @abstractmethod
    def has_user_value(self, schema: StoreSchema, key: str) -> bool:
        """Whether the key holds a value other than its default."""
        ...

    @abstractmethod
    def reset(self, schema: StoreSchema, key: str) -> None:
        """Drop the user value so the key reads its schema default."""
        ...

    @abstractmethod
    def bind(self, schema: StoreSchema, key: str, target: Any, prop: str) -> Binding:
        """Bind a key to an attribute of target in both directions."""
        ...

    @abstractmethod
    def unbind(self, target: Any, prop: str) -> bool: ...

    @abstractmethod
    def subscribe(
        self,
        schema: StoreSchema,
        signal: str,
        func: ChangeCallback,
        user_data: Any = None,
    ) -> int:
        """Register a change callback and return its handler id (0 on failure)."""
        ...

    @abstractmethod
    def unsubscribe_matched(
        self,
        schema: StoreSchema,
        mask: SignalMatch,
        detail: Optional[str] = None,
        func: Optional[ChangeCallback] = None,
        user_data: Any = None,
    ) -> int:
        """Remove every subscription matching all dimensions in mask."""
        ...

    @abstractmethod
    def unsubscribe_by_id(self, schema: StoreSchema, handler_id: int) -> bool: ...

    @abstractmethod
    def close(self) -> None: ...


class BaseSettingsStore(ABC):
    """Backend-independent settings store behaviour.

    Subclasses provide raw persistence of user values; everything else
    (defaults, type and range checks, enum nick mapping, notification and
    bindings) lives here.

    Thread safety:
        Value writes and subscription bookkeeping are serialized with a
        re-entrant lock. Callbacks run after the lock is released.
    """

    def __init__(self, source: SchemaSource, read_only: bool = False) -> None:
        """Initialize the store.

        Args:
            source: Installed schema definitions
            read_only: Reject every write
        """
        self.source = source
        self.read_only = read_only
        self._subscriptions: Dict[int, Subscription] = {}
        self._bindings: Dict[Tuple[int, str], Binding] = {}
        self._next_handler_id = 1
        self._lock = threading.RLock()

    # Raw persistence, implemented by subclasses

    @abstractmethod
    def _read_raw(self, schema_id: str, key: str) -> Any:
        """Return the stored user value or MISSING."""
        ...

    @abstractmethod
    def _write_raw(self, schema_id: str, key: str, value: Any) -> None: ...

    @abstractmethod
    def _delete_raw(self, schema_id: str, key: str) -> bool:
        """Delete the user value; return whether one existed."""
        ...

    @abstractmethod
    def close(self) -> None: ...

    # Schemas and keys

    def open_schema(self, name: str) -> Optional[StoreSchema]:
        definition = self.source.lookup(name)
        if definition is None:
            return None
        return StoreSchema(definition)

    def list_keys(self, schema: StoreSchema) -> List[str]:
        return schema.definition.key_names()

    def _key_def(self, schema: StoreSchema, key: str) -> KeyDef:
        key_def = schema.definition.get_key(key)
        if key_def is None:
            raise UnknownKeyError(f"Key '{key}' is not declared by schema '{schema.schema_id}'")
        return key_def

    def _typed_key_def(self, schema: StoreSchema, key: str, *kinds: KeyKind) -> KeyDef:
        key_def = self._key_def(schema, key)
        if key_def.kind not in kinds:
            raise StoreTypeError(
                f"Key '{key}' in schema '{schema.schema_id}' is {key_def.kind.value}, "
                f"not {'/'.join(k.value for k in kinds)}"
            )
        return key_def

    def _current(self, schema: StoreSchema, key_def: KeyDef) -> Any:
        value = self._read_raw(schema.schema_id, key_def.name)
        if value is MISSING:
            return copy.deepcopy(key_def.default)
        return value

    # Getters

    def get_boolean(self, schema: StoreSchema, key: str) -> bool:
        key_def = self._typed_key_def(schema, key, KeyKind.BOOLEAN)
        return bool(self._current(schema, key_def))

    def get_int(self, schema: StoreSchema, key: str) -> int:
        key_def = self._typed_key_def(schema, key, KeyKind.INTEGER)
        return int(self._current(schema, key_def))

    def get_double(self, schema: StoreSchema, key: str) -> float:
        key_def = self._typed_key_def(schema, key, KeyKind.FLOAT)
        return float(self._current(schema, key_def))

    def get_string(self, schema: StoreSchema, key: str) -> str:
        # Enum keys read as their nick
        key_def = self._typed_key_def(schema, key, KeyKind.STRING, KeyKind.ENUM)
        return str(self._current(schema, key_def))

    def get_enum(self, schema: StoreSchema, key: str) -> int:
        key_def = self._typed_key_def(schema, key, KeyKind.ENUM)
        return key_def.enum_value(self._current(schema, key_def))

    def get_value(self, schema: StoreSchema, key: str) -> Any:
        return self._current(schema, self._key_def(schema, key))

    def has_user_value(self, schema: StoreSchema, key: str) -> bool:
        """Whether the key holds a value other than its default."""
        self._key_def(schema, key)
        return self._read_raw(schema.schema_id, key) is not MISSING

    # Setters

    def set_boolean(self, schema: StoreSchema, key: str, value: bool) -> bool:
        return self._write(schema, self._typed_key_def(schema, key, KeyKind.BOOLEAN), value)

    def set_int(self, schema: StoreSchema, key: str, value: int) -> bool:
        return self._write(schema, self._typed_key_def(schema, key, KeyKind.INTEGER), value)

    def set_double(self, schema: StoreSchema, key: str, value: float) -> bool:
        key_def = self._typed_key_def(schema, key, KeyKind.FLOAT)
        if isinstance(value, int) and not isinstance(value, bool):
            value = float(value)
        return self._write(schema, key_def, value)

    def set_string(self, schema: StoreSchema, key: str, value: str) -> bool:
        return self._write(schema, self._typed_key_def(schema, key, KeyKind.STRING), value)

    def set_enum(self, schema: StoreSchema, key: str, value: int) -> bool:
        key_def = self._typed_key_def(schema, key, KeyKind.ENUM)
        nick = key_def.enum_nick(value)
        if nick is None:
            logger.debug(f"Enum value {value} not declared for {schema.schema_id}:{key}")
            return False
        return self._write(schema, key_def, nick)

    def set_value(self, schema: StoreSchema, key: str, value: Any) -> bool:
        key_def = self._key_def(schema, key)
        if key_def.kind == KeyKind.FLOAT and isinstance(value, int) and not isinstance(value, bool):
            value = float(value)
        return self._write(schema, key_def, value)

    def _write(self, schema: StoreSchema, key_def: KeyDef, value: Any) -> bool:
        if self.read_only:
            logger.debug(f"Rejected write to {schema.schema_id}:{key_def.name}: store is read-only")
            return False
        if not key_def.accepts(value):
            logger.debug(
                f"Rejected write to {schema.schema_id}:{key_def.name}: "
                f"{value!r} is not a valid {key_def.kind.value}"
            )
            return False

        with self._lock:
            old = self._current(schema, key_def)
            self._write_raw(schema.schema_id, key_def.name, value)

        if old != value:
            self._emit_changed(schema, key_def.name)
        return True

    def reset(self, schema: StoreSchema, key: str) -> None:
        key_def = self._key_def(schema, key)
        if self.read_only:
            logger.debug(f"Ignoring reset of {schema.schema_id}:{key}: store is read-only")
            return

        with self._lock:
            old = self._current(schema, key_def)
            self._delete_raw(schema.schema_id, key)

        if old != key_def.default:
            self._emit_changed(schema, key)

    # Change notification

    def subscribe(
        self,
        schema: StoreSchema,
        signal: str,
        func: ChangeCallback,
        user_data: Any = None,
    ) -> int:
        try:
            parse_signal(signal)
        except ValueError as e:
            logger.error(f"Cannot subscribe to schema {schema.schema_id}: {e}")
            return 0

        with self._lock:
            handler_id = self._next_handler_id
            self._next_handler_id += 1
            self._subscriptions[handler_id] = Subscription(
                handler_id=handler_id,
                schema_id=schema.schema_id,
                signal=signal,
                func=func,
                user_data=user_data,
            )
        logger.debug(f"Subscribed handler {handler_id} to '{signal}' on {schema.schema_id}")
        return handler_id

    def unsubscribe_matched(
        self,
        schema: StoreSchema,
        mask: SignalMatch,
        detail: Optional[str] = None,
        func: Optional[ChangeCallback] = None,
        user_data: Any = None,
    ) -> int:
        if not mask:
            return 0
        with self._lock:
            doomed = [
                sub.handler_id
                for sub in self._subscriptions.values()
                if sub.schema_id == schema.schema_id
                and sub.matches(mask, detail, func, user_data)
            ]
            for handler_id in doomed:
                del self._subscriptions[handler_id]
        return len(doomed)

    def unsubscribe_by_id(self, schema: StoreSchema, handler_id: int) -> bool:
        with self._lock:
            sub = self._subscriptions.get(handler_id)
            if sub is None or sub.schema_id != schema.schema_id:
                logger.debug(f"No handler {handler_id} on schema {schema.schema_id}")
                return False
            del self._subscriptions[handler_id]
        return True

    def _emit_changed(self, schema: StoreSchema, key: str) -> None:
        with self._lock:
            targets = [
                sub
                for sub in self._subscriptions.values()
                if sub.schema_id == schema.schema_id and sub.fires_for(key)
            ]

        for sub in targets:
            try:
                sub.func(schema, key, sub.user_data)
            except Exception:
                logger.exception(
                    f"Change callback {sub.handler_id} failed for {schema.schema_id}:{key}"
                )

    # Bindings

    def bind(self, schema: StoreSchema, key: str, target: Any, prop: str) -> Binding:
        self._key_def(schema, key)
        self.unbind(target, prop)

        binding = Binding(schema=schema, key=key, target=target, prop=prop)
        setattr(target, prop, self.get_value(schema, key))

        def push(_schema: StoreSchema, changed_key: str, _user_data: Any) -> None:
            if not binding.active:
                return
            value = self.get_value(schema, changed_key)
            if getattr(target, prop, MISSING) != value:
                setattr(target, prop, value)

        binding.handler_id = self.subscribe(schema, changed_signal(key), push)

        watch = getattr(target, "watch", None)
        if callable(watch):

            def pull(value: Any) -> None:
                if binding.active and self.get_value(schema, key) != value:
                    if not self.set_value(schema, key, value):
                        logger.warning(
                            f"Bound property {prop!r} produced invalid value {value!r} "
                            f"for {schema.schema_id}:{key}"
                        )

            watch(prop, pull)

        with self._lock:
            self._bindings[(id(target), prop)] = binding
        return binding

    def unbind(self, target: Any, prop: str) -> bool:
        with self._lock:
            binding = self._bindings.pop((id(target), prop), None)
        if binding is None:
            return False
        binding.active = False
        self.unsubscribe_by_id(binding.schema, binding.handler_id)
        return True

    # Testing helpers

    def subscription_count(self, schema_id: Optional[str] = None) -> int:
        """Number of live subscriptions, optionally for one schema."""
        return sum(
            1
            for sub in self._subscriptions.values()
            if schema_id is None or sub.schema_id == schema_id
        )


def create_store(config: "PrefsConfig", source: Optional[SchemaSource] = None) -> SettingsStore:
    """Factory function to create a settings store from configuration.

    Args:
        config: Preference configuration
        source: Schema catalogue (built from config.schema.schema_dir if omitted)

    Returns:
        Appropriate SettingsStore implementation

    Raises:
        ValueError: If backend is not supported
    """
    from ..config import StoreBackend
    from .memory import InMemorySettingsStore
    from .sqlite import SqliteSettingsStore

    if source is None:
        source = SchemaSource(config.schema.schema_dir)

    if config.storage.backend == StoreBackend.MEMORY:
        return InMemorySettingsStore(source, read_only=config.storage.read_only)
    elif config.storage.backend == StoreBackend.SQLITE:
        return SqliteSettingsStore(
            source,
            data_dir=config.storage.data_dir,
            wal_mode=config.storage.wal_mode,
            busy_timeout_ms=config.storage.busy_timeout_ms,
            read_only=config.storage.read_only,
        )
    else:
        raise ValueError(f"Unsupported store backend: {config.storage.backend}")
