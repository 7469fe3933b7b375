"""
Key-validated preference access.

GSettingsBackend is the concrete preference backend. Every operation
resolves the schema handle through the SchemaRegistry and checks that the
key is declared by the schema before touching the store.

Error contract:
    - Unknown schema: warning logged by the registry, zero value returned
    - Invalid key: error logged, zero value returned
    - Store rejected a write: error logged, False returned
    None of these raise; the zero value (False, 0, 0.0, None) is the only
    signal to the caller, which therefore cannot tell "invalid key" from a
    stored zero, nor "invalid key" from "rejected write".

Invariants:
    - A key is valid iff the schema declares it right now (re-queried)
    - An empty key means "any key" and is never validated
    - An invalid non-empty key never installs or removes a subscription
"""

from __future__ import annotations

import logging
from typing import Any, Optional, TypeVar

from .schema.registry import SchemaHandle, SchemaRegistry
from .store.base import ChangeCallback, SignalMatch, StoreError, changed_signal

logger = logging.getLogger(__name__)

T = TypeVar("T")


class GSettingsBackend:
    """Preference backend validating keys against their schema.

    Attributes:
        registry: Registry used to resolve schema names to handles

    Example:
        >>> backend = GSettingsBackend(SchemaRegistry(store))
        >>> backend.set_int("general", "autosave-interval-minutes", 5)
        True
        >>> backend.get_int("general", "autosave-interval-minutes")
        5
        >>> backend.get_int("general", "no-such-key")
        0
    """

    def __init__(self, registry: SchemaRegistry) -> None:
        self.registry = registry

    # Key validation

    def is_valid_key(self, handle: Optional[SchemaHandle], key: Optional[str]) -> bool:
        """Check that key is currently declared by the schema.

        Args:
            handle: Schema handle (None is never valid)
            key: Key name, compared case-sensitively

        Returns:
            True iff the schema lists the key
        """
        if handle is None:
            return False
        return key in handle.list_keys()

    def _signal_for(self, handle: SchemaHandle, schema: Optional[str], key: Optional[str]) -> Optional[str]:
        if not key:
            return changed_signal()
        if self.is_valid_key(handle, key):
            return changed_signal(key)
        logger.error(f"Invalid key {key} for schema {schema}")
        return None

    # Change notification

    def register_cb(
        self,
        schema: Optional[str],
        key: Optional[str],
        func: ChangeCallback,
        user_data: Any = None,
    ) -> int:
        """Register a change callback for one key, or any key if key is empty.

        Returns:
            Handler id, or 0 if nothing was registered
        """
        handle = self.registry.get_handle(schema)
        if handle is None or func is None:
            return 0

        signal = self._signal_for(handle, schema, key)
        if signal is None:
            return 0

        handler_id = self.registry.store.subscribe(handle.schema, signal, func, user_data)
        logger.debug(f"Registered handler {handler_id} for '{signal}' on {handle.name}")
        return handler_id

    def remove_cb_by_func(
        self,
        schema: Optional[str],
        key: Optional[str],
        func: ChangeCallback,
        user_data: Any = None,
    ) -> int:
        """Remove callbacks matching key, function and user data.

        Returns:
            Number of callbacks removed
        """
        handle = self.registry.get_handle(schema)
        if handle is None or func is None:
            return 0

        signal = self._signal_for(handle, schema, key)
        if signal is None:
            return 0

        matched = self.registry.store.unsubscribe_matched(
            handle.schema,
            SignalMatch.DETAIL | SignalMatch.FUNC | SignalMatch.DATA,
            detail=key or None,
            func=func,
            user_data=user_data,
        )
        logger.debug(f"Removed {matched} handlers for signal '{signal}' from schema '{schema}'")
        return matched

    def remove_cb_by_id(self, schema: Optional[str], handler_id: int) -> None:
        """Remove one callback by the id returned at registration."""
        handle = self.registry.get_handle(schema)
        if handle is None:
            return
        self.registry.store.unsubscribe_by_id(handle.schema, handler_id)

    def register_any_cb(self, schema: Optional[str], func: ChangeCallback, user_data: Any = None) -> int:
        """Register a callback fired for any key of the schema."""
        return self.register_cb(schema, None, func, user_data)

    def remove_any_cb_by_func(self, schema: Optional[str], func: ChangeCallback, user_data: Any = None) -> int:
        """Remove "any key" callbacks matching function and user data."""
        return self.remove_cb_by_func(schema, None, func, user_data)

    def bind(self, schema: Optional[str], key: str, target: Any, prop: str) -> None:
        """Bind a key to an attribute of target in both directions."""
        handle = self.registry.get_handle(schema)
        if handle is None:
            return

        if self.is_valid_key(handle, key):
            self.registry.store.bind(handle.schema, key, target, prop)
        else:
            logger.error(f"Invalid key {key} for schema {schema}")

    # Getters

    def _get(self, schema: Optional[str], key: str, getter: str, zero: T) -> T:
        handle = self.registry.get_handle(schema)
        if handle is None:
            return zero

        if not self.is_valid_key(handle, key):
            logger.error(f"Invalid key {key} for schema {schema}")
            return zero

        try:
            return getattr(self.registry.store, getter)(handle.schema, key)
        except StoreError as e:
            logger.error(f"Unable to read key {key} in schema {schema}: {e}")
            return zero

    def get_bool(self, schema: Optional[str], key: str) -> bool:
        return self._get(schema, key, "get_boolean", False)

    def get_int(self, schema: Optional[str], key: str) -> int:
        return self._get(schema, key, "get_int", 0)

    def get_float(self, schema: Optional[str], key: str) -> float:
        return self._get(schema, key, "get_double", 0.0)

    def get_string(self, schema: Optional[str], key: str) -> Optional[str]:
        return self._get(schema, key, "get_string", None)

    def get_enum(self, schema: Optional[str], key: str) -> int:
        return self._get(schema, key, "get_enum", 0)

    def get_value(self, schema: Optional[str], key: str) -> Any:
        return self._get(schema, key, "get_value", None)

    # Setters

    def _set(self, schema: Optional[str], key: str, setter: str, value: Any) -> bool:
        handle = self.registry.get_handle(schema)
        if handle is None:
            return False

        logger.debug(f"Setting schema: {schema}, key: {key}")
        result = False
        if self.is_valid_key(handle, key):
            try:
                result = getattr(self.registry.store, setter)(handle.schema, key, value)
            except StoreError as e:
                logger.debug(f"Store refused {schema}:{key}: {e}")
                result = False
            if not result:
                logger.error(f"Unable to set value for key {key} in schema {schema}")
        else:
            logger.error(f"Invalid key {key} for schema {schema}")

        return result

    def set_bool(self, schema: Optional[str], key: str, value: bool) -> bool:
        return self._set(schema, key, "set_boolean", value)

    def set_int(self, schema: Optional[str], key: str, value: int) -> bool:
        return self._set(schema, key, "set_int", value)

    def set_float(self, schema: Optional[str], key: str, value: float) -> bool:
        return self._set(schema, key, "set_double", value)

    def set_string(self, schema: Optional[str], key: str, value: str) -> bool:
        return self._set(schema, key, "set_string", value)

    def set_enum(self, schema: Optional[str], key: str, value: int) -> bool:
        return self._set(schema, key, "set_enum", value)

    def set_value(self, schema: Optional[str], key: str, value: Any) -> bool:
        return self._set(schema, key, "set_value", value)

    # Reset

    def reset(self, schema: Optional[str], key: str) -> None:
        """Reset one key to its schema default."""
        handle = self.registry.get_handle(schema)
        if handle is None:
            return

        if self.is_valid_key(handle, key):
            try:
                self.registry.store.reset(handle.schema, key)
            except StoreError as e:
                logger.error(f"Unable to reset key {key} in schema {schema}: {e}")
        else:
            logger.error(f"Invalid key {key} for schema {schema}")

    def reset_schema(self, schema: Optional[str]) -> None:
        """Reset every key of the schema, in store enumeration order."""
        handle = self.registry.get_handle(schema)
        if handle is None:
            return

        for key in handle.list_keys():
            self.reset(schema, key)


