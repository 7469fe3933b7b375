"""
In-memory settings store implementation for testing.

This module provides a volatile settings backend for:
- Unit tests
- Tools that must never touch the user's preference database
- Local development

Invariants:
    - All user values are lost on close() or process exit
    - Behaves exactly like the persistent store apart from durability

How to change safely:
    - Keep interface compatible with the SettingsStore protocol
    - Add helpers that make test assertions easier
"""

from __future__ import annotations

import copy
import logging
from typing import Any, Dict, Optional, Tuple

from ..schema.source import SchemaSource
from .base import MISSING, BaseSettingsStore

logger = logging.getLogger(__name__)


class InMemorySettingsStore(BaseSettingsStore):
    """In-memory implementation of SettingsStore.

    Example:
        >>> store = InMemorySettingsStore(SchemaSource("/usr/share/gnucash/schemas"))
        >>> general = store.open_schema("org.gnucash.general")
        >>> store.set_boolean(general, "show-splash-screen", False)
        True
    """

    def __init__(self, source: Optional[SchemaSource] = None, read_only: bool = False) -> None:
        """Initialize in-memory store.

        Args:
            source: Installed schema definitions (empty catalogue if omitted)
            read_only: Reject every write
        """
        super().__init__(source if source is not None else SchemaSource(), read_only=read_only)
        self._values: Dict[Tuple[str, str], Any] = {}

    # Values are copied in and out, as the JSON round trip of the SQLite store does

    def _read_raw(self, schema_id: str, key: str) -> Any:
        value = self._values.get((schema_id, key), MISSING)
        if value is MISSING:
            return MISSING
        return copy.deepcopy(value)

    def _write_raw(self, schema_id: str, key: str, value: Any) -> None:
        self._values[(schema_id, key)] = copy.deepcopy(value)

    def _delete_raw(self, schema_id: str, key: str) -> bool:
        return self._values.pop((schema_id, key), MISSING) is not MISSING

    def close(self) -> None:
        """Drop all user values and subscriptions."""
        with self._lock:
            self._values.clear()
            self._subscriptions.clear()
            self._bindings.clear()
        logger.debug("InMemorySettingsStore closed")

    # Testing helpers

    def get_user_value(self, schema_id: str, key: str) -> Any:
        """Stored user value, or MISSING when the key is at its default."""
        return self._values.get((schema_id, key), MISSING)

    def user_value_count(self) -> int:
        """Number of keys holding a user value."""
        return len(self._values)
