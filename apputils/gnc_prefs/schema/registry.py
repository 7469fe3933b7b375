"""
Schema Registry for gnc-prefs.

The SchemaRegistry turns short schema names into fully-qualified ones and
hands out one live handle per fully-qualified schema. It provides:
- Name resolution against the configured prefix
- A cache of opened schema handles
- Explicit teardown of cached handles at shutdown

Invariants:
    - resolve() is idempotent: resolve(resolve(n)) == resolve(n)
    - resolve() of an empty name is the bare prefix
    - At most one live handle per fully-qualified name
    - Unknown schemas are never cached, so a schema installed later is
      picked up on the next lookup

How to change safely:
    - Set the prefix once at start-up, before handles are requested
    - Construct one registry per store and pass it to every component
    - Call clear() at shutdown instead of relying on process exit

Example:
    >>> registry = SchemaRegistry(store, prefix="org.gnucash")
    >>> registry.resolve("general")
    'org.gnucash.general'
    >>> handle = registry.get_handle("general")
    >>> handle.list_keys()
    ['autosave-interval-minutes', ...]
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import TYPE_CHECKING, Dict, List, Optional

from ..config import DEFAULT_PREFIX

if TYPE_CHECKING:
    from ..store.base import SettingsStore, StoreSchema

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SchemaHandle:
    """An opened configuration namespace.

    Attributes:
        name: Fully-qualified schema name
        schema: Opaque store-side schema object
        store: The store that opened the schema
    """

    name: str
    schema: StoreSchema
    store: SettingsStore

    def list_keys(self) -> List[str]:
        """Declared keys, queried from the store on every call."""
        return self.store.list_keys(self.schema)

    def __str__(self) -> str:
        return self.name


class SchemaRegistry:
    """Resolves schema names and caches schema handles.

    Thread-safety:
        - Cache insertion and prefix changes are serialized by a lock
        - resolve() reads the prefix once, so a concurrent set_prefix()
          yields either the old or the new prefix, never a mix

    Attributes:
        store: Settings store used to open schemas
        prefix: Prefix applied to short schema names
    """

    def __init__(self, store: SettingsStore, prefix: str = DEFAULT_PREFIX) -> None:
        """Initialize an empty registry.

        Args:
            store: Settings store used to open schemas
            prefix: Prefix applied to short schema names
        """
        self.store = store
        self._prefix = prefix
        self._handles: Dict[str, SchemaHandle] = {}
        self._lock = threading.Lock()

    @property
    def prefix(self) -> str:
        """Current schema name prefix."""
        return self._prefix

    def set_prefix(self, prefix: str) -> None:
        """Set the prefix applied to short schema names.

        Handles already cached keep their fully-qualified names.
        """
        with self._lock:
            self._prefix = prefix
        logger.debug(f"Schema prefix set to '{prefix}'")

    def resolve(self, name: Optional[str]) -> str:
        """Resolve a schema name to its fully-qualified form.

        Args:
            name: Short or fully-qualified schema name (None/"" = prefix)

        Returns:
            The bare prefix for an empty name, the name itself if it already
            starts with the prefix, otherwise "<prefix>.<name>"
        """
        prefix = self._prefix
        if not name:
            return prefix
        if name.startswith(prefix):
            return name
        return f"{prefix}.{name}"

    def get_handle(self, name: Optional[str]) -> Optional[SchemaHandle]:
        """Get the cached handle for a schema, opening it on first use.

        Args:
            name: Short or fully-qualified schema name

        Returns:
            SchemaHandle, or None if the store does not know the schema
        """
        full_name = self.resolve(name)

        handle = self._handles.get(full_name)
        logger.debug(f"Looking for schema {full_name} returned {handle}")
        if handle is not None:
            return handle

        with self._lock:
            handle = self._handles.get(full_name)
            if handle is not None:
                return handle

            schema = self.store.open_schema(full_name)
            if schema is None:
                logger.warning(f"Ignoring attempt to access unknown settings schema {full_name}")
                return None

            handle = SchemaHandle(name=full_name, schema=schema, store=self.store)
            self._handles[full_name] = handle
            logger.debug(f"Opened settings schema {full_name}")
            return handle

    def cached_names(self) -> List[str]:
        """Fully-qualified names of all cached handles, sorted."""
        return sorted(self._handles)

    def clear(self) -> None:
        """Drop every cached handle (shutdown teardown)."""
        with self._lock:
            count = len(self._handles)
            self._handles.clear()
        logger.debug(f"Schema registry cleared ({count} handles)")
