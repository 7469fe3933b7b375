"""
Preference backend interface and dispatch table.

The rest of the application never talks to a concrete settings technology.
It calls through a PrefsBackendTable, whose slots are filled once at
start-up from an object implementing the PrefsBackend protocol (normally
GSettingsBackend). Re-pointing the table at another backend, such as a test
double, requires no change to callers.

Invariants:
    - load() fills every slot; loading again overwrites every slot
    - Calling through an empty table raises BackendNotLoadedError
    - The table itself is never unregistered

How to change safely:
    - New operations must be added to PrefsBackend, OPERATIONS and every
      backend implementation together
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Optional, Protocol, runtime_checkable

from .store.base import ChangeCallback

logger = logging.getLogger(__name__)


class BackendNotLoadedError(Exception):
    """Raised when the dispatch table is used before a backend is loaded."""
    pass


@runtime_checkable
class PrefsBackend(Protocol):
    """Operations every preference backend provides."""

    def register_cb(self, schema: Optional[str], key: Optional[str], func: ChangeCallback, user_data: Any = None) -> int: ...

    def remove_cb_by_func(self, schema: Optional[str], key: Optional[str], func: ChangeCallback, user_data: Any = None) -> int: ...

    def remove_cb_by_id(self, schema: Optional[str], handler_id: int) -> None: ...

    def register_any_cb(self, schema: Optional[str], func: ChangeCallback, user_data: Any = None) -> int: ...

    def remove_any_cb_by_func(self, schema: Optional[str], func: ChangeCallback, user_data: Any = None) -> int: ...

    def bind(self, schema: Optional[str], key: str, target: Any, prop: str) -> None: ...

    def get_bool(self, schema: Optional[str], key: str) -> bool: ...

    def get_int(self, schema: Optional[str], key: str) -> int: ...

    def get_float(self, schema: Optional[str], key: str) -> float: ...

    def get_string(self, schema: Optional[str], key: str) -> Optional[str]: ...

    def get_enum(self, schema: Optional[str], key: str) -> int: ...

    def get_value(self, schema: Optional[str], key: str) -> Any: ...

    def set_bool(self, schema: Optional[str], key: str, value: bool) -> bool: ...

    def set_int(self, schema: Optional[str], key: str, value: int) -> bool: ...

    def set_float(self, schema: Optional[str], key: str, value: float) -> bool: ...

    def set_string(self, schema: Optional[str], key: str, value: str) -> bool: ...

    def set_enum(self, schema: Optional[str], key: str, value: int) -> bool: ...

    def set_value(self, schema: Optional[str], key: str, value: Any) -> bool: ...

    def reset(self, schema: Optional[str], key: str) -> None: ...

    def reset_schema(self, schema: Optional[str]) -> None: ...


# Table slot -> backend operation
OPERATIONS: Dict[str, str] = {
    "register_cb": "register_cb",
    "remove_cb_by_func": "remove_cb_by_func",
    "remove_cb_by_id": "remove_cb_by_id",
    "register_group_cb": "register_any_cb",
    "remove_group_cb_by_func": "remove_any_cb_by_func",
    "bind": "bind",
    "get_bool": "get_bool",
    "get_int": "get_int",
    "get_float": "get_float",
    "get_string": "get_string",
    "get_enum": "get_enum",
    "get_value": "get_value",
    "set_bool": "set_bool",
    "set_int": "set_int",
    "set_float": "set_float",
    "set_string": "set_string",
    "set_enum": "set_enum",
    "set_value": "set_value",
    "reset": "reset",
    "reset_group": "reset_schema",
}


class PrefsBackendTable:
    """Application-facing dispatch table of preference operations.

    Each slot in OPERATIONS becomes an attribute holding the loaded
    backend's bound method, so callers write ``prefs.get_bool(...)``
    without knowing which backend answers.

    Example:
        >>> prefs = PrefsBackendTable()
        >>> prefs.load(GSettingsBackend(registry))
        >>> prefs.set_bool("general", "show-splash-screen", False)
        True
    """

    def __init__(self, backend: Optional[PrefsBackend] = None) -> None:
        self._slots: Dict[str, Callable[..., Any]] = {}
        self.backend: Optional[PrefsBackend] = None
        if backend is not None:
            self.load(backend)

    @property
    def loaded(self) -> bool:
        return self.backend is not None

    def load(self, backend: PrefsBackend) -> None:
        """Point every slot at the given backend.

        Raises:
            TypeError: If the backend lacks one of the operations
        """
        missing = [op for op in OPERATIONS.values() if not callable(getattr(backend, op, None))]
        if missing:
            raise TypeError(
                f"{type(backend).__name__} is not a preference backend; missing {missing}"
            )

        self._slots = {slot: getattr(backend, op) for slot, op in OPERATIONS.items()}
        self.backend = backend
        logger.debug(f"Preference backend loaded: {type(backend).__name__}")

    def __getattr__(self, name: str) -> Callable[..., Any]:
        if name.startswith("_") or name not in OPERATIONS:
            raise AttributeError(name)
        slots = self.__dict__.get("_slots")
        if not slots:
            raise BackendNotLoadedError(f"No preference backend loaded; cannot call {name}()")
        return slots[name]


def load_backend(table: PrefsBackendTable, backend: PrefsBackend) -> PrefsBackendTable:
    """Populate the dispatch table from a backend and return it."""
    table.load(backend)
    return table
