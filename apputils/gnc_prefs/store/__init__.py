"""
Settings store abstraction for gnc-prefs.

This module provides a pluggable key-value backend supporting:
- SQLite (persistent, the default)
- In-memory (for testing and inspection tools)

Invariants:
    - Values are addressed by (schema, key) and checked against the schema
    - Rejected writes return False and change nothing
    - Change callbacks fire after the value is stored

How to change safely:
    - New backends must implement the SettingsStore protocol
    - Prefer subclassing BaseSettingsStore to keep notification semantics
"""

from .base import (
    Binding,
    BaseSettingsStore,
    SettingsStore,
    SignalMatch,
    StoreError,
    StoreSchema,
    StoreTypeError,
    Subscription,
    UnknownKeyError,
    changed_signal,
    create_store,
)
from .memory import InMemorySettingsStore
from .sqlite import SqliteSettingsStore

__all__ = [
    # Protocol and types
    "SettingsStore",
    "BaseSettingsStore",
    "StoreSchema",
    "Subscription",
    "Binding",
    "SignalMatch",
    "changed_signal",
    # Errors
    "StoreError",
    "StoreTypeError",
    "UnknownKeyError",
    # Factory
    "create_store",
    # Implementations
    "InMemorySettingsStore",
    "SqliteSettingsStore",
]
