"""
gnc-prefs Test Suite.

This package contains:
- unit/: Unit tests (schemas, stores, accessor, dispatch table, migration parts)
- integration/: Integration tests (SQLite store, full migration, CLI)
"""
