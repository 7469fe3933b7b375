"""
gnc-prefs - schema-addressed preference store for GnuCash-style applications.

This package implements the preference layer of the application:
- Schemas declare typed keys with defaults (installed as YAML/JSON files)
- Every read and write is checked against the schema's declared keys
- Change notification and two-way property binding per key or per schema
- A one-shot migration that imports legacy GConf preferences

Architecture:
    ┌─────────────┐     ┌──────────────────┐     ┌──────────────────┐
    │ Application │────▶│ PrefsBackendTable│────▶│ GSettingsBackend │
    │   callers   │     │ (dispatch table) │     │ (key validation) │
    └─────────────┘     └──────────────────┘     └────────┬─────────┘
                                 ▲                        │
                                 │                        ▼
                        ┌────────┴────────┐      ┌──────────────────┐
                        │   Migration     │      │  SchemaRegistry  │
                        │   pipeline      │      │  (handle cache)  │
                        └─────────────────┘      └────────┬─────────┘
                                                          │
                                                          ▼
                                                 ┌──────────────────┐
                                                 │  SettingsStore   │
                                                 │ (memory/sqlite)  │
                                                 └──────────────────┘

Invariants:
    - At most one live schema handle per fully-qualified schema name
    - A key is valid iff the schema currently declares it
    - Accessors never raise; failures are logged and a zero value returned
    - Migration runs once, before steady state, and reports a structured result

How to change safely:
    - Add keys to schemas; never change the kind of an existing key
    - Append enum choices; never renumber existing ones
    - New stores must implement the SettingsStore protocol
"""

from ._version import __version__

__all__ = ["__version__"]
