"""
Schema module for gnc-prefs.

This module provides the schema system for preferences, including:
- Key and schema definitions (KeyDef, SchemaDef, KeyKind)
- The catalogue of installed schema files (SchemaSource)
- Name resolution and handle caching (SchemaRegistry)

Invariants:
    - Key kinds never change for an existing key
    - Enum choices are append-only
    - One live handle per fully-qualified schema name

How to change safely:
    - Add new keys or new schema files
    - Never rename a key; add a new one and migrate
"""

from .registry import SchemaHandle, SchemaRegistry
from .source import (
    DuplicateSchemaError,
    SchemaLoadError,
    SchemaSource,
    parse_schema_document,
)
from .types import KeyDef, KeyKind, SchemaDef, key

__all__ = [
    # Types
    "KeyDef",
    "KeyKind",
    "SchemaDef",
    "key",
    # Installed definitions
    "SchemaSource",
    "SchemaLoadError",
    "DuplicateSchemaError",
    "parse_schema_document",
    # Registry
    "SchemaHandle",
    "SchemaRegistry",
]
