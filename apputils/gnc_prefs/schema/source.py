"""
Installed schema definitions.

The SchemaSource is the store-side catalogue of schema definitions. Schemas
are installed as YAML or JSON files in a schema directory:

    id: org.gnucash.general
    keys:
      - name: autosave-interval-minutes
        kind: int
        default: 3
        range: [0, 99]
      - name: date-format
        kind: enum
        default: locale
        choices: {us: 0, uk: 1, ce: 2, iso: 3, locale: 4}

A file may also hold a list of such documents under a top-level
``schemas:`` key.

Invariants:
    - schema_id values are unique across all installed files
    - A lookup miss re-scans the directory, so schemas installed after
      start-up become visible without a restart
    - The fingerprint depends only on the definitions, never on file order

How to change safely:
    - Install new schemas as new files
    - Keep definitions deterministic so fingerprints stay comparable
"""

from __future__ import annotations

import hashlib
import json
import logging
import threading
from pathlib import Path
from typing import Dict, Iterator, Optional

import yaml

from .types import SchemaDef

logger = logging.getLogger(__name__)

SCHEMA_FILE_SUFFIXES = (".yaml", ".yml", ".json")


class SchemaLoadError(Exception):
    """Raised when a schema definition file cannot be parsed."""
    pass


class DuplicateSchemaError(Exception):
    """Raised when attempting to install a duplicate schema id."""
    pass


def parse_schema_document(text: str, path: Optional[str] = None) -> list[SchemaDef]:
    """Parse a YAML/JSON schema document into definitions.

    Args:
        text: Document contents (JSON is a subset of YAML)
        path: Source path, recorded on each definition

    Returns:
        List of SchemaDef found in the document

    Raises:
        SchemaLoadError: If the document is malformed
    """
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise SchemaLoadError(f"Invalid schema document {path or '<string>'}: {e}")

    if data is None:
        return []
    if not isinstance(data, dict):
        raise SchemaLoadError(f"Schema document {path or '<string>'} must be a mapping")

    entries = data["schemas"] if "schemas" in data else [data]
    schemas = []
    for entry in entries:
        try:
            schemas.append(SchemaDef.from_dict(entry, path=path))
        except (KeyError, TypeError, ValueError) as e:
            raise SchemaLoadError(f"Invalid schema in {path or '<string>'}: {e}")
    return schemas


class SchemaSource:
    """Catalogue of installed schema definitions.

    Thread-safety:
        Registration and directory scans are serialized by an internal lock.

    Example:
        >>> source = SchemaSource("/usr/share/gnucash/schemas")
        >>> source.lookup("org.gnucash.general")
        SchemaDef(schema_id='org.gnucash.general', ...)
    """

    def __init__(self, schema_dir: Optional[str] = None) -> None:
        """Initialize the catalogue.

        Args:
            schema_dir: Directory to scan for schema files (None = manual only)
        """
        self.schema_dir = Path(schema_dir) if schema_dir else None
        self._schemas: Dict[str, SchemaDef] = {}
        self._loaded_files: set[Path] = set()
        self._lock = threading.Lock()
        if self.schema_dir is not None:
            self.scan()

    def register(self, schema: SchemaDef) -> None:
        """Install a schema definition.

        Raises:
            DuplicateSchemaError: If the schema id is already installed
        """
        with self._lock:
            self._register_locked(schema)

    def _register_locked(self, schema: SchemaDef) -> None:
        if schema.schema_id in self._schemas:
            existing = self._schemas[schema.schema_id]
            raise DuplicateSchemaError(
                f"Schema '{schema.schema_id}' already installed from {existing.path or '<code>'}"
            )
        self._schemas[schema.schema_id] = schema
        logger.debug(f"Installed schema {schema.schema_id} ({len(schema.keys)} keys)")

    def scan(self) -> int:
        """Load schema files not seen before from the schema directory.

        Files that fail to parse are logged and skipped so that one broken
        file does not hide every other schema.

        Returns:
            Number of schemas newly installed
        """
        if self.schema_dir is None or not self.schema_dir.is_dir():
            return 0

        added = 0
        with self._lock:
            for path in sorted(self.schema_dir.iterdir()):
                if path.suffix not in SCHEMA_FILE_SUFFIXES or path in self._loaded_files:
                    continue
                try:
                    schemas = parse_schema_document(path.read_text(encoding="utf-8"), str(path))
                    for schema in schemas:
                        self._register_locked(schema)
                        added += 1
                except (OSError, SchemaLoadError, DuplicateSchemaError) as e:
                    logger.error(f"Skipping schema file {path}: {e}")
                self._loaded_files.add(path)
        return added

    def lookup(self, schema_id: str) -> Optional[SchemaDef]:
        """Find an installed schema, re-scanning the directory on a miss."""
        schema = self._schemas.get(schema_id)
        if schema is None and self.scan():
            schema = self._schemas.get(schema_id)
        return schema

    def schema_ids(self) -> list[str]:
        """All installed schema ids, sorted."""
        return sorted(self._schemas)

    def __iter__(self) -> Iterator[SchemaDef]:
        return iter([self._schemas[sid] for sid in self.schema_ids()])

    def __len__(self) -> int:
        return len(self._schemas)

    def to_dict(self) -> dict:
        """Dictionary of all definitions, sorted by id for determinism."""
        return {"schemas": [s.to_dict() for s in self]}

    def fingerprint(self) -> str:
        """Compute SHA-256 fingerprint of the installed definitions.

        Returns:
            Fingerprint string in format 'sha256:<hash>'
        """
        canonical = json.dumps(self.to_dict(), sort_keys=True, separators=(',', ':'))
        hash_bytes = hashlib.sha256(canonical.encode('utf-8')).hexdigest()
        return f"sha256:{hash_bytes}"
