"""
gnc-prefs - Main entry point.

This module wires the preference layer together:
- SchemaSource (installed schema files)
- SettingsStore (memory or SQLite, per configuration)
- SchemaRegistry + GSettingsBackend
- PrefsBackendTable (what the application calls)

and provides the ``gnc-prefs`` command line tool:

Usage:
    gnc-prefs schemas
    gnc-prefs list general [--changed]
    gnc-prefs get general autosave-interval-minutes
    gnc-prefs set general autosave-interval-minutes 5
    gnc-prefs reset general [KEY]
    gnc-prefs migrate [--force]

Configuration is entirely via environment variables.
See config.py for all available settings.

Invariants:
    - The dispatch table is loaded before any caller can use it
    - Migration runs before steady-state use of preferences
    - Exit code is non-zero whenever a command did not take effect
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, List, Optional

import json_log_formatter

from .accessor import GSettingsBackend
from .backend import PrefsBackendTable
from .config import PrefsConfig
from .migration import MigrationResult, build_pipeline, migrate_if_needed
from .migration.pipeline import MIGRATE_DONE_KEY, MIGRATE_DONE_SCHEMA
from .schema import KeyKind, SchemaRegistry, SchemaSource
from .store import SettingsStore, create_store

logger = logging.getLogger(__name__)


def setup_logging(config: PrefsConfig) -> None:
    """Configure logging based on configuration.

    Args:
        config: Preference configuration
    """
    level = getattr(logging, config.observability.log_level.upper(), logging.WARNING)

    if config.observability.log_format == "json":
        formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]


class Preferences:
    """Preference layer orchestrator.

    Owns the schema catalogue, the store, the registry and the dispatch
    table, and tears them down together.

    Attributes:
        config: Preference configuration
        source: Installed schema definitions
        store: Settings store
        registry: Schema handle registry
        table: Dispatch table the application calls through

    Example:
        >>> prefs = Preferences(config)
        >>> table = prefs.open()
        >>> table.get_bool("general", "show-splash-screen")
        True
        >>> prefs.close()
    """

    def __init__(self, config: PrefsConfig | None = None) -> None:
        self.config = config or PrefsConfig.from_env()
        self.source: SchemaSource | None = None
        self.store: SettingsStore | None = None
        self.registry: SchemaRegistry | None = None
        self.table = PrefsBackendTable()

    @property
    def backend(self) -> GSettingsBackend:
        return self.table.backend

    def open(self) -> PrefsBackendTable:
        """Build the preference layer and load the dispatch table."""
        if self.table.loaded:
            return self.table

        self.config.log_config()
        self.source = SchemaSource(self.config.schema.schema_dir)
        logger.info(f"Loaded {len(self.source)} schemas, fingerprint: {self.source.fingerprint()}")

        self.store = create_store(self.config, self.source)
        self.registry = SchemaRegistry(self.store, prefix=self.config.schema.prefix)
        self.table.load(GSettingsBackend(self.registry))
        return self.table

    def migrate(self, force: bool = False, home: Optional[Path] = None) -> Optional[MigrationResult]:
        """Import legacy preferences unless already done (or force is set)."""
        table = self.open()
        pipeline = build_pipeline(self.config.migration, table, home=home)
        if force:
            result = pipeline.run()
            if result.succeeded:
                table.set_bool(MIGRATE_DONE_SCHEMA, MIGRATE_DONE_KEY, True)
            return result
        return migrate_if_needed(table, pipeline)

    def close(self) -> None:
        if self.registry is not None:
            self.registry.clear()
        if self.store is not None:
            self.store.close()
        self.store = None
        self.registry = None
        self.table = PrefsBackendTable()


def parse_value(text: str) -> Any:
    """Parse a command-line value as JSON, falling back to the raw string.

    Example:
        >>> parse_value("5"), parse_value("true"), parse_value("EUR")
        (5, True, 'EUR')
    """
    try:
        return json.loads(text)
    except ValueError:
        return text


class PrefsCLI:
    """Command implementations for the gnc-prefs tool.

    Each command prints its result and returns a process exit code.
    """

    def __init__(self, prefs: Preferences) -> None:
        self.prefs = prefs
        self.table = prefs.open()

    def _key_kind(self, schema: str, key: str) -> Optional[KeyKind]:
        handle = self.prefs.registry.get_handle(schema)
        if handle is None:
            print(f"Unknown schema: {self.prefs.registry.resolve(schema)}", file=sys.stderr)
            return None
        key_def = handle.schema.definition.get_key(key)
        if key_def is None:
            print(f"Unknown key {key} in schema {handle.name}", file=sys.stderr)
            return None
        return key_def.kind

    def schemas(self) -> int:
        for schema_id in self.prefs.source.schema_ids():
            print(schema_id)
        return 0

    def list(self, schema: str, changed: bool = False) -> int:
        handle = self.prefs.registry.get_handle(schema)
        if handle is None:
            print(f"Unknown schema: {self.prefs.registry.resolve(schema)}", file=sys.stderr)
            return 1
        for key in handle.list_keys():
            if changed and not self.prefs.store.has_user_value(handle.schema, key):
                continue
            print(f"{key} = {json.dumps(self.table.get_value(schema, key))}")
        return 0

    def get(self, schema: str, key: str) -> int:
        if self._key_kind(schema, key) is None:
            return 1
        print(json.dumps(self.table.get_value(schema, key)))
        return 0

    def set(self, schema: str, key: str, text: str) -> int:
        kind = self._key_kind(schema, key)
        if kind is None:
            return 1

        value = parse_value(text)
        if kind == KeyKind.ENUM and isinstance(value, int) and not isinstance(value, bool):
            ok = self.table.set_enum(schema, key, value)
        elif kind == KeyKind.STRING and not isinstance(value, str):
            # "123" should stay a string for string keys
            ok = self.table.set_string(schema, key, text)
        else:
            ok = self.table.set_value(schema, key, value)

        if not ok:
            print(f"Value {text!r} rejected for {schema}:{key}", file=sys.stderr)
            return 1
        return 0

    def reset(self, schema: str, key: Optional[str] = None) -> int:
        if key is None:
            if self.prefs.registry.get_handle(schema) is None:
                print(f"Unknown schema: {self.prefs.registry.resolve(schema)}", file=sys.stderr)
                return 1
            self.table.reset_group(schema)
            return 0

        if self._key_kind(schema, key) is None:
            return 1
        self.table.reset(schema, key)
        return 0

    def migrate(self, force: bool = False) -> int:
        result = self.prefs.migrate(force=force)
        if result is None:
            print("Preferences already migrated")
            return 0
        if result.succeeded:
            print(f"Migrated {result.migrated} preferences (script: {result.script_path})")
            return 0
        print(f"Migration failed at {result.failed_stage.value}: {result.error}", file=sys.stderr)
        return 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="gnc-prefs", description="Schema-addressed preference tool")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("schemas", help="List installed schemas")

    list_parser = subparsers.add_parser("list", help="Show every key of a schema")
    list_parser.add_argument("schema", help="Schema name, relative to the prefix or fully qualified")
    list_parser.add_argument(
        "--changed", action="store_true", help="Only keys the user has set"
    )

    get_parser = subparsers.add_parser("get", help="Print one value as JSON")
    get_parser.add_argument("schema")
    get_parser.add_argument("key")

    set_parser = subparsers.add_parser("set", help="Store one value")
    set_parser.add_argument("schema")
    set_parser.add_argument("key")
    set_parser.add_argument("value", help="JSON value; anything else is taken as a string")

    reset_parser = subparsers.add_parser("reset", help="Reset a key, or the whole schema, to defaults")
    reset_parser.add_argument("schema")
    reset_parser.add_argument("key", nargs="?")

    migrate_parser = subparsers.add_parser("migrate", help="Import legacy GConf preferences")
    migrate_parser.add_argument(
        "--force", action="store_true", help="Run even if migration was already done"
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    try:
        config = PrefsConfig.from_env()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    setup_logging(config)

    prefs = Preferences(config)
    try:
        cli = PrefsCLI(prefs)
        if args.command == "schemas":
            return cli.schemas()
        elif args.command == "list":
            return cli.list(args.schema, changed=args.changed)
        elif args.command == "get":
            return cli.get(args.schema, args.key)
        elif args.command == "set":
            return cli.set(args.schema, args.key, args.value)
        elif args.command == "reset":
            return cli.reset(args.schema, args.key)
        elif args.command == "migrate":
            return cli.migrate(force=args.force)
        return 2
    finally:
        prefs.close()


if __name__ == "__main__":
    sys.exit(main())
