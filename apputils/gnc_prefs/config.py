"""
Configuration management for gnc-prefs.

All configuration is done via environment variables with defaults that work
for a single local user. This module provides typed configuration classes
with validation.

Invariants:
    - All settings have sensible defaults for a desktop installation
    - The schema prefix is read once at start-up and never changes afterwards
    - The migration temp directory always lives under the user's home

How to change safely:
    - Add new settings with defaults that maintain backward compatibility
    - Keep environment variable names stable; they are part of the CLI surface
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

logger = logging.getLogger(__name__)

PACKAGE_DATA_DIR = Path(__file__).parent / "data"
DEFAULT_SCHEMA_DIR = PACKAGE_DATA_DIR / "schemas"
DEFAULT_PREFIX = "org.gnucash"


def home_dir() -> Path:
    """Return the user's home directory, honouring $HOME first."""
    home = os.getenv("HOME")
    if home:
        return Path(home)
    return Path.home()


def default_data_dir() -> Path:
    return home_dir() / ".local" / "share" / "gnucash"


def default_legacy_dir() -> Path:
    return home_dir() / ".gconf"


class StoreBackend(Enum):
    """Supported settings store backends."""

    MEMORY = "memory"
    SQLITE = "sqlite"


@dataclass(frozen=True)
class SchemaConfig:
    """Schema lookup configuration.

    Attributes:
        prefix: Prefix applied to short schema names (e.g. "org.gnucash")
        schema_dir: Directory holding installed schema definition files
    """

    prefix: str = DEFAULT_PREFIX
    schema_dir: str = str(DEFAULT_SCHEMA_DIR)

    @classmethod
    def from_env(cls) -> SchemaConfig:
        """Load configuration from environment variables."""
        return cls(
            prefix=os.getenv("GNC_PREFS_PREFIX", DEFAULT_PREFIX),
            schema_dir=os.getenv("GNC_PREFS_SCHEMA_DIR", str(DEFAULT_SCHEMA_DIR)),
        )


@dataclass(frozen=True)
class StorageConfig:
    """Settings store configuration.

    Attributes:
        backend: Which store implementation to use
        data_dir: Directory for the SQLite preferences database
        wal_mode: SQLite WAL mode enabled
        busy_timeout_ms: SQLite busy timeout in milliseconds
        read_only: Reject every write (useful for inspection tools)
    """

    backend: StoreBackend = StoreBackend.SQLITE
    data_dir: str = field(default_factory=lambda: str(default_data_dir()))
    wal_mode: bool = True
    busy_timeout_ms: int = 5000
    read_only: bool = False

    @classmethod
    def from_env(cls) -> StorageConfig:
        """Load configuration from environment variables.

        Raises:
            ValueError: If GNC_PREFS_BACKEND names an unknown backend.
        """
        backend_str = os.getenv("GNC_PREFS_BACKEND", "sqlite").lower()
        try:
            backend = StoreBackend(backend_str)
        except ValueError:
            raise ValueError(
                f"Invalid GNC_PREFS_BACKEND '{backend_str}'. Must be one of: memory, sqlite"
            )

        return cls(
            backend=backend,
            data_dir=os.getenv("GNC_PREFS_DATA_DIR", str(default_data_dir())),
            wal_mode=os.getenv("GNC_PREFS_SQLITE_WAL_MODE", "true").lower() == "true",
            busy_timeout_ms=int(os.getenv("GNC_PREFS_SQLITE_BUSY_TIMEOUT_MS", "5000")),
            read_only=os.getenv("GNC_PREFS_READ_ONLY", "false").lower() == "true",
        )


@dataclass(frozen=True)
class MigrationConfig:
    """Legacy preference migration configuration.

    Attributes:
        data_dir: Installed data directory holding the transform and rules
        transform_file: XSLT turning the rules document into a script
        rules_file: Declarative mapping of legacy keys to schema keys
        tmp_dir_name: Name of the private staging directory under $HOME
        script_name: Base name of the generated script
        script_ext: Extension of the generated script
        legacy_dir: Root of the legacy GConf tree
    """

    data_dir: str = str(PACKAGE_DATA_DIR)
    transform_file: str = "make-prefs-migration-script.xsl"
    rules_file: str = "migratable-prefs.xml"
    tmp_dir_name: str = ".gnc-migration-tmp"
    script_name: str = "migrate-prefs-user"
    script_ext: str = "py"
    legacy_dir: str = field(default_factory=lambda: str(default_legacy_dir()))

    @classmethod
    def from_env(cls) -> MigrationConfig:
        """Load configuration from environment variables."""
        return cls(
            data_dir=os.getenv("GNC_PREFS_MIGRATION_DATA_DIR", str(PACKAGE_DATA_DIR)),
            transform_file=os.getenv(
                "GNC_PREFS_MIGRATION_TRANSFORM", "make-prefs-migration-script.xsl"
            ),
            rules_file=os.getenv("GNC_PREFS_MIGRATION_RULES", "migratable-prefs.xml"),
            legacy_dir=os.getenv("GNC_PREFS_LEGACY_DIR", str(default_legacy_dir())),
        )


@dataclass(frozen=True)
class ObservabilityConfig:
    """Logging configuration.

    Attributes:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Log format (json, text)
    """

    log_level: str = "WARNING"
    log_format: str = "text"

    @classmethod
    def from_env(cls) -> ObservabilityConfig:
        """Load configuration from environment variables."""
        return cls(
            log_level=os.getenv("LOG_LEVEL", "WARNING"),
            log_format=os.getenv("LOG_FORMAT", "text"),
        )


@dataclass
class PrefsConfig:
    """Complete preference system configuration.

    Attributes:
        schema: Schema lookup configuration
        storage: Settings store configuration
        migration: Migration configuration
        observability: Logging configuration
    """

    schema: SchemaConfig = field(default_factory=SchemaConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    migration: MigrationConfig = field(default_factory=MigrationConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(cls) -> PrefsConfig:
        """Load complete configuration from environment variables.

        Raises:
            ValueError: If configuration is invalid.
        """
        config = cls(
            schema=SchemaConfig.from_env(),
            storage=StorageConfig.from_env(),
            migration=MigrationConfig.from_env(),
            observability=ObservabilityConfig.from_env(),
        )
        config.validate()
        return config

    def validate(self) -> None:
        """Validate configuration consistency.

        Raises:
            ValueError: If configuration is invalid.
        """
        if not self.schema.prefix:
            raise ValueError("GNC_PREFS_PREFIX must not be empty")
        if self.observability.log_format not in ("json", "text"):
            raise ValueError(
                f"Invalid LOG_FORMAT '{self.observability.log_format}'. Must be json or text"
            )

        if not os.path.isdir(self.schema.schema_dir):
            logger.warning(f"Schema directory does not exist: {self.schema.schema_dir}")

        if self.storage.backend == StoreBackend.SQLITE and not os.path.exists(
            self.storage.data_dir
        ):
            logger.warning(
                f"Data directory does not exist: {self.storage.data_dir}. "
                "It will be created on first write."
            )

    def log_config(self) -> None:
        """Log configuration."""
        logger.info(
            "Preference configuration loaded",
            extra={
                "prefix": self.schema.prefix,
                "schema_dir": self.schema.schema_dir,
                "backend": self.storage.backend.value,
                "data_dir": self.storage.data_dir
                if self.storage.backend == StoreBackend.SQLITE
                else None,
                "read_only": self.storage.read_only,
                "migration_data_dir": self.migration.data_dir,
                "log_level": self.observability.log_level,
            },
        )
