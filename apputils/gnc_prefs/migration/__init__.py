"""
Migration of legacy (GConf) preferences.

A declarative rules file is turned into a Python script by an XSLT
transform, and the script is run against the preference table.
"""

from .legacy import GconfLegacySource, staged_name
from .pipeline import (
    MigrationError,
    MigrationPaths,
    MigrationPipeline,
    MigrationResult,
    MigrationState,
    build_pipeline,
    migrate_if_needed,
)
from .resolver import TempDirFallbackResolver, make_parser
from .script import (
    CLEANUP_HOOK,
    PREPARE_HOOK,
    RUN_HOOK,
    PythonScriptEngine,
    ScriptEngine,
    ScriptError,
)

__all__ = [
    "GconfLegacySource",
    "staged_name",
    "MigrationError",
    "MigrationPaths",
    "MigrationPipeline",
    "MigrationResult",
    "MigrationState",
    "build_pipeline",
    "migrate_if_needed",
    "TempDirFallbackResolver",
    "make_parser",
    "CLEANUP_HOOK",
    "PREPARE_HOOK",
    "RUN_HOOK",
    "PythonScriptEngine",
    "ScriptEngine",
    "ScriptError",
]
