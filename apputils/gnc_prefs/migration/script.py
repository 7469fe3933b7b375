"""
Script engine hosting the generated migration script.

The pipeline only knows three hook names and how to hand the engine a
script file; everything else (where legacy data lives, how the script gets
at the preferences) is the engine's business.

Hooks:
    migration-prepare  create the temp dir, stage companion files and
                       return their paths (passed on to the transform)
    run-migration      call run_migration(prefs, read_legacy) in the loaded
                       script
    migration-cleanup  remove staged companion files, forget the script

The generated script only names rules; every legacy value reaches it
through read_legacy(), which converts the entry by its GConf type and
returns None for missing or malformed entries. The script itself is left
on disk for inspection.
"""

from __future__ import annotations

import logging
import runpy
import shutil
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Protocol, runtime_checkable

from .legacy import GconfLegacySource

logger = logging.getLogger(__name__)

PREPARE_HOOK = "migration-prepare"
RUN_HOOK = "run-migration"
CLEANUP_HOOK = "migration-cleanup"

SCRIPT_ENTRY_POINT = "run_migration"
SCRIPT_MODULE_NAME = "gnc_prefs_migration_script"


class ScriptError(Exception):
    """Raised when a hook is unknown or the script cannot be loaded."""
    pass


@runtime_checkable
class ScriptEngine(Protocol):
    """What the migration pipeline needs from a script host."""

    def call_hook(self, name: str) -> Any: ...

    def load_script(self, path: Path) -> None: ...


class PythonScriptEngine:
    """Runs generated Python migration scripts against a preference table.

    Attributes:
        prefs: Preference operations the script writes through
        tmp_dir: Migration temp directory
        legacy: Legacy preference tree staged by the prepare hook, or None
        staged_files: Extra companion files copied into tmp_dir on prepare
    """

    def __init__(
        self,
        prefs: Any,
        tmp_dir: str | Path,
        legacy: Optional[GconfLegacySource] = None,
        staged_files: Iterable[str | Path] = (),
    ) -> None:
        self.prefs = prefs
        self.tmp_dir = Path(tmp_dir)
        self.legacy = legacy
        self.staged_files = [Path(f) for f in staged_files]
        self._staged: List[Path] = []
        self._globals: Optional[Dict[str, Any]] = None
        self._hooks: Dict[str, Callable[[], Any]] = {
            PREPARE_HOOK: self._prepare,
            CLEANUP_HOOK: self._cleanup,
        }

    def register_hook(self, name: str, func: Callable[[], Any]) -> None:
        """Install or replace a hook."""
        self._hooks[name] = func

    def call_hook(self, name: str) -> Any:
        hook = self._hooks.get(name)
        if hook is None:
            raise ScriptError(f"No migration hook named '{name}'")
        logger.debug(f"Calling migration hook {name}")
        return hook()

    def read_legacy(self, gconf_path: str, key: str) -> Optional[Any]:
        """Typed legacy value handed to the script, or None."""
        if self.legacy is None:
            return None
        return self.legacy.get(gconf_path, key)

    def load_script(self, path: Path) -> None:
        """Load a generated script and register its entry point as run-migration.

        Raises:
            ScriptError: If the file cannot be run or has no entry point
        """
        try:
            script_globals = runpy.run_path(str(path), run_name=SCRIPT_MODULE_NAME)
        except OSError as e:
            raise ScriptError(f"Cannot read migration script {path}: {e}") from e
        except Exception as e:
            raise ScriptError(f"Migration script {path} failed to load: {e}") from e

        entry = script_globals.get(SCRIPT_ENTRY_POINT)
        if not callable(entry):
            raise ScriptError(f"Migration script {path} defines no {SCRIPT_ENTRY_POINT}()")

        self._globals = script_globals
        self._hooks[RUN_HOOK] = lambda: entry(self.prefs, self.read_legacy)
        logger.info(f"Loaded migration script {path}")

    def _prepare(self) -> List[Path]:
        self.tmp_dir.mkdir(parents=True, exist_ok=True)

        staged = []
        if self.legacy is not None:
            staged.extend(self.legacy.stage(self.tmp_dir))
        for src in self.staged_files:
            dest = self.tmp_dir / src.name
            shutil.copyfile(src, dest)
            staged.append(dest)

        self._staged = staged
        return staged

    def _cleanup(self) -> None:
        for path in self._staged:
            path.unlink(missing_ok=True)
        logger.debug(f"Removed {len(self._staged)} staged migration files")
        self._staged = []
        self._globals = None
        if self.legacy is not None:
            self.legacy.clear()
        self._hooks.pop(RUN_HOOK, None)
