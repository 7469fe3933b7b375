"""
One-shot migration of legacy preferences.

A run walks a fixed sequence of stages:

    START
      | migration-prepare hook, parse transform + rules
    RULES_LOADED
      | apply transform, write <tmp>/migrate-prefs-user.py
    SCRIPT_GENERATED
      | load script, run-migration hook
    SCRIPT_EXECUTED
      | (always) detach resolver, migration-cleanup hook
    CLEANED_UP
      |
    DONE  or  FAILED

Teardown runs on every path once the run has started, whatever stage
failed. The generated script is kept on disk.

Invariants:
    - The resolver is scoped to one run's parser and removed in teardown
    - A failure is reported in MigrationResult, never raised to the caller
    - Re-running overwrites the previous script; migrated values are
      written through the normal setters, so a second run is harmless

How to change safely:
    - New stages go between existing ones; teardown stays last
    - Hook names are part of the contract with the script engine
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Iterable, List, Optional

from lxml import etree

from ..config import MigrationConfig, home_dir
from .legacy import GconfLegacySource
from .resolver import TempDirFallbackResolver, make_parser
from .script import CLEANUP_HOOK, PREPARE_HOOK, RUN_HOOK, PythonScriptEngine, ScriptEngine

logger = logging.getLogger(__name__)

MIGRATE_DONE_SCHEMA = "general"
MIGRATE_DONE_KEY = "migrate-prefs-done"

# Transform parameter naming the files the prepare hook staged
STAGED_FILES_PARAM = "staged-files"


class MigrationState(Enum):
    START = "start"
    RULES_LOADED = "rules_loaded"
    SCRIPT_GENERATED = "script_generated"
    SCRIPT_EXECUTED = "script_executed"
    CLEANED_UP = "cleaned_up"
    DONE = "done"
    FAILED = "failed"


class MigrationError(Exception):
    """A migration stage failed.

    Attributes:
        stage: The state the run was trying to reach
    """

    def __init__(self, stage: MigrationState, message: str):
        super().__init__(message)
        self.stage = stage


@dataclass
class MigrationResult:
    """Outcome of one migration run.

    Attributes:
        state: DONE or FAILED
        script_path: Generated script, if one was written
        migrated: Number of preferences the script set
        error: Failure message, if any
        failed_stage: State the run was trying to reach when it failed
    """
    state: MigrationState
    script_path: Optional[Path] = None
    migrated: int = 0
    error: Optional[str] = None
    failed_stage: Optional[MigrationState] = None

    @property
    def succeeded(self) -> bool:
        return self.state == MigrationState.DONE


@dataclass(frozen=True)
class MigrationPaths:
    """Files one migration run reads and writes."""
    transform: Path
    rules: Path
    tmp_dir: Path
    output: Path

    @classmethod
    def from_config(cls, config: MigrationConfig, home: Optional[Path] = None) -> MigrationPaths:
        data_dir = Path(config.data_dir)
        tmp_dir = (home or home_dir()) / config.tmp_dir_name
        return cls(
            transform=data_dir / config.transform_file,
            rules=data_dir / config.rules_file,
            tmp_dir=tmp_dir,
            output=tmp_dir / f"{config.script_name}.{config.script_ext}",
        )


class MigrationPipeline:
    """Generates and runs the preference migration script.

    Example:
        >>> pipeline = MigrationPipeline(engine, MigrationPaths.from_config(config))
        >>> result = pipeline.run()
        >>> result.succeeded, result.migrated
        (True, 12)
    """

    def __init__(self, engine: ScriptEngine, paths: MigrationPaths) -> None:
        self.engine = engine
        self.paths = paths
        self.state = MigrationState.START
        self._lock = threading.Lock()

    def run(self) -> MigrationResult:
        """Run the migration once. Never raises for stage failures."""
        if not self._lock.acquire(blocking=False):
            return MigrationResult(
                state=MigrationState.FAILED,
                error="Migration already running",
                failed_stage=MigrationState.START,
            )
        try:
            return self._run()
        finally:
            self._lock.release()

    def _run(self) -> MigrationResult:
        self.state = MigrationState.START
        failure: Optional[MigrationError] = None
        script_path: Optional[Path] = None
        migrated = 0

        resolver = TempDirFallbackResolver(self.paths.tmp_dir)
        parser = make_parser(resolver)
        try:
            staged = self._prepare()
            transform, rules = self._load(parser)
            self.state = MigrationState.RULES_LOADED

            script_path = self._generate(transform, rules, staged)
            self.state = MigrationState.SCRIPT_GENERATED

            migrated = self._execute(script_path)
            self.state = MigrationState.SCRIPT_EXECUTED
        except MigrationError as e:
            failure = e
        finally:
            cleanup_error = self._teardown(parser, resolver)
            if failure is None and cleanup_error is not None:
                failure = cleanup_error

        if failure is not None:
            logger.error(f"Preference migration failed reaching {failure.stage.value}: {failure}")
            self.state = MigrationState.FAILED
            return MigrationResult(
                state=MigrationState.FAILED,
                script_path=script_path,
                migrated=migrated,
                error=str(failure),
                failed_stage=failure.stage,
            )

        self.state = MigrationState.DONE
        logger.info(f"Preference migration done: {migrated} preferences migrated")
        return MigrationResult(state=MigrationState.DONE, script_path=script_path, migrated=migrated)

    def _prepare(self) -> List[str]:
        """Run the prepare hook; return the names of the staged files."""
        try:
            staged = self.engine.call_hook(PREPARE_HOOK)
        except Exception as e:
            raise MigrationError(MigrationState.RULES_LOADED, f"{PREPARE_HOOK} failed: {e}") from e
        return [Path(p).name for p in staged or ()]

    def _load(self, parser: etree.XMLParser):
        stage = MigrationState.RULES_LOADED
        try:
            transform_doc = etree.parse(str(self.paths.transform), parser)
        except (OSError, etree.XMLSyntaxError) as e:
            raise MigrationError(stage, f"Cannot read migration transform {self.paths.transform}: {e}") from e

        try:
            transform = etree.XSLT(transform_doc)
        except etree.XSLTParseError as e:
            raise MigrationError(stage, f"Invalid migration transform {self.paths.transform}: {e}") from e

        try:
            rules = etree.parse(str(self.paths.rules), parser)
        except (OSError, etree.XMLSyntaxError) as e:
            raise MigrationError(stage, f"Cannot read migration rules {self.paths.rules}: {e}") from e

        logger.debug(f"Loaded migration transform and rules from {self.paths.rules.parent}")
        return transform, rules

    def _generate(self, transform: etree.XSLT, rules: etree._ElementTree, staged: List[str]) -> Path:
        stage = MigrationState.SCRIPT_GENERATED
        params = {STAGED_FILES_PARAM: etree.XSLT.strparam(" ".join(staged))}
        try:
            result = transform(rules, **params)
        except etree.XSLTApplyError as e:
            raise MigrationError(stage, f"Migration transform failed: {e}") from e

        for entry in transform.error_log:
            logger.debug(f"Migration transform: {entry.message}")

        output = bytes(result)
        if not output.strip():
            raise MigrationError(stage, "Migration transform produced no script")

        try:
            self.paths.output.write_bytes(output)
        except OSError as e:
            raise MigrationError(stage, f"Cannot write migration script {self.paths.output}: {e}") from e

        logger.info(f"Wrote migration script {self.paths.output}")
        return self.paths.output

    def _execute(self, script_path: Path) -> int:
        stage = MigrationState.SCRIPT_EXECUTED
        try:
            self.engine.load_script(script_path)
            migrated = self.engine.call_hook(RUN_HOOK)
        except Exception as e:
            # Generated code: any failure is reported, not propagated
            logger.exception(f"Migration script {script_path} failed")
            raise MigrationError(stage, f"Migration script failed: {e}") from e
        return int(migrated or 0)

    def _teardown(self, parser: etree.XMLParser, resolver: TempDirFallbackResolver) -> Optional[MigrationError]:
        parser.resolvers.remove(resolver)
        try:
            self.engine.call_hook(CLEANUP_HOOK)
        except Exception as e:
            logger.warning(f"{CLEANUP_HOOK} failed: {e}")
            return MigrationError(MigrationState.CLEANED_UP, f"{CLEANUP_HOOK} failed: {e}")
        self.state = MigrationState.CLEANED_UP
        return None


def build_pipeline(
    config: MigrationConfig,
    prefs: Any,
    home: Optional[Path] = None,
    staged_files: Iterable[str | Path] = (),
) -> MigrationPipeline:
    """Pipeline running the generated script against prefs with GConf staging."""
    paths = MigrationPaths.from_config(config, home)
    engine = PythonScriptEngine(
        prefs,
        paths.tmp_dir,
        legacy=GconfLegacySource(config.legacy_dir),
        staged_files=staged_files,
    )
    return MigrationPipeline(engine, paths)


def migrate_if_needed(prefs: Any, pipeline: MigrationPipeline) -> Optional[MigrationResult]:
    """Run the migration unless the done flag is already set.

    The flag is set only after a successful run, so a failed migration is
    retried on the next start.

    Returns:
        The run's result, or None if migration was already done
    """
    if prefs.get_bool(MIGRATE_DONE_SCHEMA, MIGRATE_DONE_KEY):
        logger.debug("Preferences already migrated")
        return None

    result = pipeline.run()
    if result.succeeded:
        prefs.set_bool(MIGRATE_DONE_SCHEMA, MIGRATE_DONE_KEY, True)
    return result
