"""
Unit tests for the migration script engine.

Tests cover:
- Prepare and cleanup hooks
- Loading a generated script
- Unknown hooks and broken scripts
- Typed legacy values handed to the script
"""

import tempfile
from pathlib import Path

import pytest

from apputils.gnc_prefs.migration.legacy import GconfLegacySource
from apputils.gnc_prefs.migration.script import (
    CLEANUP_HOOK,
    PREPARE_HOOK,
    RUN_HOOK,
    PythonScriptEngine,
    ScriptEngine,
    ScriptError,
)


class FakePrefs:
    """Records setter calls."""

    def __init__(self):
        self.values = {}

    def set_int(self, schema, key, value):
        self.values[(schema, key)] = value
        return True


class TestPythonScriptEngine:
    """Tests for PythonScriptEngine."""

    @pytest.fixture
    def workdir(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            yield Path(tmpdir)

    def test_is_script_engine(self, workdir):
        """The engine satisfies the ScriptEngine protocol."""
        assert isinstance(PythonScriptEngine(FakePrefs(), workdir), ScriptEngine)

    def test_prepare_creates_tmp_dir_and_stages(self, workdir):
        """Prepare creates the temp dir and copies companion files."""
        companion = workdir / "helpers.xsl"
        companion.write_text("<x/>")
        tmp_dir = workdir / ".gnc-migration-tmp"
        engine = PythonScriptEngine(FakePrefs(), tmp_dir, staged_files=[companion])

        staged = engine.call_hook(PREPARE_HOOK)

        assert tmp_dir.is_dir()
        assert staged == [tmp_dir / "helpers.xsl"]
        assert (tmp_dir / "helpers.xsl").read_text() == "<x/>"

    def test_cleanup_removes_staged_only(self, workdir):
        """Cleanup deletes staged files but keeps the generated script."""
        companion = workdir / "helpers.xsl"
        companion.write_text("<x/>")
        tmp_dir = workdir / "tmp"
        engine = PythonScriptEngine(FakePrefs(), tmp_dir, staged_files=[companion])
        engine.call_hook(PREPARE_HOOK)
        script = tmp_dir / "migrate-prefs-user.py"
        script.write_text("def run_migration(prefs, read_legacy):\n    return 0\n")

        engine.call_hook(CLEANUP_HOOK)

        assert not (tmp_dir / "helpers.xsl").exists()
        assert script.exists()

    def test_load_and_run(self, workdir):
        """A loaded script's run_migration is the run-migration hook."""
        script = workdir / "migrate.py"
        script.write_text(
            "def run_migration(prefs, read_legacy):\n"
            "    prefs.set_int('history', 'maxfiles', 9)\n"
            "    return 1\n"
        )
        prefs = FakePrefs()
        engine = PythonScriptEngine(prefs, workdir)

        engine.load_script(script)

        assert engine.call_hook(RUN_HOOK) == 1
        assert prefs.values == {("history", "maxfiles"): 9}

    def test_run_before_load(self, workdir):
        """run-migration is unknown until a script is loaded."""
        engine = PythonScriptEngine(FakePrefs(), workdir)

        with pytest.raises(ScriptError, match="run-migration"):
            engine.call_hook(RUN_HOOK)

    def test_cleanup_forgets_script(self, workdir):
        """After cleanup the script's hook is gone."""
        script = workdir / "migrate.py"
        script.write_text("def run_migration(prefs, read_legacy):\n    return 0\n")
        engine = PythonScriptEngine(FakePrefs(), workdir)
        engine.load_script(script)

        engine.call_hook(CLEANUP_HOOK)

        with pytest.raises(ScriptError):
            engine.call_hook(RUN_HOOK)

    def test_syntax_error(self, workdir):
        """A script that does not compile raises ScriptError."""
        script = workdir / "migrate.py"
        script.write_text("def run_migration(prefs)\n")

        with pytest.raises(ScriptError, match="failed to load"):
            PythonScriptEngine(FakePrefs(), workdir).load_script(script)

    def test_missing_entry_point(self, workdir):
        """A script without run_migration raises ScriptError."""
        script = workdir / "migrate.py"
        script.write_text("MIGRATIONS = []\n")

        with pytest.raises(ScriptError, match="defines no run_migration"):
            PythonScriptEngine(FakePrefs(), workdir).load_script(script)

    def test_register_hook(self, workdir):
        """Custom hooks can be installed."""
        engine = PythonScriptEngine(FakePrefs(), workdir)
        engine.register_hook("custom", lambda: "ran")

        assert engine.call_hook("custom") == "ran"

    def test_script_reads_legacy_values(self, workdir):
        """read_legacy hands the script typed values from the GConf tree."""
        history = workdir / "gconf" / "apps" / "gnucash" / "history"
        history.mkdir(parents=True)
        (history / "%gconf.xml").write_text(
            '<gconf><entry name="maxfiles" type="int" value="7"/>'
            '<entry name="broken" type="int" value="seven"/></gconf>'
        )
        script = workdir / "migrate.py"
        script.write_text(
            "def run_migration(prefs, read_legacy):\n"
            "    assert read_legacy('/apps/gnucash/history', 'broken') is None\n"
            "    prefs.set_int('history', 'maxfiles', read_legacy('/apps/gnucash/history', 'maxfiles'))\n"
            "    return 1\n"
        )
        prefs = FakePrefs()
        engine = PythonScriptEngine(prefs, workdir / "tmp", legacy=GconfLegacySource(workdir / "gconf"))

        engine.load_script(script)
        engine.call_hook(RUN_HOOK)

        assert prefs.values == {("history", "maxfiles"): 7}

    def test_read_legacy_without_tree(self, workdir):
        """Without a legacy tree every value reads as None."""
        engine = PythonScriptEngine(FakePrefs(), workdir)

        assert engine.read_legacy("/apps/gnucash/history", "maxfiles") is None

    def test_missing_script(self, workdir):
        """A script file that does not exist raises ScriptError."""
        with pytest.raises(ScriptError, match="Cannot read"):
            PythonScriptEngine(FakePrefs(), workdir).load_script(workdir / "nope.py")

    def test_no_bytecode_written(self, workdir):
        """Loading a script leaves no bytecode cache beside it."""
        script = workdir / "migrate.py"
        script.write_text("def run_migration(prefs, read_legacy):\n    return 0\n")

        PythonScriptEngine(FakePrefs(), workdir).load_script(script)

        assert not (workdir / "__pycache__").exists()
