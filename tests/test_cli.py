"""Tests for the command-line interface."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from devmonitor.cli import app
from devmonitor.remediation import BackupStore

runner = CliRunner()

LOG = """\
  ▲ Next.js 14.0.4
Button.tsx(10,15): error TS2322: Type 'string' is not assignable to type 'number'.
⨯ TypeError: boom
✓ Compiled in 320ms
"""


@pytest.fixture
def store(project: Path) -> BackupStore:
    return BackupStore(project / ".devmonitor-backups")


class TestClassify:
    """Tests for the classify command."""

    def test_classify_log(self, tmp_path: Path) -> None:
        logfile = tmp_path / "dev.log"
        logfile.write_text(LOG, encoding="utf-8")
        result = runner.invoke(app, ["classify", str(logfile)])
        assert result.exit_code == 0
        assert "Total: 2 diagnostics" in result.output

    def test_verbose_sets_debug_logging(self, tmp_path: Path) -> None:
        logfile = tmp_path / "dev.log"
        logfile.write_text(LOG, encoding="utf-8")
        with patch("devmonitor.cli.setup_logging") as setup:
            result = runner.invoke(app, ["--verbose", "classify", str(logfile)])
        assert result.exit_code == 0
        setup.assert_called_once_with("DEBUG")

    def test_fixable_only(self, tmp_path: Path) -> None:
        logfile = tmp_path / "dev.log"
        logfile.write_text(LOG, encoding="utf-8")
        result = runner.invoke(app, ["classify", str(logfile), "--fixable"])
        assert result.exit_code == 0
        assert "Total: 1 diagnostics" in result.output

    def test_clean_log(self, tmp_path: Path) -> None:
        logfile = tmp_path / "dev.log"
        logfile.write_text("✓ Compiled in 12ms\n", encoding="utf-8")
        result = runner.invoke(app, ["classify", str(logfile)])
        assert "No diagnostics found" in result.output


class TestBackups:
    """Tests for the backups sub-commands."""

    def test_list_empty(self, project: Path) -> None:
        result = runner.invoke(app, ["backups", "list", "--project", str(project)])
        assert result.exit_code == 0
        assert "No backups found" in result.output

    def test_list_and_restore(self, project: Path, store: BackupStore) -> None:
        source = project / "page.tsx"
        source.write_text("original\n", encoding="utf-8")
        record = store.create(source, fix_type="remove_debug_statement")
        source.write_text("changed\n", encoding="utf-8")

        listed = runner.invoke(app, ["backups", "list", "--project", str(project)])
        assert "Total: 1 backups" in listed.output

        verified = runner.invoke(app, ["backups", "verify", record.id, "--project", str(project)])
        assert verified.exit_code == 0

        restored = runner.invoke(app, ["backups", "restore", record.id, "--project", str(project)])
        assert restored.exit_code == 0
        assert source.read_text(encoding="utf-8") == "original\n"

    def test_restore_unknown(self, project: Path) -> None:
        result = runner.invoke(app, ["backups", "restore", "nope", "--project", str(project)])
        assert result.exit_code == 1
        assert "Backup nope not found" in result.output

    def test_verify_unknown(self, project: Path) -> None:
        result = runner.invoke(app, ["backups", "verify", "nope", "--project", str(project)])
        assert result.exit_code == 1

    def test_prune(self, project: Path, store: BackupStore) -> None:
        source = project / "page.tsx"
        source.write_text("x", encoding="utf-8")
        store.create(source)
        result = runner.invoke(app, ["backups", "prune", "--project", str(project), "--days", "7"])
        assert result.exit_code == 0
        assert "Removed 0 backup(s) older than 7 days" in result.output


class TestRun:
    """Tests for argument handling of the run command."""

    def test_missing_project(self, tmp_path: Path) -> None:
        result = runner.invoke(app, ["run", str(tmp_path / "nope")])
        assert result.exit_code == 1
        assert "Project path does not exist" in result.output
