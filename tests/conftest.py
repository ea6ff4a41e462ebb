"""Shared test fixtures and configuration."""

from __future__ import annotations

import os
from pathlib import Path
from unittest.mock import MagicMock

import pytest
import structlog

os.environ.setdefault("DEVMONITOR_ENV", "test")
os.environ.setdefault("DEVMONITOR_LOG_LEVEL", "WARNING")

from devmonitor.config import Settings
from devmonitor.models import Diagnostic, DiagnosticCategory, FixCapability, Location, Severity
from devmonitor.remediation import RemediationEngine
from devmonitor.remediation.lint import LintRunner


@pytest.fixture(autouse=True)
def _reset_structlog():
    """Undo logging configuration done by a test (e.g. the CLI's setup_logging)."""
    yield
    structlog.reset_defaults()


@pytest.fixture
def project(tmp_path: Path) -> Path:
    """An empty project directory."""
    root = tmp_path / "app"
    root.mkdir()
    return root


@pytest.fixture
def settings(project: Path) -> Settings:
    """Return test settings rooted at a temporary project."""
    return Settings(
        devmonitor_env="test",
        devmonitor_log_level="WARNING",
        project_path=project,
        startup_timeout=10.0,
        stop_grace_period=5.0,
    )


@pytest.fixture
def lint() -> MagicMock:
    """A linter stand-in that never reports fatal problems."""
    runner = MagicMock(spec=LintRunner)
    runner.fix.return_value = None
    runner.fatal_messages.return_value = []
    return runner


@pytest.fixture
def engine(settings: Settings, lint: MagicMock) -> RemediationEngine:
    return RemediationEngine(settings, lint=lint)


def _make_diagnostic(
    message: str,
    category: DiagnosticCategory = DiagnosticCategory.TYPESCRIPT,
    file: str = "unknown",
    line: int = 1,
    column: int = 1,
    severity: Severity = Severity.ERROR,
    capability: FixCapability = FixCapability.AUTO_FIXABLE,
    code: str | None = None,
    rule: str | None = None,
) -> Diagnostic:
    return Diagnostic(
        category=category,
        severity=severity,
        message=message,
        location=Location(file=file, line=line, column=column),
        capability=capability,
        code=code,
        rule=rule,
    )


@pytest.fixture
def make_diagnostic():
    """Factory for plain diagnostics."""
    return _make_diagnostic
