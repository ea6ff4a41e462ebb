"""ESLint delegate: runs the project's linter as a black-box subprocess."""

from __future__ import annotations

import json
import shlex
import subprocess
from pathlib import Path
from typing import Any, Optional

from devmonitor.logging_config import get_logger

logger = get_logger(__name__)


class LintError(Exception):
    """The linter ran but its output could not be used."""


class LintUnavailableError(LintError):
    """The linter binary is missing or refused to start."""


class LintRunner:
    """Thin wrapper over ``eslint --format json``."""

    def __init__(self, command: str, cwd: Path, timeout: float = 60.0) -> None:
        self._command = shlex.split(command)
        self._cwd = Path(cwd)
        self._timeout = timeout

    def _run(self, *args: str) -> list[dict[str, Any]]:
        argv = [*self._command, "--format", "json", *args]
        try:
            proc = subprocess.run(
                argv,
                cwd=str(self._cwd),
                capture_output=True,
                text=True,
                timeout=self._timeout,
            )
        except FileNotFoundError as exc:
            raise LintUnavailableError(f"ESLint not available: {exc}") from exc
        except subprocess.TimeoutExpired as exc:
            raise LintError(f"ESLint timed out after {self._timeout}s") from exc

        # exit 2 is a configuration or crash error, not lint findings
        if proc.returncode == 2 or (proc.returncode != 0 and not proc.stdout.strip()):
            detail = (proc.stderr or proc.stdout).strip().splitlines()
            raise LintUnavailableError(f"ESLint not available: {detail[0] if detail else f'exit {proc.returncode}'}")
        try:
            results = json.loads(proc.stdout)
        except json.JSONDecodeError as exc:
            raise LintError(f"ESLint error: unreadable output ({exc})") from exc
        if not isinstance(results, list):
            raise LintError("ESLint error: unexpected output shape")
        return results

    def fix(self, path: Path) -> Optional[str]:
        """Return the auto-fixed content for ``path``, or None when ESLint changes nothing."""
        results = self._run("--fix-dry-run", str(path))
        for result in results:
            output = result.get("output")
            if output is not None:
                logger.debug("lint_fix_available", file=str(path))
                return output
        return None

    def fatal_messages(self, path: Path) -> list[str]:
        """Parse-level errors ESLint reports for ``path``."""
        messages: list[str] = []
        for result in self._run(str(path)):
            for message in result.get("messages", []):
                if message.get("fatal"):
                    messages.append(message.get("message", "fatal lint error"))
        return messages
