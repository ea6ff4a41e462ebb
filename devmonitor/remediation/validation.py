"""Post-fix validation: cheap checks that a rewrite left the file sane."""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from devmonitor.logging_config import get_logger
from devmonitor.remediation.lint import LintError, LintRunner

logger = get_logger(__name__)

TYPESCRIPT_SUFFIXES = {".ts", ".tsx", ".mts", ".cts"}
PAIRS = {")": "(", "]": "[", "}": "{"}

MALFORMED_TOKENS: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r":\s*:"), "Double colon"),
    (re.compile(r"\?\.\s*\?\."), "Repeated optional chaining"),
    (re.compile(r"\bas\s+as\b"), "Repeated type assertion"),
    (re.compile(r":\s*any\s*:\s*any\b"), "Repeated any annotation"),
    (re.compile(r"=>\s*=>"), "Repeated arrow"),
)


@dataclass
class ValidationResult:
    is_valid: bool
    error: Optional[str] = None


def _strip_literals(source: str) -> str:
    """Blank out comments and string/template literals so delimiters inside them are ignored."""
    out: list[str] = []
    i, n = 0, len(source)
    while i < n:
        char = source[i]
        nxt = source[i + 1] if i + 1 < n else ""
        if char == "/" and nxt == "/":
            end = source.find("\n", i)
            i = n if end == -1 else end
            continue
        if char == "/" and nxt == "*":
            end = source.find("*/", i + 2)
            i = n if end == -1 else end + 2
            continue
        if char in "'\"`":
            quote = char
            i += 1
            while i < n and source[i] != quote:
                if source[i] == "\\":
                    i += 1
                elif source[i] == "\n" and quote != "`":
                    break
                i += 1
            i += 1
            out.append(" ")
            continue
        out.append(char)
        i += 1
    return "".join(out)


def check_delimiters(source: str) -> Optional[str]:
    stack: list[tuple[str, int]] = []
    line = 1
    for char in _strip_literals(source):
        if char == "\n":
            line += 1
        elif char in "([{":
            stack.append((char, line))
        elif char in PAIRS:
            if not stack or stack[-1][0] != PAIRS[char]:
                return f"Syntax error: unexpected '{char}' on line {line}"
            stack.pop()
    if stack:
        char, opened = stack[-1]
        return f"Syntax error: unclosed '{char}' from line {opened}"
    return None


def check_typescript_tokens(source: str) -> Optional[str]:
    cleaned = _strip_literals(source)
    for pattern, label in MALFORMED_TOKENS:
        if pattern.search(cleaned):
            return f"{label} found in TypeScript source"
    return None


class FixValidator:
    """Runs the checks in order; the first failure wins."""

    def __init__(self, lint: Optional[LintRunner], max_file_size: int) -> None:
        self._lint = lint
        self._max_file_size = max_file_size

    def validate(self, path: Path, baseline: Optional[str] = None) -> ValidationResult:
        """Validate ``path``. Structural checks that ``baseline`` (the pre-fix text) already fails are skipped."""
        try:
            source = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            return ValidationResult(False, f"Cannot read fixed file: {exc}")

        checks = [check_delimiters]
        if path.suffix in TYPESCRIPT_SUFFIXES:
            checks.append(check_typescript_tokens)

        error = None
        for check in checks:
            if baseline is not None and check(baseline) is not None:
                continue
            error = check(source)
            if error is not None:
                break
        if error is None:
            error = self._lint_fatal(path)
        if error is None:
            size = path.stat().st_size
            if size > self._max_file_size:
                error = f"File size {size} exceeds limit {self._max_file_size} after fix"
        return ValidationResult(error is None, error)

    def _lint_fatal(self, path: Path) -> Optional[str]:
        if self._lint is None:
            return None
        try:
            fatal = self._lint.fatal_messages(path)
        except LintError as exc:
            logger.warning("lint_validation_skipped", file=str(path), reason=str(exc))
            return None
        if fatal:
            return f"ESLint reported: {fatal[0]}"
        return None
