"""Log Classifier: turns raw dev-server output into typed diagnostics.

Each line is cleaned of terminal color codes and matched against an ordered
table of patterns; the first pattern whose extractor succeeds wins. Lines that
match nothing but still look like errors become ``unknown`` diagnostics, and
everything else (progress output, banners) yields nothing.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, replace
from typing import Any, Callable, Optional

from devmonitor.logging_config import get_logger
from devmonitor.models import (
    Diagnostic,
    DiagnosticCategory,
    FixCapability,
    Location,
    Severity,
)

logger = get_logger(__name__)

ANSI_ESCAPE = re.compile(r"\x1b\[[0-9;]*m")
WEBPACK_PREFIX = re.compile(r"^(?:webpack-internal:///|webpack:///)(?:\(\w+\)/)?")
FILE_HEADER = re.compile(r"^(\.{0,2}/[^\s:()]+\.[cm]?[jt]sx?):(\d+):(\d+)$")
STACK_FRAME = re.compile(r"^\s*at\s")

ERROR_INDICATORS = (
    "error",
    "failed",
    "failure",
    "exception",
    "cannot",
    "can't",
    "undefined",
    "null is not",
    "is not defined",
    "went wrong",
    "denied",
    "timeout",
    "timed out",
    "invalid",
    "fatal",
    "unhandled",
)

Extractor = Callable[[re.Match[str]], dict[str, Any]]


@dataclass(frozen=True)
class LinePattern:
    """A matcher paired with the extractor that reads its groups."""

    name: str
    category: DiagnosticCategory
    regex: re.Pattern[str]
    severity: Severity
    capability: FixCapability
    extract: Extractor


def _clean_file(path: str) -> str:
    path = WEBPACK_PREFIX.sub("", path.strip())
    if not path:
        raise ValueError("empty file path")
    return path


def _location(file: str, line: str | int = 1, column: str | int = 1) -> Location:
    return Location(file=_clean_file(file), line=int(line), column=int(column))


def _typescript(m: re.Match[str]) -> dict[str, Any]:
    return {
        "location": _location(m.group(1), m.group(2), m.group(3)),
        "code": f"TS{m.group(4)}",
        "message": m.group(5),
    }


def _eslint(m: re.Match[str]) -> dict[str, Any]:
    return {
        "location": _location(m.group(1), m.group(2), m.group(3)),
        "severity": Severity.ERROR if m.group(4) == "error" else Severity.WARNING,
        "message": m.group(5),
        "rule": m.group(6),
    }


def _error_with_frame(m: re.Match[str]) -> dict[str, Any]:
    name, message = m.group(1), m.group(2)
    if name and name != "Error":
        message = f"{name}: {message}"
    return {
        "message": message.strip(),
        "location": _location(m.group(3), m.group(4), m.group(5)),
    }


def _module_not_found(m: re.Match[str]) -> dict[str, Any]:
    return {
        "message": f"Module not found: Can't resolve '{m.group(1)}'",
        "location": _location(m.group(2)),
    }


def _syntax(m: re.Match[str]) -> dict[str, Any]:
    return {
        "message": m.group(1),
        "location": _location(m.group(2), m.group(3)),
    }


def _failed_to_compile(m: re.Match[str]) -> dict[str, Any]:
    return {"message": m.group(1).strip() or "Failed to compile"}


def _type_error(m: re.Match[str]) -> dict[str, Any]:
    return {"message": m.group(1).strip()}


def _bare_runtime(m: re.Match[str]) -> dict[str, Any]:
    return {"message": f"{m.group(1)}: {m.group(2).strip()}"}


PATTERNS: tuple[LinePattern, ...] = (
    LinePattern(
        "typescript_error",
        DiagnosticCategory.TYPESCRIPT,
        re.compile(r"(.+\.tsx?)\((\d+),(\d+)\): error TS(\d+): (.+)"),
        Severity.ERROR,
        FixCapability.AUTO_FIXABLE,
        _typescript,
    ),
    LinePattern(
        "typescript_warning",
        DiagnosticCategory.TYPESCRIPT,
        re.compile(r"(.+\.tsx?)\((\d+),(\d+)\): warning TS(\d+): (.+)"),
        Severity.WARNING,
        FixCapability.SUGGESTION_AVAILABLE,
        _typescript,
    ),
    LinePattern(
        "eslint",
        DiagnosticCategory.ESLINT,
        re.compile(r"(.+):(\d+):(\d+): (error|warning) (.+) \((.+)\)"),
        Severity.ERROR,
        FixCapability.AUTO_FIXABLE,
        _eslint,
    ),
    LinePattern(
        "build_error",
        DiagnosticCategory.BUILD,
        re.compile(r"(\w*Error): (.+)\n\s+at (?:.+? \()?([^\s()]+):(\d+):(\d+)\)?"),
        Severity.ERROR,
        FixCapability.MANUAL_REQUIRED,
        _error_with_frame,
    ),
    LinePattern(
        "runtime_error",
        DiagnosticCategory.RUNTIME,
        re.compile(r"(\w*Error): (.+)\s+at .+ \(([^()]+):(\d+):(\d+)\)"),
        Severity.ERROR,
        FixCapability.MANUAL_REQUIRED,
        _error_with_frame,
    ),
    LinePattern(
        "module_not_found",
        DiagnosticCategory.IMPORT,
        re.compile(r"Module not found: Can't resolve '(.+)' in '(.+)'"),
        Severity.ERROR,
        FixCapability.AUTO_FIXABLE,
        _module_not_found,
    ),
    LinePattern(
        "syntax_error",
        DiagnosticCategory.SYNTAX,
        re.compile(r"SyntaxError: (.+) in (.+):(\d+)"),
        Severity.ERROR,
        FixCapability.MANUAL_REQUIRED,
        _syntax,
    ),
    LinePattern(
        "failed_to_compile",
        DiagnosticCategory.BUILD,
        re.compile(r"Failed to compile\.?\s*(.*)"),
        Severity.ERROR,
        FixCapability.MANUAL_REQUIRED,
        _failed_to_compile,
    ),
    LinePattern(
        "next_type_error",
        DiagnosticCategory.TYPESCRIPT,
        re.compile(r"^Type error: (.+)"),
        Severity.ERROR,
        FixCapability.AUTO_FIXABLE,
        _type_error,
    ),
    LinePattern(
        "bare_runtime_error",
        DiagnosticCategory.RUNTIME,
        re.compile(r"^(?:⨯\s*)?(?:Unhandled Runtime Error\s+)?(TypeError|ReferenceError|RangeError): (.+)"),
        Severity.ERROR,
        FixCapability.MANUAL_REQUIRED,
        _bare_runtime,
    ),
)


def clean_line(line: str) -> str:
    """Strip terminal color escapes and surrounding whitespace."""
    return ANSI_ESCAPE.sub("", line).strip()


def awaits_context(line: str) -> bool:
    """True for lines that ``classify_buffer`` combines with the line after them.

    A file header lends its location forward and an ``Error:`` line may be
    followed by its stack frame.
    """
    cleaned = clean_line(line)
    return bool(FILE_HEADER.match(cleaned)) or "Error: " in cleaned


def looks_like_error(line: str) -> bool:
    lowered = line.lower()
    return any(indicator in lowered for indicator in ERROR_INDICATORS)


class LogClassifier:
    """Stateless pattern engine for dev-server output."""

    def __init__(self, patterns: tuple[LinePattern, ...] = PATTERNS) -> None:
        self._patterns = patterns

    def classify_line(self, line: str) -> Optional[Diagnostic]:
        """Classify a single line (or a pre-joined error/frame pair)."""
        cleaned = clean_line(line)
        if not cleaned:
            return None

        for pattern in self._patterns:
            match = pattern.regex.search(cleaned)
            if not match:
                continue
            try:
                extracted = pattern.extract(match)
            except (ValueError, IndexError, TypeError) as exc:
                logger.debug("pattern_extract_failed", pattern=pattern.name, error=str(exc))
                continue
            return Diagnostic(
                category=pattern.category,
                severity=extracted.get("severity", pattern.severity),
                message=extracted.get("message") or "Unknown error",
                location=extracted.get("location", Location()),
                capability=pattern.capability,
                raw=cleaned,
                code=extracted.get("code"),
                rule=extracted.get("rule"),
            )

        if looks_like_error(cleaned):
            return Diagnostic(
                category=DiagnosticCategory.UNKNOWN,
                severity=Severity.ERROR,
                message=cleaned,
                capability=FixCapability.NO_FIX,
                raw=cleaned,
            )
        return None

    def classify_buffer(self, text: str) -> list[Diagnostic]:
        """Classify a multi-line buffer, deduplicated in first-seen order.

        An ``Error:`` line directly followed by a stack frame is classified as
        one entry, and a bare ``./file.tsx:l:c`` header lends its location to
        the next diagnostic that has none.
        """
        lines = [ANSI_ESCAPE.sub("", line) for line in text.splitlines()]
        diagnostics: list[Diagnostic] = []
        pending_header: Optional[Location] = None

        i = 0
        while i < len(lines):
            line = lines[i].strip()
            i += 1
            if not line:
                continue

            header = FILE_HEADER.match(line)
            if header:
                pending_header = _location(header.group(1), header.group(2), header.group(3))
                continue

            if "Error: " in line and i < len(lines) and STACK_FRAME.match(lines[i]):
                joined = self.classify_line(f"{line}\n{lines[i]}")
                if joined is not None and joined.category == DiagnosticCategory.BUILD:
                    diagnostics.append(joined)
                    i += 1
                    pending_header = None
                    continue

            if STACK_FRAME.match(line):
                continue

            diagnostic = self.classify_line(line)
            if diagnostic is None:
                continue
            if pending_header is not None and not diagnostic.location.is_known:
                diagnostic = _with_location(diagnostic, pending_header)
                pending_header = None
            diagnostics.append(diagnostic)

        return dedupe(diagnostics)


def _with_location(diagnostic: Diagnostic, location: Location) -> Diagnostic:
    return replace(diagnostic, location=location)


def dedupe(diagnostics: list[Diagnostic]) -> list[Diagnostic]:
    """Drop repeats of the same (category, message, file, line)."""
    seen: set[str] = set()
    unique: list[Diagnostic] = []
    for diagnostic in diagnostics:
        if diagnostic.signature in seen:
            continue
        seen.add(diagnostic.signature)
        unique.append(diagnostic)
    return unique
