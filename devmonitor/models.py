"""Core value types shared by the classifier, ranker, remediation engine and session."""

from __future__ import annotations

import datetime as dt
import uuid
from dataclasses import asdict, dataclass, field, fields
from enum import StrEnum
from typing import Any, Optional

from pydantic import BaseModel, Field

UNKNOWN_FILE = "unknown"


class DiagnosticCategory(StrEnum):
    TYPESCRIPT = "typescript"
    ESLINT = "eslint"
    BUILD = "build"
    RUNTIME = "runtime"
    IMPORT = "import"
    SYNTAX = "syntax"
    UNKNOWN = "unknown"


class Severity(StrEnum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


class FixCapability(StrEnum):
    AUTO_FIXABLE = "auto_fixable"
    MANUAL_REQUIRED = "manual_required"
    SUGGESTION_AVAILABLE = "suggestion_available"
    NO_FIX = "no_fix"


def _new_id() -> str:
    return uuid.uuid4().hex[:12]


def _utcnow() -> dt.datetime:
    return dt.datetime.now(dt.UTC)


@dataclass(frozen=True)
class Location:
    """A 1-based source position. Unknown positions use ``UNKNOWN_FILE`` at 1:1."""

    file: str = UNKNOWN_FILE
    line: int = 1
    column: int = 1
    end_line: Optional[int] = None
    end_column: Optional[int] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "line", max(1, int(self.line)))
        object.__setattr__(self, "column", max(1, int(self.column)))

    @property
    def is_known(self) -> bool:
        return self.file != UNKNOWN_FILE

    def __str__(self) -> str:
        return f"{self.file}:{self.line}:{self.column}"


@dataclass(frozen=True)
class Diagnostic:
    """One classified problem extracted from monitored process output."""

    category: DiagnosticCategory
    severity: Severity
    message: str
    location: Location = field(default_factory=Location)
    capability: FixCapability = FixCapability.NO_FIX
    raw: str = ""
    code: Optional[str] = None
    rule: Optional[str] = None
    id: str = field(default_factory=_new_id)
    timestamp: dt.datetime = field(default_factory=_utcnow)

    @property
    def signature(self) -> str:
        """Dedup key: category, file, line and message."""
        return f"{self.category}:{self.location.file}:{self.location.line}:{self.message}"

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["timestamp"] = self.timestamp.isoformat()
        if "related_ids" in data:
            data["related_ids"] = list(data["related_ids"])
        return data


@dataclass(frozen=True)
class RankedDiagnostic(Diagnostic):
    """A diagnostic with priority, grouping and fixability attached by the ranker."""

    priority: int = 50
    group_key: Optional[str] = None
    related_ids: tuple[str, ...] = ()
    auto_fixable: bool = False
    suggested_fix: Optional[str] = None

    @classmethod
    def from_diagnostic(cls, diagnostic: Diagnostic, **extra: Any) -> RankedDiagnostic:
        base = {f.name: getattr(diagnostic, f.name) for f in fields(Diagnostic)}
        base.update(extra)
        return cls(**base)


@dataclass
class FixChange:
    """What a fix did: the strategy tag plus its salient parameters."""

    change_type: str
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.change_type, **self.details}


@dataclass
class FixResult:
    """Outcome of one remediation attempt."""

    success: bool
    applied: bool = False
    file: Optional[str] = None
    error: Optional[str] = None
    change: Optional[FixChange] = None
    recommendation: Optional[str] = None
    backup_id: Optional[str] = None

    @classmethod
    def failed(
        cls,
        error: str,
        file: Optional[str] = None,
        recommendation: Optional[str] = None,
    ) -> FixResult:
        return cls(success=False, applied=False, file=file, error=error, recommendation=recommendation)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "applied": self.applied,
            "file": self.file,
            "error": self.error,
            "change": self.change.to_dict() if self.change else None,
            "recommendation": self.recommendation,
            "backup_id": self.backup_id,
        }


class BackupRecord(BaseModel):
    """Index entry describing one stored pre-fix snapshot."""

    id: str
    file_path: str
    timestamp: dt.datetime = Field(default_factory=_utcnow)
    original_size: int
    checksum: str
    fix_type: str = ""
    description: str = ""
