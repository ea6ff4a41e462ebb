"""Operations facade: the boundary an external adapter talks to.

Owns at most one ``MonitorSession`` at a time. Every call returns an
``OperationResult``; nothing here raises.
"""

from __future__ import annotations

from enum import StrEnum
from pathlib import Path
from typing import Any, Callable, Optional

from pydantic import BaseModel, Field

from devmonitor.config import Settings, get_settings
from devmonitor.logging_config import get_logger
from devmonitor.models import DiagnosticCategory, Severity
from devmonitor.session import MonitorSession

logger = get_logger(__name__)

DEFAULT_PAGE_SIZE = 50


class OperationStatus(StrEnum):
    OK = "ok"
    NOT_RUNNING = "not_running"
    ALREADY_RUNNING = "already_running"
    NOT_FOUND = "not_found"
    FAILED = "failed"


class OperationResult(BaseModel):
    """Uniform response envelope."""

    status: OperationStatus
    message: str
    data: dict[str, Any] = Field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.status == OperationStatus.OK


class MonitorOperations:
    """Single-slot registry for the active monitoring session."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        session_factory: Optional[Callable[[Settings], MonitorSession]] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._session_factory = session_factory or MonitorSession
        self._session: Optional[MonitorSession] = None

    @property
    def session(self) -> Optional[MonitorSession]:
        return self._session

    async def start_monitoring(self, project_path: Path | str, **overrides: Any) -> OperationResult:
        if self._session is not None and self._session.is_running:
            return OperationResult(
                status=OperationStatus.ALREADY_RUNNING,
                message=f"Monitoring already active for {self._session.project_path}",
            )

        path = Path(project_path).expanduser()
        if not path.is_dir():
            return OperationResult(status=OperationStatus.FAILED, message=f"Project path does not exist: {path}")

        session = self._session_factory(self._settings)
        try:
            await session.start(path, **overrides)
        except Exception as exc:
            logger.error("start_monitoring_failed", project=str(path), error=str(exc))
            return OperationResult(status=OperationStatus.FAILED, message=f"Failed to start monitoring: {exc}")

        self._session = session
        return OperationResult(
            status=OperationStatus.OK,
            message=f"Monitoring started for {session.project_path}",
            data={"project_path": str(session.project_path), "process_id": session.supervisor.pid},
        )

    async def stop_monitoring(self) -> OperationResult:
        session = self._session
        if session is None or not session.is_running:
            self._session = None
            return OperationResult(status=OperationStatus.NOT_RUNNING, message="Monitoring is not active")

        metrics = session.metrics()
        try:
            await session.stop()
        except Exception as exc:
            logger.error("stop_monitoring_failed", error=str(exc))
            return OperationResult(status=OperationStatus.FAILED, message=f"Failed to stop monitoring: {exc}")
        finally:
            if not session.is_running:
                self._session = None

        return OperationResult(
            status=OperationStatus.OK,
            message="Monitoring stopped",
            data={"metrics": metrics.to_dict()},
        )

    def list_diagnostics(
        self,
        categories: Optional[list[DiagnosticCategory | str]] = None,
        severities: Optional[list[Severity | str]] = None,
        fixable: Optional[bool] = None,
        limit: int = DEFAULT_PAGE_SIZE,
        offset: int = 0,
    ) -> OperationResult:
        """Filtered, paginated view of the live set. Empty when no session exists."""
        limit = limit if limit > 0 else DEFAULT_PAGE_SIZE
        offset = max(offset, 0)
        diagnostics = self._session.filtered(categories, severities, fixable) if self._session else []
        total = len(diagnostics)
        page = diagnostics[offset:offset + limit]
        return OperationResult(
            status=OperationStatus.OK,
            message=f"{total} diagnostic(s)",
            data={
                "diagnostics": [d.to_dict() for d in page],
                "total": total,
                "has_more": offset + limit < total,
            },
        )

    def apply_fix(self, diagnostic_id: str, force: bool = False) -> OperationResult:
        session = self._session
        if session is None:
            return OperationResult(status=OperationStatus.NOT_RUNNING, message="Monitor session not available")
        if session.get(diagnostic_id) is None:
            return OperationResult(
                status=OperationStatus.NOT_FOUND,
                message=f"Diagnostic {diagnostic_id} not found",
            )

        try:
            result = session.apply_fix(diagnostic_id, force=force)
        except Exception as exc:
            logger.error("apply_fix_failed", id=diagnostic_id, error=str(exc))
            return OperationResult(status=OperationStatus.FAILED, message=f"Fix failed: {exc}")

        data = result.to_dict()
        if result.success:
            data["recommendation"] = data["recommendation"] or "Fix applied successfully"
            return OperationResult(status=OperationStatus.OK, message="Fix applied successfully", data=data)
        data["recommendation"] = data["recommendation"] or "Fix failed - check error details"
        return OperationResult(status=OperationStatus.FAILED, message=result.error or "Fix failed", data=data)

    def status(self, include_metrics: bool = False) -> OperationResult:
        session = self._session
        if session is None or not session.is_running:
            return OperationResult(status=OperationStatus.OK, message="Monitoring is not active", data={"is_running": False})

        data: dict[str, Any] = {"is_running": True, "project_path": str(session.project_path)}
        if include_metrics:
            data["metrics"] = session.metrics().to_dict()
        return OperationResult(status=OperationStatus.OK, message="Monitoring is active", data=data)
