"""Monitor session: wires the supervisor into the diagnostic pipeline.

Every chunk of dev server output is classified and ranked, and the result is
merged into a live diagnostic set keyed by signature. The session is the only
writer of that set; remediation requests are routed to the engine and a
successful fix resolves the diagnostic it was applied to.
"""

from __future__ import annotations

import time
from dataclasses import asdict, dataclass, replace
from enum import StrEnum
from pathlib import Path
from typing import Any, Callable, Iterable, Optional

from devmonitor.config import Settings, get_settings
from devmonitor.events import EventEmitter
from devmonitor.logging_config import get_logger
from devmonitor.models import DiagnosticCategory, FixResult, RankedDiagnostic, Severity
from devmonitor.pipeline import LogClassifier, SeverityRanker
from devmonitor.pipeline.classifier import awaits_context
from devmonitor.remediation import RemediationEngine
from devmonitor.supervisor import DevServerOptions, ProcessSupervisor, SupervisorEvent

logger = get_logger(__name__)


class SessionError(Exception):
    """Session lifecycle misuse, such as starting twice."""


class SessionEvent(StrEnum):
    STATUS_CHANGE = "status_change"
    NEW_DIAGNOSTIC = "new_diagnostic"
    DIAGNOSTIC_RESOLVED = "diagnostic_resolved"
    ERROR = "error"


class SessionStatus(StrEnum):
    STARTED = "started"
    STOPPED = "stopped"
    EXITED = "exited"


@dataclass
class SessionMetrics:
    diagnostics_seen: int = 0
    fixes_applied: int = 0
    success_rate: float = 0.0
    uptime_seconds: int = 0
    process_id: Optional[int] = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class MonitorSession:
    """One supervised dev server plus its live diagnostic set."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        supervisor: Optional[ProcessSupervisor] = None,
        classifier: Optional[LogClassifier] = None,
        ranker: Optional[SeverityRanker] = None,
        engine: Optional[RemediationEngine] = None,
    ) -> None:
        self._base_settings = settings or get_settings()
        self.settings = self._base_settings
        self._supervisor = supervisor or ProcessSupervisor(self.settings)
        self._classifier = classifier or LogClassifier()
        self._ranker = ranker or SeverityRanker()
        self._injected_engine = engine
        self._engine = engine
        self._events: EventEmitter[SessionEvent] = EventEmitter(SessionEvent)
        self._live: dict[str, RankedDiagnostic] = {}
        self._held = ""
        self._diagnostics_seen = 0
        self._fixes_applied = 0
        self._start_time: float = 0

        self._supervisor.on(SupervisorEvent.STDOUT, self.ingest)
        self._supervisor.on(SupervisorEvent.STDERR, self.ingest)
        self._supervisor.on(SupervisorEvent.ERROR, self._on_process_error)
        self._supervisor.on(SupervisorEvent.EXIT, self._on_process_exit)

    def on(self, event: SessionEvent, callback: Callable[..., Any]) -> None:
        self._events.on(event, callback)

    def off(self, event: SessionEvent, callback: Callable[..., Any]) -> None:
        self._events.off(event, callback)

    @property
    def supervisor(self) -> ProcessSupervisor:
        return self._supervisor

    @property
    def is_running(self) -> bool:
        return self._supervisor.is_running

    @property
    def project_path(self) -> Path:
        return Path(self.settings.project_path)

    @property
    def engine(self) -> Optional[RemediationEngine]:
        """The remediation engine, built on first use; None when auto-fix is disabled."""
        if self._engine is None and self.settings.auto_fix:
            self._engine = RemediationEngine(self.settings)
        return self._engine

    # ── Lifecycle ────────────────────────────────────────────────────

    async def start(self, project_path: Path | str, **overrides: Any) -> None:
        """Start supervising ``project_path``; keyword overrides are merged onto the settings."""
        if self.is_running:
            raise SessionError("Monitor is already running")

        self.settings = self._base_settings.with_overrides(project_path=project_path, **overrides)
        self._live.clear()
        self._held = ""
        self._diagnostics_seen = 0
        self._fixes_applied = 0
        self._engine = self._injected_engine
        self._supervisor.settings = self.settings
        self._start_time = time.monotonic()

        try:
            await self._supervisor.start(self.project_path, DevServerOptions.from_settings(self.settings))
        except Exception:
            self._start_time = 0
            raise

        logger.info("monitoring_started", project=str(self.project_path), pid=self._supervisor.pid)
        self._events.emit(SessionEvent.STATUS_CHANGE, SessionStatus.STARTED, {"pid": self._supervisor.pid})

    async def stop(self) -> None:
        if not self.is_running:
            return
        await self._supervisor.stop()
        self.flush()
        self._start_time = 0
        logger.info("monitoring_stopped", project=str(self.project_path))
        self._events.emit(SessionEvent.STATUS_CHANGE, SessionStatus.STOPPED, {})

    def _on_process_error(self, error: Exception) -> None:
        self._events.emit(SessionEvent.ERROR, error)

    def _on_process_exit(self, code: Optional[int], signal_name: Optional[str]) -> None:
        self.flush()
        self._events.emit(SessionEvent.STATUS_CHANGE, SessionStatus.EXITED, {"code": code, "signal": signal_name})

    # ── Diagnostics ──────────────────────────────────────────────────

    def ingest(self, text: str) -> list[RankedDiagnostic]:
        """Classify and rank a chunk of output; return the diagnostics not seen before.

        Trailing lines that pair with the next line of output (a file header,
        an ``Error:`` line awaiting its stack frame) are held back and prefixed
        to the next chunk.
        """
        buffered = f"{self._held}\n{text}" if self._held else text
        lines = buffered.splitlines()
        split = len(lines)
        while split > 0 and awaits_context(lines[split - 1]):
            split -= 1
        self._held = "\n".join(lines[split:])
        return self._process("\n".join(lines[:split]))

    def flush(self) -> list[RankedDiagnostic]:
        """Classify any held-back lines without waiting for more output."""
        held, self._held = self._held, ""
        return self._process(held) if held else []

    def _process(self, text: str) -> list[RankedDiagnostic]:
        if not text.strip():
            return []
        try:
            ranked = self._ranker.rank_all(self._classifier.classify_buffer(text))
        except Exception as exc:
            logger.warning("log_processing_failed", error=str(exc))
            return []

        new: list[RankedDiagnostic] = []
        for diagnostic in ranked:
            key = diagnostic.signature
            existing = self._live.get(key)
            if existing is not None:
                self._live[key] = replace(existing, timestamp=diagnostic.timestamp)
                continue
            self._live[key] = diagnostic
            self._diagnostics_seen += 1
            new.append(diagnostic)
            logger.debug("diagnostic_detected", id=diagnostic.id, category=str(diagnostic.category))
            self._events.emit(SessionEvent.NEW_DIAGNOSTIC, diagnostic)
        return new

    def current_diagnostics(self) -> list[RankedDiagnostic]:
        """Live diagnostics, highest priority first."""
        self.flush()
        return sorted(self._live.values(), key=lambda d: d.priority, reverse=True)

    def filtered(
        self,
        categories: Optional[Iterable[DiagnosticCategory | str]] = None,
        severities: Optional[Iterable[Severity | str]] = None,
        fixable: Optional[bool] = None,
    ) -> list[RankedDiagnostic]:
        diagnostics = self.current_diagnostics()
        wanted_categories = {str(c) for c in categories or ()}
        wanted_severities = {str(s) for s in severities or ()}
        if wanted_categories:
            diagnostics = [d for d in diagnostics if str(d.category) in wanted_categories]
        if wanted_severities:
            diagnostics = [d for d in diagnostics if str(d.severity) in wanted_severities]
        if fixable is not None:
            diagnostics = [d for d in diagnostics if d.auto_fixable == fixable]
        return diagnostics

    def get(self, diagnostic_id: str) -> Optional[RankedDiagnostic]:
        for diagnostic in self._live.values():
            if diagnostic.id == diagnostic_id:
                return diagnostic
        return None

    def resolve(self, diagnostic_id: str) -> Optional[RankedDiagnostic]:
        """Drop a diagnostic from the live set and announce it as resolved."""
        for key, diagnostic in self._live.items():
            if diagnostic.id == diagnostic_id:
                del self._live[key]
                self._events.emit(SessionEvent.DIAGNOSTIC_RESOLVED, diagnostic)
                return diagnostic
        return None

    def clear(self) -> None:
        self._held = ""
        self._live.clear()

    def metrics(self) -> SessionMetrics:
        uptime = time.monotonic() - self._start_time if self._start_time else 0
        success_rate = self._fixes_applied / self._diagnostics_seen * 100 if self._diagnostics_seen else 0.0
        return SessionMetrics(
            diagnostics_seen=self._diagnostics_seen,
            fixes_applied=self._fixes_applied,
            success_rate=success_rate,
            uptime_seconds=int(uptime),
            process_id=self._supervisor.pid,
        )

    # ── Remediation ──────────────────────────────────────────────────

    def apply_fix(self, diagnostic_id: str, force: bool = False) -> FixResult:
        """Apply the fix for a live diagnostic; ``force`` lifts safe mode for this attempt."""
        diagnostic = self.get(diagnostic_id)
        if diagnostic is None:
            return FixResult.failed(f"Diagnostic {diagnostic_id} not found")

        file = diagnostic.location.file
        engine = self.engine
        if engine is None:
            return FixResult.failed(
                "Auto-fix is disabled - enable auto_fix in settings",
                file=file,
            )
        if not diagnostic.auto_fixable:
            return FixResult.failed(
                "This diagnostic is not auto-fixable",
                file=file,
                recommendation="Manual intervention required",
            )

        try:
            result = engine.force_apply_fix(diagnostic) if force else engine.apply_fix(diagnostic)
        except Exception as exc:
            logger.error("fix_attempt_failed", id=diagnostic_id, error=str(exc))
            return FixResult.failed(f"Fix failed: {exc}", file=file)

        if result.success:
            self._fixes_applied += 1
            self.resolve(diagnostic_id)
            logger.info("fix_applied", id=diagnostic_id, file=result.file)
        return result
