"""Tests for the monitor session."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock

import pytest

from devmonitor.config import Settings
from devmonitor.models import DiagnosticCategory, Severity
from devmonitor.remediation import RemediationEngine
from devmonitor.session import MonitorSession, SessionError, SessionEvent, SessionStatus
from devmonitor.supervisor import ProcessSupervisor, SupervisorEvent

TS_LINE = "Button.tsx(10,15): error TS2322: Type 'string' is not assignable to type 'number'."
CONSOLE_LINE = "src/page.tsx:2:3: warning Unexpected console statement (no-console)"
RUNTIME_LINE = "⨯ TypeError: boom"

PAGE = """export function Page() {
  console.log("rendering");
  return 1;
}
"""


@pytest.fixture
def supervisor() -> MagicMock:
    mock = MagicMock(spec=ProcessSupervisor)
    mock.is_running = False
    mock.pid = None
    return mock


@pytest.fixture
def session(settings: Settings, supervisor: MagicMock, engine: RemediationEngine) -> MonitorSession:
    return MonitorSession(settings, supervisor=supervisor, engine=engine)


def _listener(supervisor: MagicMock, event: SupervisorEvent):
    for call in supervisor.on.call_args_list:
        if call.args[0] == event:
            return call.args[1]
    raise AssertionError(f"no listener for {event}")


# ── Wiring ───────────────────────────────────────────────────────────

class TestWiring:
    """Tests for supervisor event forwarding."""

    def test_output_streams_feed_ingest(self, session: MonitorSession, supervisor: MagicMock) -> None:
        _listener(supervisor, SupervisorEvent.STDOUT)(TS_LINE)
        _listener(supervisor, SupervisorEvent.STDERR)(CONSOLE_LINE)
        assert len(session.current_diagnostics()) == 2

    def test_exit_becomes_status_change(self, session: MonitorSession, supervisor: MagicMock) -> None:
        changes: list[tuple] = []
        session.on(SessionEvent.STATUS_CHANGE, lambda status, data: changes.append((status, data)))
        _listener(supervisor, SupervisorEvent.EXIT)(1, None)
        assert changes == [(SessionStatus.EXITED, {"code": 1, "signal": None})]

    def test_process_error_is_forwarded(self, session: MonitorSession, supervisor: MagicMock) -> None:
        errors: list[Exception] = []
        session.on(SessionEvent.ERROR, errors.append)
        boom = RuntimeError("boom")
        _listener(supervisor, SupervisorEvent.ERROR)(boom)
        assert errors == [boom]


# ── Lifecycle ────────────────────────────────────────────────────────

class TestLifecycle:
    """Tests for start and stop."""

    @pytest.mark.asyncio
    async def test_start_applies_overrides(
        self, session: MonitorSession, supervisor: MagicMock, project: Path,
    ) -> None:
        changes: list[tuple] = []
        session.on(SessionEvent.STATUS_CHANGE, lambda status, data: changes.append((status, data)))
        supervisor.pid = 4321

        await session.start(project, dev_server_port=4000, safe_mode=False)

        assert session.settings.dev_server_port == 4000
        assert session.settings.safe_mode is False
        assert session.project_path == project.resolve()
        assert supervisor.settings is session.settings
        supervisor.start.assert_awaited_once()
        options = supervisor.start.await_args.args[1]
        assert options.port == 4000
        assert changes == [(SessionStatus.STARTED, {"pid": 4321})]

    @pytest.mark.asyncio
    async def test_start_twice(self, session: MonitorSession, supervisor: MagicMock, project: Path) -> None:
        supervisor.is_running = True
        with pytest.raises(SessionError, match="Monitor is already running"):
            await session.start(project)

    @pytest.mark.asyncio
    async def test_start_resets_diagnostics(
        self, session: MonitorSession, supervisor: MagicMock, project: Path,
    ) -> None:
        session.ingest(TS_LINE)
        await session.start(project)
        assert session.current_diagnostics() == []
        assert session.metrics().diagnostics_seen == 0

    @pytest.mark.asyncio
    async def test_stop(self, session: MonitorSession, supervisor: MagicMock) -> None:
        changes: list[tuple] = []
        session.on(SessionEvent.STATUS_CHANGE, lambda status, data: changes.append((status, data)))
        supervisor.is_running = True

        await session.stop()

        supervisor.stop.assert_awaited_once()
        assert changes == [(SessionStatus.STOPPED, {})]

    @pytest.mark.asyncio
    async def test_stop_when_idle(self, session: MonitorSession, supervisor: MagicMock) -> None:
        await session.stop()
        supervisor.stop.assert_not_awaited()


# ── Diagnostics ──────────────────────────────────────────────────────

class TestIngest:
    """Tests for merging output into the live set."""

    def test_duplicates_refresh_timestamp(self, session: MonitorSession) -> None:
        emitted: list = []
        session.on(SessionEvent.NEW_DIAGNOSTIC, emitted.append)

        first = session.ingest(TS_LINE)
        again = session.ingest(TS_LINE)

        assert len(first) == 1
        assert again == []
        assert len(emitted) == 1
        live = session.current_diagnostics()
        assert len(live) == 1
        assert live[0].id == first[0].id
        assert live[0].timestamp >= first[0].timestamp
        assert session.metrics().diagnostics_seen == 1

    def test_error_and_stack_frame_in_separate_chunks(self, session: MonitorSession, supervisor: MagicMock) -> None:
        stdout = _listener(supervisor, SupervisorEvent.STDOUT)
        assert stdout("Error: Cannot find module 'x'\n") == []
        new = stdout("    at Object.<anonymous> (/app/next.config.js:3:1)\n")

        assert len(new) == 1
        assert new[0].category == DiagnosticCategory.BUILD
        assert (new[0].location.file, new[0].location.line) == ("/app/next.config.js", 3)
        assert len(session.current_diagnostics()) == 1

    def test_file_header_in_separate_chunk(self, session: MonitorSession, supervisor: MagicMock) -> None:
        stdout = _listener(supervisor, SupervisorEvent.STDOUT)
        stdout("./src/app/page.tsx:4:7\n")
        new = stdout("Type error: Property 'foo' does not exist on type 'Bar'.\n")

        assert len(new) == 1
        assert new[0].location.file == "./src/app/page.tsx"
        assert new[0].location.line == 4

    def test_held_line_is_flushed_on_exit(self, session: MonitorSession, supervisor: MagicMock) -> None:
        _listener(supervisor, SupervisorEvent.STDERR)("Error: boom\n")
        assert session.metrics().diagnostics_seen == 0

        _listener(supervisor, SupervisorEvent.EXIT)(1, None)
        assert session.metrics().diagnostics_seen == 1

    def test_sorted_by_priority(self, session: MonitorSession) -> None:
        session.ingest(f"{CONSOLE_LINE}\n{TS_LINE}")
        priorities = [d.priority for d in session.current_diagnostics()]
        assert priorities == sorted(priorities, reverse=True)

    def test_processing_failure_is_contained(self, settings: Settings, supervisor: MagicMock) -> None:
        classifier = MagicMock()
        classifier.classify_buffer.side_effect = RuntimeError("bad")
        session = MonitorSession(settings, supervisor=supervisor, classifier=classifier)
        assert session.ingest(TS_LINE) == []

    def test_filtered(self, session: MonitorSession) -> None:
        session.ingest(f"{TS_LINE}\n{CONSOLE_LINE}\n{RUNTIME_LINE}")

        assert [d.category for d in session.filtered(categories=[DiagnosticCategory.ESLINT])] == [
            DiagnosticCategory.ESLINT
        ]
        assert all(d.severity == Severity.ERROR for d in session.filtered(severities=["error"]))
        assert len(session.filtered(severities=["error"])) == 2
        assert [d.category for d in session.filtered(fixable=False)] == [DiagnosticCategory.RUNTIME]
        assert len(session.filtered()) == 3

    def test_resolve_emits_once(self, session: MonitorSession) -> None:
        resolved: list = []
        session.on(SessionEvent.DIAGNOSTIC_RESOLVED, resolved.append)
        diagnostic = session.ingest(TS_LINE)[0]

        assert session.resolve(diagnostic.id) is not None
        assert session.resolve(diagnostic.id) is None
        assert len(resolved) == 1
        assert session.get(diagnostic.id) is None

    def test_clear(self, session: MonitorSession) -> None:
        session.ingest(TS_LINE)
        session.clear()
        assert session.current_diagnostics() == []


# ── Remediation ──────────────────────────────────────────────────────

class TestApplyFix:
    """Tests for routing fix requests to the engine."""

    @pytest.fixture
    def page(self, project: Path) -> Path:
        src = project / "src"
        src.mkdir()
        path = src / "page.tsx"
        path.write_text(PAGE, encoding="utf-8")
        return path

    def test_successful_fix_resolves(self, session: MonitorSession, page: Path) -> None:
        resolved: list = []
        session.on(SessionEvent.DIAGNOSTIC_RESOLVED, resolved.append)
        diagnostic = session.ingest(CONSOLE_LINE)[0]

        result = session.apply_fix(diagnostic.id)

        assert result.success, result.error
        assert "console" not in page.read_text(encoding="utf-8")
        assert session.get(diagnostic.id) is None
        assert [d.id for d in resolved] == [diagnostic.id]
        metrics = session.metrics()
        assert metrics.fixes_applied == 1
        assert metrics.success_rate == 100.0

    def test_unknown_id(self, session: MonitorSession) -> None:
        assert session.apply_fix("missing").error == "Diagnostic missing not found"

    def test_not_fixable(self, session: MonitorSession) -> None:
        diagnostic = session.ingest(RUNTIME_LINE)[0]
        result = session.apply_fix(diagnostic.id)
        assert result.error == "This diagnostic is not auto-fixable"
        assert result.recommendation == "Manual intervention required"

    def test_auto_fix_disabled(self, settings: Settings, supervisor: MagicMock) -> None:
        session = MonitorSession(settings.model_copy(update={"auto_fix": False}), supervisor=supervisor)
        diagnostic = session.ingest(CONSOLE_LINE)[0]
        result = session.apply_fix(diagnostic.id)
        assert result.error == "Auto-fix is disabled - enable auto_fix in settings"
        assert session.engine is None

    def test_force_routes_to_force_apply(self, settings: Settings, supervisor: MagicMock) -> None:
        engine = MagicMock(spec=RemediationEngine)
        engine.force_apply_fix.return_value = MagicMock(success=False)
        session = MonitorSession(settings, supervisor=supervisor, engine=engine)
        diagnostic = session.ingest(CONSOLE_LINE)[0]

        session.apply_fix(diagnostic.id, force=True)

        engine.force_apply_fix.assert_called_once()
        engine.apply_fix.assert_not_called()
        assert session.get(diagnostic.id) is not None

    def test_engine_exception_becomes_failure(self, settings: Settings, supervisor: MagicMock) -> None:
        engine = MagicMock(spec=RemediationEngine)
        engine.apply_fix.side_effect = RuntimeError("kaboom")
        session = MonitorSession(settings, supervisor=supervisor, engine=engine)
        diagnostic = session.ingest(CONSOLE_LINE)[0]

        result = session.apply_fix(diagnostic.id)

        assert result.error == "Fix failed: kaboom"
        assert session.metrics().fixes_applied == 0
