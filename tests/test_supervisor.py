"""Tests for the dev server process supervisor."""

from __future__ import annotations

import asyncio
import shlex
import sys
from pathlib import Path

import pytest

from devmonitor.config import Settings
from devmonitor.supervisor import (
    AlreadyRunningError,
    DevServerOptions,
    ProcessExitedError,
    ProcessSpawnError,
    ProcessSupervisor,
    RestartError,
    ShutdownTimeoutError,
    StartupTimeoutError,
    SupervisorEvent,
)

READY_SCRIPT = "import time; print('starting'); print('Ready in 12ms'); time.sleep(30)"
SLOW_READY_SCRIPT = "import time; time.sleep(0.5); print('- Local: http://localhost:3000'); time.sleep(30)"
STDERR_SCRIPT = (
    "import sys, time; print('warn: deprecated', file=sys.stderr); "
    "time.sleep(0.2); print('Ready'); time.sleep(30)"
)
STUBBORN_SCRIPT = (
    "import signal, time; signal.signal(signal.SIGTERM, signal.SIG_IGN); "
    "print('Ready'); time.sleep(30)"
)


def _command(script: str) -> str:
    return f"{shlex.quote(sys.executable)} -u -c {shlex.quote(script)}"


@pytest.fixture
def make_supervisor(settings: Settings):
    """Build a supervisor running ``script`` with Python as the dev command."""
    created: list[ProcessSupervisor] = []

    def _make(script: str, **overrides) -> ProcessSupervisor:
        configured = settings.model_copy(update={
            "dev_command": _command(script),
            "dev_server_debug": False,
            "dev_server_port": None,
            **overrides,
        })
        supervisor = ProcessSupervisor(configured, install_signal_handlers=False)
        created.append(supervisor)
        return supervisor

    yield _make
    for supervisor in created:
        supervisor.stop_sync()


# ── Command construction ─────────────────────────────────────────────

class TestCommand:
    """Tests for argv building."""

    def test_flags_follow_separator(self, settings: Settings) -> None:
        supervisor = ProcessSupervisor(settings, install_signal_handlers=False)
        argv = supervisor.command(DevServerOptions(port=3001, hostname="0.0.0.0", debug=True))
        assert argv == ["npm", "run", "dev", "--", "--debug", "--port", "3001", "--hostname", "0.0.0.0"]

    def test_no_flags_no_separator(self, settings: Settings) -> None:
        supervisor = ProcessSupervisor(settings, install_signal_handlers=False)
        assert supervisor.command(DevServerOptions(debug=False)) == ["npm", "run", "dev"]

    def test_options_from_settings(self, settings: Settings) -> None:
        options = DevServerOptions.from_settings(settings)
        assert options.port == 3000
        assert options.hostname is None
        assert options.debug is True


# ── Lifecycle ────────────────────────────────────────────────────────

class TestLifecycle:
    """Tests for start, stop and restart against a real child process."""

    @pytest.mark.asyncio
    async def test_start_waits_for_ready(self, make_supervisor, project: Path) -> None:
        supervisor = make_supervisor(READY_SCRIPT)
        lines: list[str] = []
        supervisor.on(SupervisorEvent.STDOUT, lines.append)

        await supervisor.start(project)

        assert supervisor.is_running
        assert supervisor.pid is not None
        assert supervisor.project_path == project.resolve()
        assert any("Ready" in line for line in lines)
        assert any("starting" in chunk for chunk in supervisor.output_buffer())
        await supervisor.stop()

    @pytest.mark.asyncio
    async def test_stop_emits_exit_with_signal(self, make_supervisor, project: Path) -> None:
        supervisor = make_supervisor(READY_SCRIPT)
        exits: list[tuple] = []
        supervisor.on(SupervisorEvent.EXIT, lambda code, sig: exits.append((code, sig)))

        await supervisor.start(project)
        await supervisor.stop()

        assert not supervisor.is_running
        assert supervisor.pid is None
        assert supervisor.uptime == 0
        assert exits == [(-15, "SIGTERM")]

    @pytest.mark.asyncio
    async def test_stderr_is_streamed(self, make_supervisor, project: Path) -> None:
        supervisor = make_supervisor(STDERR_SCRIPT)
        errors: list[str] = []
        supervisor.on(SupervisorEvent.STDERR, errors.append)

        await supervisor.start(project)
        await supervisor.stop()

        assert errors == ["warn: deprecated\n"]

    @pytest.mark.asyncio
    async def test_second_start_while_starting(self, make_supervisor, project: Path) -> None:
        supervisor = make_supervisor(SLOW_READY_SCRIPT)
        first = asyncio.create_task(supervisor.start(project))
        await asyncio.sleep(0.1)

        with pytest.raises(AlreadyRunningError, match="startup in progress"):
            await supervisor.start(project)

        await first
        with pytest.raises(AlreadyRunningError, match="Process is already running"):
            await supervisor.start(project)
        await supervisor.stop()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("code", [0, 3])
    async def test_exit_before_ready_rejects(self, make_supervisor, project: Path, code: int) -> None:
        supervisor = make_supervisor(f"import sys; print('boom'); sys.exit({code})")
        with pytest.raises(ProcessExitedError, match=f"Process exited with code {code}") as info:
            await supervisor.start(project)
        assert info.value.code == code
        assert not supervisor.is_running

    @pytest.mark.asyncio
    async def test_startup_timeout_kills_child(self, make_supervisor, project: Path) -> None:
        supervisor = make_supervisor("import time; time.sleep(30)", startup_timeout=0.5)
        with pytest.raises(StartupTimeoutError, match="Process startup timeout"):
            await supervisor.start(project)
        assert not supervisor.is_running

    @pytest.mark.asyncio
    async def test_spawn_failure(self, settings: Settings, project: Path) -> None:
        supervisor = ProcessSupervisor(
            settings.model_copy(update={"dev_command": "/nonexistent/bin/next dev"}),
            install_signal_handlers=False,
        )
        errors: list[Exception] = []
        supervisor.on(SupervisorEvent.ERROR, errors.append)

        with pytest.raises(ProcessSpawnError, match="Failed to start '/nonexistent/bin/next'"):
            await supervisor.start(project)
        assert len(errors) == 1

    @pytest.mark.asyncio
    async def test_stop_escalates_to_kill(self, make_supervisor, project: Path) -> None:
        supervisor = make_supervisor(STUBBORN_SCRIPT, stop_grace_period=0.5)
        errors: list[Exception] = []
        exits: list[int] = []
        supervisor.on(SupervisorEvent.ERROR, errors.append)
        supervisor.on(SupervisorEvent.EXIT, lambda code, sig: exits.append(code))

        await supervisor.start(project)
        await supervisor.stop()

        assert not supervisor.is_running
        assert len(errors) == 1
        assert isinstance(errors[0], ShutdownTimeoutError)
        assert exits == [-9]

    @pytest.mark.asyncio
    async def test_stop_when_idle_is_noop(self, settings: Settings) -> None:
        supervisor = ProcessSupervisor(settings, install_signal_handlers=False)
        await supervisor.stop()
        assert not supervisor.is_running

    @pytest.mark.asyncio
    async def test_restart_without_path(self, settings: Settings) -> None:
        supervisor = ProcessSupervisor(settings, install_signal_handlers=False)
        with pytest.raises(RestartError, match="no project path stored"):
            await supervisor.restart()

    @pytest.mark.asyncio
    async def test_restart_replaces_process(self, make_supervisor, project: Path) -> None:
        supervisor = make_supervisor(READY_SCRIPT)
        await supervisor.start(project)
        first_pid = supervisor.pid

        await supervisor.restart()

        assert supervisor.is_running
        assert supervisor.pid != first_pid
        await supervisor.stop()


class TestOutputBuffer:
    """Tests for the rolling output buffer."""

    @pytest.mark.asyncio
    async def test_buffer_is_bounded_and_clearable(self, make_supervisor, project: Path) -> None:
        script = "import time\nfor i in range(10): print(f'line {i}')\nprint('Ready')\ntime.sleep(30)"
        supervisor = make_supervisor(script, output_buffer_chunks=3)

        await supervisor.start(project)
        buffer = supervisor.output_buffer()
        await supervisor.stop()

        assert len(buffer) <= 3
        assert buffer[-1] == "Ready\n"
        supervisor.clear_output_buffer()
        assert supervisor.output_buffer() == []
