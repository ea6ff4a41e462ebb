"""Process Supervisor: spawns and watches the Next.js dev server.

The supervisor owns exactly one child process at a time. It:
- Starts the dev command in its own process group
- Streams stdout/stderr line by line to listeners and a rolling buffer
- Treats the first ready marker as a successful start
- Stops the whole group with SIGTERM, escalating to SIGKILL
"""

from __future__ import annotations

import asyncio
import atexit
import os
import shlex
import signal
import time
from collections import deque
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path
from typing import Any, Callable, Optional

from devmonitor.config import Settings, get_settings
from devmonitor.events import EventEmitter
from devmonitor.logging_config import get_logger

logger = get_logger(__name__)

READY_MARKERS = ("Ready", "started server", "Local:")
STREAM_LIMIT = 1024 * 1024      # longest single line the readers accept
READER_DRAIN_TIMEOUT = 2.0      # seconds to let readers flush after exit
SYNC_STOP_TIMEOUT = 3.0


class SupervisorError(Exception):
    """Base class for process lifecycle failures."""


class AlreadyRunningError(SupervisorError):
    pass


class RestartError(SupervisorError):
    pass


class ProcessSpawnError(SupervisorError):
    pass


class ProcessExitedError(SupervisorError):
    def __init__(self, message: str, code: Optional[int] = None) -> None:
        super().__init__(message)
        self.code = code


class StartupTimeoutError(SupervisorError):
    pass


class ShutdownTimeoutError(SupervisorError):
    pass


class SupervisorEvent(StrEnum):
    STDOUT = "stdout"
    STDERR = "stderr"
    EXIT = "exit"
    ERROR = "error"


@dataclass
class DevServerOptions:
    port: Optional[int] = None
    hostname: Optional[str] = None
    debug: bool = True

    @classmethod
    def from_settings(cls, settings: Settings) -> DevServerOptions:
        return cls(
            port=settings.dev_server_port,
            hostname=settings.dev_server_hostname or None,
            debug=settings.dev_server_debug,
        )

    def flags(self) -> list[str]:
        flags: list[str] = []
        if self.debug:
            flags.append("--debug")
        if self.port:
            flags += ["--port", str(self.port)]
        if self.hostname:
            flags += ["--hostname", self.hostname]
        return flags


def _signal_name(code: int) -> Optional[str]:
    if code >= 0:
        return None
    try:
        return signal.Signals(-code).name
    except ValueError:
        return None


class ProcessSupervisor:
    """Spawns and monitors the dev server process."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        install_signal_handlers: bool = True,
    ) -> None:
        self.settings = settings or get_settings()
        self._events: EventEmitter[SupervisorEvent] = EventEmitter(SupervisorEvent)
        self._process: Optional[asyncio.subprocess.Process] = None
        self._buffer: deque[str] = deque(maxlen=self.settings.output_buffer_chunks)
        self._ready: Optional[asyncio.Future[None]] = None
        self._readers: list[asyncio.Task[None]] = []
        self._watcher: Optional[asyncio.Task[None]] = None
        self._starting = False
        self._project_path: Optional[Path] = None
        self._options: Optional[DevServerOptions] = None
        self._start_time: float = 0
        self._install_signal_handlers = install_signal_handlers
        self._shutdown_hooks_installed = False
        self._shutdown_task: Optional[asyncio.Task[None]] = None

    # ── Listeners ────────────────────────────────────────────────────

    def on(self, event: SupervisorEvent, callback: Callable[..., Any]) -> None:
        self._events.on(event, callback)

    def off(self, event: SupervisorEvent, callback: Callable[..., Any]) -> None:
        self._events.off(event, callback)

    # ── State ────────────────────────────────────────────────────────

    @property
    def is_running(self) -> bool:
        return self._process is not None and self._process.returncode is None

    @property
    def pid(self) -> Optional[int]:
        return self._process.pid if self.is_running else None

    @property
    def uptime(self) -> float:
        if not self._start_time or not self.is_running:
            return 0
        return time.monotonic() - self._start_time

    @property
    def project_path(self) -> Optional[Path]:
        return self._project_path

    def output_buffer(self) -> list[str]:
        return list(self._buffer)

    def clear_output_buffer(self) -> None:
        self._buffer.clear()

    def command(self, options: DevServerOptions) -> list[str]:
        argv = shlex.split(self.settings.dev_command)
        flags = options.flags()
        if flags:
            argv += ["--", *flags]
        return argv

    # ── Lifecycle ────────────────────────────────────────────────────

    async def start(self, project_path: Path | str, options: Optional[DevServerOptions] = None) -> None:
        """Start the dev server and wait until it reports ready."""
        if self._starting:
            raise AlreadyRunningError("Process is already running (startup in progress)")
        if self.is_running:
            raise AlreadyRunningError("Process is already running")

        self._starting = True
        try:
            self._project_path = Path(project_path).resolve()
            self._options = options or DevServerOptions.from_settings(self.settings)
            await self._spawn()
        finally:
            self._starting = False

    async def _spawn(self) -> None:
        assert self._project_path is not None and self._options is not None
        argv = self.command(self._options)
        env = {**os.environ, "NODE_ENV": "development"}
        loop = asyncio.get_running_loop()
        ready: asyncio.Future[None] = loop.create_future()
        self._ready = ready

        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                cwd=str(self._project_path),
                env=env,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                start_new_session=True,
                limit=STREAM_LIMIT,
            )
        except OSError as exc:
            error = ProcessSpawnError(f"Failed to start '{argv[0]}': {exc}")
            logger.error("process_start_failed", command=argv[0], error=str(exc))
            self._events.emit(SupervisorEvent.ERROR, error)
            raise error from exc

        self._process = process
        self._start_time = time.monotonic()
        logger.info("process_started", pid=process.pid, cwd=str(self._project_path), command=" ".join(argv))
        self._install_shutdown_hooks()

        self._readers = [
            loop.create_task(self._read_stream(process.stdout, SupervisorEvent.STDOUT)),
            loop.create_task(self._read_stream(process.stderr, SupervisorEvent.STDERR)),
        ]
        self._watcher = loop.create_task(self._watch_exit(process))

        try:
            await asyncio.wait_for(ready, timeout=self.settings.startup_timeout)
        except asyncio.TimeoutError:
            logger.error("process_startup_timeout", pid=process.pid, timeout=self.settings.startup_timeout)
            await self._kill(process)
            raise StartupTimeoutError("Process startup timeout") from None

        logger.info("process_ready", pid=process.pid)

    def _settle(self, error: Optional[BaseException] = None) -> None:
        """Resolve or reject the pending start once; later calls are no-ops."""
        ready = self._ready
        if ready is None or ready.done():
            return
        if error is None:
            ready.set_result(None)
        else:
            ready.set_exception(error)

    async def _read_stream(self, stream: Optional[asyncio.StreamReader], event: SupervisorEvent) -> None:
        if stream is None:
            return
        while True:
            try:
                raw = await stream.readline()
            except ValueError:
                # line longer than STREAM_LIMIT; take what is buffered
                raw = await stream.read(STREAM_LIMIT)
            if not raw:
                break
            chunk = raw.decode("utf-8", errors="replace")
            self._buffer.append(chunk)
            self._events.emit(event, chunk)
            if any(marker in chunk for marker in READY_MARKERS):
                self._settle()

    async def _watch_exit(self, process: asyncio.subprocess.Process) -> None:
        code = await process.wait()
        if self._readers:
            await asyncio.wait(self._readers, timeout=READER_DRAIN_TIMEOUT)
        signal_name = _signal_name(code)
        self._settle(ProcessExitedError(f"Process exited with code {code}", code))
        logger.info("process_exited", pid=process.pid, code=code, signal=signal_name)
        self._events.emit(SupervisorEvent.EXIT, code, signal_name)

    async def stop(self) -> None:
        """Gracefully stop the dev server, escalating to SIGKILL after the grace period."""
        process = self._process
        if process is None or process.returncode is not None:
            return

        pid = process.pid
        grace = self.settings.stop_grace_period
        logger.info("stopping_process", pid=pid)
        self._signal_group(process, signal.SIGTERM)
        try:
            await asyncio.wait_for(process.wait(), timeout=grace)
        except asyncio.TimeoutError:
            logger.warning("process_kill_timeout", pid=pid)
            await self._kill(process)
            self._events.emit(
                SupervisorEvent.ERROR,
                ShutdownTimeoutError(f"Process did not exit within {grace}s and was killed"),
            )
        if self._watcher is not None:
            await self._watcher
        logger.info("process_stopped", pid=pid)

    async def restart(self) -> None:
        if self._project_path is None:
            raise RestartError("Cannot restart: no project path stored")
        if self.is_running:
            await self.stop()
        await self.start(self._project_path, self._options)

    async def _kill(self, process: asyncio.subprocess.Process) -> None:
        self._signal_group(process, signal.SIGKILL)
        await process.wait()
        if self._watcher is not None:
            await self._watcher

    @staticmethod
    def _signal_group(process: asyncio.subprocess.Process, sig: signal.Signals) -> None:
        """Signal the child's whole process group, falling back to the child alone."""
        pgid = None
        try:
            pgid = os.getpgid(process.pid)
        except OSError:
            pass
        if pgid:
            try:
                os.killpg(pgid, sig)
                return
            except OSError:
                pass
        try:
            process.send_signal(sig)
        except ProcessLookupError:
            pass

    # ── Process-wide shutdown ────────────────────────────────────────

    def _install_shutdown_hooks(self) -> None:
        if self._shutdown_hooks_installed or not self._install_signal_handlers:
            return
        self._shutdown_hooks_installed = True
        atexit.register(self.stop_sync)

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self._on_signal, sig)
            except (NotImplementedError, RuntimeError, ValueError):
                logger.debug("signal_handler_unavailable", signal=sig.name)

    def _on_signal(self, sig: signal.Signals) -> None:
        logger.info("shutdown_signal_received", signal=sig.name)
        self._shutdown_task = asyncio.get_running_loop().create_task(self._stop_and_redeliver(sig))

    async def _stop_and_redeliver(self, sig: signal.Signals) -> None:
        try:
            await self.stop()
        finally:
            asyncio.get_running_loop().remove_signal_handler(sig)
            os.kill(os.getpid(), sig)

    def stop_sync(self) -> None:
        """Synchronous stop for the atexit handler, once the loop is gone."""
        process = self._process
        if process is None or process.returncode is not None:
            return
        self._signal_group(process, signal.SIGTERM)
        deadline = time.monotonic() + SYNC_STOP_TIMEOUT
        while time.monotonic() < deadline:
            try:
                reaped, _ = os.waitpid(process.pid, os.WNOHANG)
            except ChildProcessError:
                return
            if reaped:
                return
            time.sleep(0.1)
        self._signal_group(process, signal.SIGKILL)
