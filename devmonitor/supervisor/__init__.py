"""Dev server process supervision."""

from devmonitor.supervisor.process import (
    AlreadyRunningError,
    DevServerOptions,
    ProcessExitedError,
    ProcessSpawnError,
    ProcessSupervisor,
    RestartError,
    ShutdownTimeoutError,
    StartupTimeoutError,
    SupervisorError,
    SupervisorEvent,
)

__all__ = [
    "AlreadyRunningError",
    "DevServerOptions",
    "ProcessExitedError",
    "ProcessSpawnError",
    "ProcessSupervisor",
    "RestartError",
    "ShutdownTimeoutError",
    "StartupTimeoutError",
    "SupervisorError",
    "SupervisorEvent",
]
