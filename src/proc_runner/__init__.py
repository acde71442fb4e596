"""proc-runner - run external processes without pipe deadlocks.

Environment variables:
    PROC_RUNNER_JOIN_TIMEOUT: reader grace period after exit (default 2.0s)
    PROC_RUNNER_EXIT_TIMEOUT: limit on waiting for exit (default: none)
    PROC_RUNNER_LOG_DEBUG: debug log into a temp file (default false)

Usage:
    python -m proc_runner echo hello
"""

__version__ = "0.1.0"

from .runtime import (
    LaunchError,
    LineEvent,
    OutputStream,
    ProcessRunner,
    ProcessRunnerError,
    ProcessStartSpec,
    ProcessTimeoutError,
    RunError,
    run_for_console,
    run_static,
)

__all__ = [
    "__version__",
    "ProcessRunner",
    "ProcessStartSpec",
    "LineEvent",
    "OutputStream",
    "run_static",
    "run_for_console",
    "ProcessRunnerError",
    "LaunchError",
    "ProcessTimeoutError",
    "RunError",
]
