"""Runtime module for running external processes.

This module provides a blocking process runner that drains stdout and stderr
on dedicated reader threads, publishes each line as an event and guarantees
cleanup of the child on every exit path.
"""

from __future__ import annotations

from .errors import LaunchError, ProcessRunnerError, ProcessTimeoutError, RunError
from .events import EventHook, LineEvent, OutputStream
from .process_runner import (
    IS_WINDOWS,
    ProcessRunner,
    ProcessStartSpec,
    run_for_console,
    run_static,
)

__all__ = [
    "IS_WINDOWS",
    "ProcessRunner",
    "ProcessStartSpec",
    "run_static",
    "run_for_console",
    "EventHook",
    "LineEvent",
    "OutputStream",
    "ProcessRunnerError",
    "LaunchError",
    "ProcessTimeoutError",
    "RunError",
]
