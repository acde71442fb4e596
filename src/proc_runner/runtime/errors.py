"""Process runner exception classes.

proc-runner runtime module v0.1.0
"""

from __future__ import annotations

__all__ = [
    "ProcessRunnerError",
    "LaunchError",
    "ProcessTimeoutError",
    "RunError",
]


class ProcessRunnerError(Exception):
    """Base exception for the runtime module."""
    pass


class LaunchError(ProcessRunnerError):
    """The OS could not create the process (missing executable, permissions).

    Attributes:
        executable: Program that failed to start
        working_directory: Directory it was to be started in
    """

    def __init__(self, executable: str, working_directory: str, message: str = "") -> None:
        self.executable = executable
        self.working_directory = working_directory
        super().__init__(
            message
            or f"Failed to start '{executable}' in directory '{working_directory}'"
        )


class ProcessTimeoutError(ProcessRunnerError):
    """The process did not exit in time and a forced kill was attempted.

    Attributes:
        executable: Program that hung
        working_directory: Directory it was running in
    """

    def __init__(self, executable: str, working_directory: str) -> None:
        self.executable = executable
        self.working_directory = working_directory
        super().__init__(
            f"External process for file '{executable}' in directory "
            f"'{working_directory}' failed to complete within the specified timeout"
        )


class RunError(ProcessRunnerError):
    """Unexpected failure during start, wait or cleanup.

    The original exception is available as ``__cause__``.
    """
    pass
