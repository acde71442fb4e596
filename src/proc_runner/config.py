"""proc-runner environment configuration.

Environment variables:
    PROC_RUNNER_JOIN_TIMEOUT: Grace period (seconds) for each stream reader
        to finish after the child exits
        - default 2.0, clamped to 0.1-60

    PROC_RUNNER_EXIT_TIMEOUT: How long (seconds) to wait for the child to exit
        - unset/empty/invalid/<= 0 = wait indefinitely (default)

    PROC_RUNNER_KILL_TIMEOUT: How long (seconds) to wait for a killed child
        to be reaped
        - default 1.0, clamped to 0.1-30

    PROC_RUNNER_ENCODING: Encoding of the child's output
        - default utf-8

    PROC_RUNNER_LOG_DEBUG: Debug logging
        - true/1/yes/on = log at DEBUG into a temp file
        - false/0/no/off = log to stderr (default)
"""

from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

__all__ = ["Config", "load_config", "get_config", "reload_config"]

DEFAULT_JOIN_TIMEOUT = 2.0
DEFAULT_KILL_TIMEOUT = 1.0
DEFAULT_ENCODING = "utf-8"


def _parse_bool(value: str | None, default: bool = False) -> bool:
    """Parse a boolean environment variable."""
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes", "on")


def _parse_seconds(value: str | None, default: float, low: float, high: float) -> float:
    """Parse a duration, clamped to [low, high]."""
    if not value:
        return default
    try:
        seconds = float(value)
    except ValueError:
        return default
    return max(low, min(seconds, high))


def _parse_optional_seconds(value: str | None) -> float | None:
    """Parse a duration where missing or non-positive means "no limit"."""
    if not value:
        return None
    try:
        seconds = float(value)
    except ValueError:
        return None
    return seconds if seconds > 0 else None


@dataclass
class Config:
    """proc-runner configuration.

    Attributes:
        join_timeout: Reader grace period after exit (seconds)
        exit_timeout: Limit on waiting for the child to exit (None = none)
        kill_timeout: Wait for a killed child to be reaped (seconds)
        encoding: Child output encoding
        log_debug: Debug logging into a temp file
        log_file: Log file path (set when log_debug=True)
    """

    join_timeout: float = DEFAULT_JOIN_TIMEOUT
    exit_timeout: float | None = None
    kill_timeout: float = DEFAULT_KILL_TIMEOUT
    encoding: str = DEFAULT_ENCODING
    log_debug: bool = False
    log_file: str | None = None


def _generate_log_file_path() -> str:
    """Build a timestamped log file path under the temp dir."""
    log_dir = Path(tempfile.gettempdir()) / "proc-runner"
    log_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = log_dir / f"proc_runner_debug_{timestamp}.log"

    return str(log_file.resolve())


def load_config() -> Config:
    """Load configuration from the environment."""
    log_debug = _parse_bool(os.environ.get("PROC_RUNNER_LOG_DEBUG"), default=False)
    log_file = _generate_log_file_path() if log_debug else None

    return Config(
        join_timeout=_parse_seconds(
            os.environ.get("PROC_RUNNER_JOIN_TIMEOUT"), DEFAULT_JOIN_TIMEOUT, 0.1, 60.0
        ),
        exit_timeout=_parse_optional_seconds(os.environ.get("PROC_RUNNER_EXIT_TIMEOUT")),
        kill_timeout=_parse_seconds(
            os.environ.get("PROC_RUNNER_KILL_TIMEOUT"), DEFAULT_KILL_TIMEOUT, 0.1, 30.0
        ),
        encoding=os.environ.get("PROC_RUNNER_ENCODING", "").strip() or DEFAULT_ENCODING,
        log_debug=log_debug,
        log_file=log_file,
    )


# Global instance, loaded lazily
_config: Config | None = None


def get_config() -> Config:
    """Return the global configuration."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reload_config() -> Config:
    """Reload the global configuration (used by tests)."""
    global _config
    _config = load_config()
    return _config
