"""Pytest configuration and fixtures."""

from __future__ import annotations

import os
import shlex
import subprocess
import sys
from pathlib import Path
from typing import Callable
from unittest import mock

import pytest

# Project root
PROJECT_ROOT = Path(__file__).parent.parent

# Add src to the Python path (development checkouts)
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from proc_runner.config import reload_config  # noqa: E402
from proc_runner.runtime import IS_WINDOWS, ProcessRunner, ProcessStartSpec  # noqa: E402

FIXTURES_DIR = PROJECT_ROOT / "tests" / "fixtures"
FAKE_CHILD = FIXTURES_DIR / "fake_child.py"


def join_arguments(arguments: list[str]) -> str:
    """Join argv the way ProcessRunner splits it on this platform."""
    if IS_WINDOWS:
        return subprocess.list2cmdline(arguments)
    return shlex.join(arguments)


@pytest.fixture(autouse=True)
def clean_config():
    """Run every test against the default configuration."""
    env = {k: v for k, v in os.environ.items() if not k.startswith("PROC_RUNNER_")}
    with mock.patch.dict(os.environ, env, clear=True):
        reload_config()
        yield
    reload_config()


@pytest.fixture
def temp_workspace(tmp_path: Path) -> Path:
    """Create temporary workspace directory."""
    workspace = tmp_path / "workspace"
    workspace.mkdir()
    return workspace


@pytest.fixture
def runner() -> ProcessRunner:
    """ProcessRunner with short timeouts for testing."""
    return ProcessRunner(join_timeout=2.0, exit_timeout=None, kill_timeout=1.0)


@pytest.fixture
def child_spec(temp_workspace: Path) -> Callable[..., ProcessStartSpec]:
    """Build a spec that runs tests/fixtures/fake_child.py with the given flags."""

    def make(*flags: str, capture_file: str | None = None) -> ProcessStartSpec:
        return ProcessStartSpec(
            working_directory=str(temp_workspace),
            executable=sys.executable,
            arguments=join_arguments([str(FAKE_CHILD), *flags]),
            capture_file=capture_file,
        )

    return make
