"""proc-runner command line entry point.

Runs one external command, echoing its stdout and stderr to the console,
and exits with the command's exit code.

Usage:
    python -m proc_runner [--cwd DIR] [--exit-timeout S] [--join-timeout S]
                          [--verbose] [--log-output] EXECUTABLE [ARGUMENTS...]
"""

from __future__ import annotations

import argparse
import logging
import shlex
import subprocess
import sys

from . import __version__
from .config import get_config
from .runtime import (
    IS_WINDOWS,
    LaunchError,
    ProcessRunner,
    ProcessRunnerError,
    ProcessTimeoutError,
    run_for_console,
)
from .utils import LogWriter

__all__ = ["build_parser", "configure_logging", "main"]

logger = logging.getLogger(__name__)

EXIT_LAUNCH_FAILED = 127
EXIT_TIMED_OUT = 124
EXIT_RUNNER_ERROR = 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="proc-runner",
        description="Run an external command and stream its output.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--cwd", default="", help="Working directory (default: current)")
    parser.add_argument(
        "--exit-timeout",
        type=float,
        default=None,
        help="Seconds to wait for the command to exit before killing it",
    )
    parser.add_argument(
        "--join-timeout",
        type=float,
        default=None,
        help="Grace period for draining output after the command exits",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Print runner debug messages")
    parser.add_argument(
        "--log-output",
        action="store_true",
        help="Also forward command output to the log",
    )
    parser.add_argument("executable", help="Program to run")
    parser.add_argument("arguments", nargs=argparse.REMAINDER, help="Arguments for the program")
    return parser


def configure_logging() -> None:
    """Configure handlers: stderr at INFO, or a debug file when log_debug is on."""
    config = get_config()
    formatter = logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")

    if config.log_debug and config.log_file:
        handler: logging.Handler = logging.FileHandler(config.log_file, encoding="utf-8")
        log_level = logging.DEBUG
    else:
        handler = logging.StreamHandler(sys.stderr)
        log_level = logging.INFO
    handler.setFormatter(formatter)

    # Third-party loggers stay at WARNING
    logging.basicConfig(level=logging.WARNING, handlers=[handler])
    logging.getLogger("proc_runner").setLevel(log_level)


def _join_arguments(arguments: list[str]) -> str:
    # Inverse of how ProcessRunner turns the string back into argv
    if IS_WINDOWS:
        return subprocess.list2cmdline(arguments)
    return shlex.join(arguments)


def _exit_status(exit_code: int) -> int:
    # Killed by a signal: report like a shell does
    if exit_code < 0:
        return 128 - exit_code
    return exit_code


def main(argv: list[str] | None = None) -> int:
    """Entry point. Returns the process exit status."""
    args = build_parser().parse_args(argv)
    configure_logging()

    kwargs = {}
    if args.exit_timeout is not None:
        kwargs["exit_timeout"] = args.exit_timeout if args.exit_timeout > 0 else None
    if args.join_timeout is not None:
        kwargs["join_timeout"] = args.join_timeout
    runner = ProcessRunner(**kwargs)

    if args.log_output:
        output_log = LogWriter(logger, logging.INFO, category=args.executable)
        runner.on_stdout_line.connect(output_log.subscriber())
        runner.on_stderr_line.connect(output_log.subscriber())

    try:
        exit_code = run_for_console(
            args.executable,
            _join_arguments(args.arguments),
            working_directory=args.cwd,
            verbose=args.verbose,
            runner=runner,
        )
    except LaunchError as e:
        print(f"proc-runner: {e}", file=sys.stderr)
        return EXIT_LAUNCH_FAILED
    except ProcessTimeoutError as e:
        print(f"proc-runner: {e}", file=sys.stderr)
        return EXIT_TIMED_OUT
    except ProcessRunnerError as e:
        print(f"proc-runner: {e}", file=sys.stderr)
        return EXIT_RUNNER_ERROR

    logger.debug(f"{args.executable} exited with code {exit_code}")
    return _exit_status(exit_code)


if __name__ == "__main__":
    sys.exit(main())
