"""Synchronous process runner with concurrent stream draining.

proc-runner runtime module v0.1.0

This module provides:
- A blocking ``run`` facade over a child process
- One reader thread per output stream so a full pipe never stalls the child
- Line events published to subscriber hooks as lines arrive
- Bounded join of readers and best-effort forced kill of a hung child
- Cleanup of the process handle and pipes on every exit path

Key design points:
- Each capture buffer has exactly one writer (its reader thread); the caller
  reads it only after both readers have been joined or gated off
- A reader that outlives its run (a grandchild holds the pipe) publishes
  nothing once the run has returned
- POSIX: start_new_session=True so a kill reaches the whole process group
- Windows: CREATE_NEW_PROCESS_GROUP, the argument string is passed verbatim
- Errors from the speculative kill and handle cleanup are logged, not raised
"""

from __future__ import annotations

import functools
import logging
import os
import shlex
import signal
import subprocess
import sys
import threading
from dataclasses import dataclass
from typing import IO, Any, Callable

import anyio

from ..config import get_config
from .errors import LaunchError, ProcessRunnerError, ProcessTimeoutError, RunError
from .events import EventHook, LineEvent, OutputStream

__all__ = [
    "ProcessRunner",
    "ProcessStartSpec",
    "run_static",
    "run_for_console",
]

logger = logging.getLogger(__name__)

# Platform detection
IS_WINDOWS = sys.platform == "win32"

# Marks "take the value from configuration" where None is itself meaningful
_FROM_CONFIG: Any = object()


class _ReaderGate:
    """Per-run switch that stops one reader of that run from publishing.

    Readers publish only while holding ``lock`` with ``closed`` False, so
    once ``close()`` returns no line of that run reaches a subscriber.
    """

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.closed = False

    def close(self) -> None:
        with self.lock:
            self.closed = True


@dataclass(frozen=True)
class ProcessStartSpec:
    """What to run.

    Attributes:
        working_directory: Directory the child is started in ("" = current)
        executable: Path or PATH-resolvable name of the program
        arguments: Pre-joined argument string
        capture_file: Optional file that receives a copy of every stdout line
    """

    working_directory: str = ""
    executable: str = ""
    arguments: str = ""
    capture_file: str | None = None


class ProcessRunner:
    """Runs one child process at a time and captures its output.

    ``run`` blocks until the child has exited and both stream readers have
    been joined. Lines are published on ``on_stdout_line`` and
    ``on_stderr_line`` from the reader threads; the runner's own capture
    subscribers are connected by default. ``on_debug`` receives progress
    messages from the calling thread.

    Example:
        runner = ProcessRunner(join_timeout=2.0)
        runner.on_stderr_line.connect(lambda event: print(event.text))
        spec = ProcessStartSpec(
            working_directory="/tmp",
            executable="echo",
            arguments="hello",
        )
        output = runner.run(spec)    # "hello\\n"
        runner.exit_code             # 0

    Attributes:
        join_timeout: Seconds each reader is joined with after the child exits
        exit_timeout: Seconds to wait for the child to exit (None = no limit)
        kill_timeout: Seconds to wait for the child to be reaped after a kill
        encoding: Text encoding of the child's output
        spec: Start spec of the current or last run
        exit_code: Exit code of the last completed run (None until then)
    """

    def __init__(
        self,
        *,
        join_timeout: float | None = None,
        exit_timeout: float | None = _FROM_CONFIG,
        kill_timeout: float | None = None,
        encoding: str | None = None,
    ) -> None:
        config = get_config()
        self.join_timeout = join_timeout if join_timeout is not None else config.join_timeout
        self.exit_timeout = exit_timeout if exit_timeout is not _FROM_CONFIG else config.exit_timeout
        self.kill_timeout = kill_timeout if kill_timeout is not None else config.kill_timeout
        self.encoding = encoding or config.encoding

        self.spec: ProcessStartSpec | None = None
        self.exit_code: int | None = None

        self.on_stdout_line: EventHook[LineEvent] = EventHook("stdout")
        self.on_stderr_line: EventHook[LineEvent] = EventHook("stderr")
        self.on_debug: EventHook[str] = EventHook("debug")

        self._stdout: list[str] = []
        self._stderr: list[str] = []
        self._process: subprocess.Popen[str] | None = None
        self._lock = threading.Lock()
        self._running = False

        self.on_stdout_line.connect(self._capture_stdout)
        self.on_stderr_line.connect(self._capture_stderr)

    @property
    def standard_output(self) -> str:
        """Captured stdout of the last run."""
        return "".join(self._stdout)

    @property
    def standard_error(self) -> str:
        """Captured stderr of the last run."""
        return "".join(self._stderr)

    @property
    def is_running(self) -> bool:
        return self._running

    def run_command(
        self,
        working_directory: str,
        executable: str,
        arguments: str = "",
        capture_file: str | None = None,
    ) -> str:
        """Shorthand for ``run(ProcessStartSpec(...))``."""
        return self.run(
            ProcessStartSpec(
                working_directory=working_directory,
                executable=executable,
                arguments=arguments,
                capture_file=capture_file,
            )
        )

    def run(self, spec: ProcessStartSpec) -> str:
        """Run the child to completion and return its captured stdout.

        Sequence:
        1. Build the command and start the child with stdout/stderr piped
        2. Start one reader thread per stream
        3. Wait for the child to exit (bounded by exit_timeout if set)
        4. Join each reader with join_timeout so the pipes are drained
        5. If the child still has not exited, kill it and fail
        6. Release the process handle and pipes

        Args:
            spec: What to run

        Returns:
            All stdout lines, each followed by "\\n"

        Raises:
            LaunchError: The OS could not start the program
            ProcessTimeoutError: The child did not exit and was killed
            RunError: Any other failure during the run
            ProcessRunnerError: The runner is already running a process
        """
        return self._invoke(spec, None)

    async def run_async(self, spec: ProcessStartSpec) -> str:
        """Run ``run`` on a worker thread without blocking the event loop.

        If the awaiting task is cancelled the child is killed and the
        cancellation propagates. The worker thread finishes its cleanup in
        the background; the runner stays busy until it has.
        """
        cancelled = threading.Event()
        try:
            return await anyio.to_thread.run_sync(
                functools.partial(self._invoke, spec, cancelled),
                abandon_on_cancel=True,
            )
        except anyio.get_cancelled_exc_class():
            logger.debug("run_async cancelled, killing child process")
            cancelled.set()
            with self._lock:
                process = self._process
                if process is not None:
                    self._kill_quietly(process)
            raise

    def abort(self) -> bool:
        """Forcibly kill the child of the in-flight run.

        Returns:
            True if the kill was delivered, False if the child had already
            exited or the kill failed

        Raises:
            ProcessRunnerError: No process is running
        """
        self._debug("external process abort requested")
        with self._lock:
            process = self._process
            if process is None:
                raise ProcessRunnerError("No external process is running")
            logger.debug(f"Killing external process ID {process.pid}")
            try:
                return self._kill(process)
            except OSError as e:
                logger.warning(f"Abort failed for pid={process.pid}: {e}")
                return False

    def _invoke(self, spec: ProcessStartSpec, cancelled: threading.Event | None) -> str:
        with self._lock:
            if self._running:
                raise ProcessRunnerError("ProcessRunner is already running a process")
            self._running = True
        try:
            return self._execute(spec, cancelled)
        finally:
            with self._lock:
                self._running = False

    def _execute(self, spec: ProcessStartSpec, cancelled: threading.Event | None) -> str:
        self.spec = spec
        self.exit_code = None
        self._stdout = []
        self._stderr = []

        self._debug(f"embedded process file name: {spec.executable}")
        self._debug(f"embedded process command line: {spec.arguments}")
        self._debug(f"embedded process working dir: {spec.working_directory}")

        process: subprocess.Popen[str] | None = None
        readers: dict[OutputStream, threading.Thread] = {}
        capture: IO[str] | None = None
        gates = {OutputStream.STDOUT: _ReaderGate(), OutputStream.STDERR: _ReaderGate()}

        try:
            command = self._build_command(spec)
            kwargs = self._build_popen_kwargs(spec)
            capture = self._open_capture_file(spec)

            self._debug("calling process start")
            try:
                process = subprocess.Popen(command, **kwargs)
            except OSError as e:
                raise LaunchError(
                    spec.executable,
                    spec.working_directory,
                    f"Failed to start '{spec.executable}' in directory "
                    f"'{spec.working_directory}': {e}",
                ) from e

            with self._lock:
                self._process = process
                if cancelled is not None and cancelled.is_set():
                    self._kill_quietly(process)

            logger.debug(
                f"Started subprocess pid={process.pid} "
                f"executable={spec.executable} cwd={spec.working_directory}"
            )

            readers[OutputStream.STDOUT] = threading.Thread(
                target=self._read_stream,
                args=(
                    process.stdout,
                    OutputStream.STDOUT,
                    self.on_stdout_line,
                    capture,
                    gates[OutputStream.STDOUT],
                ),
                name=f"proc-runner-stdout-{process.pid}",
                daemon=True,
            )
            readers[OutputStream.STDERR] = threading.Thread(
                target=self._read_stream,
                args=(
                    process.stderr,
                    OutputStream.STDERR,
                    self.on_stderr_line,
                    None,
                    gates[OutputStream.STDERR],
                ),
                name=f"proc-runner-stderr-{process.pid}",
                daemon=True,
            )

            self._debug("starting stream reader threads")
            for reader in readers.values():
                reader.start()
            # The stdout reader closes the capture file when it finishes
            capture = None

            self._debug("waiting for external process to exit")
            try:
                process.wait(timeout=self.exit_timeout)
            except subprocess.TimeoutExpired:
                logger.warning(
                    f"Subprocess pid={process.pid} did not exit within "
                    f"{self.exit_timeout}s"
                )

            self._debug("joining stream reader threads")
            self._join_readers(readers)

            if process.poll() is None:
                self._kill_quietly(process)
                raise ProcessTimeoutError(spec.executable, spec.working_directory)

            self.exit_code = process.returncode
            self._debug(f"process call exited with code {self.exit_code}")

        except ProcessRunnerError as e:
            logger.error(f"External process failed: {e}")
            raise
        except Exception as e:
            logger.error(f"Unexpected exception occurred during external process: {e}")
            raise RunError(f"External process '{spec.executable}' failed: {e}") from e
        finally:
            self._debug("closing and disposing process")
            self._cleanup(process, readers, capture, gates)

        return "".join(self._stdout)

    def _build_command(self, spec: ProcessStartSpec) -> str | list[str]:
        """Build the OS command from the spec.

        Windows takes a command line string, so the argument string is
        appended verbatim. POSIX takes an argv vector, so the argument string
        is split with shell word-splitting rules (no shell is started).
        """
        if IS_WINDOWS:
            command = subprocess.list2cmdline([spec.executable])
            if spec.arguments:
                command = f"{command} {spec.arguments}"
            return command
        return [spec.executable, *shlex.split(spec.arguments)]

    def _build_popen_kwargs(self, spec: ProcessStartSpec) -> dict[str, Any]:
        """Build platform-specific Popen kwargs.

        Args:
            spec: What to run

        Returns:
            Dict of kwargs for subprocess.Popen
        """
        kwargs: dict[str, Any] = {
            "cwd": spec.working_directory or None,
            "stdout": subprocess.PIPE,
            "stderr": subprocess.PIPE,
            "text": True,
            "encoding": self.encoding,
            "errors": "replace",
        }

        if IS_WINDOWS:
            kwargs["creationflags"] = subprocess.CREATE_NEW_PROCESS_GROUP
        else:
            kwargs["start_new_session"] = True

        return kwargs

    def _open_capture_file(self, spec: ProcessStartSpec) -> IO[str] | None:
        if not spec.capture_file:
            return None
        try:
            return open(spec.capture_file, "w", encoding="utf-8")
        except OSError as e:
            raise RunError(f"Cannot open capture file '{spec.capture_file}': {e}") from e

    def _read_stream(
        self,
        stream: IO[str],
        kind: OutputStream,
        hook: EventHook[LineEvent],
        capture: IO[str] | None,
        gate: _ReaderGate,
    ) -> None:
        """Publish each line of ``stream`` until end-of-stream or the run is over.

        A reader outliving its run (a grandchild still holds the pipe) drops
        further lines and closes the pipe itself.
        """
        try:
            for raw in iter(stream.readline, ""):
                text = raw[:-1] if raw.endswith("\n") else raw
                with gate.lock:
                    if gate.closed:
                        logger.debug(f"Dropping late {kind.value} line of a finished run")
                        break
                    if capture is not None:
                        try:
                            capture.write(text + "\n")
                        except OSError as e:
                            logger.warning(f"Capture file write failed, capture stopped: {e}")
                            capture.close()
                            capture = None
                    hook.emit(LineEvent(stream=kind, text=text))
        except (OSError, ValueError) as e:
            # Stream closed underneath the reader
            logger.debug(f"{kind.value} reader stopped: {e}")
        finally:
            if capture is not None:
                capture.close()
            if gate.closed:
                try:
                    stream.close()
                except (OSError, ValueError) as e:
                    logger.debug(f"Error closing {kind.value} pipe: {e}")

    def _join_readers(self, readers: dict[OutputStream, threading.Thread]) -> None:
        for kind, reader in readers.items():
            reader.join(self.join_timeout)
            if reader.is_alive():
                logger.warning(
                    f"{kind.value} reader still running after {self.join_timeout}s grace period"
                )

    def _capture_stdout(self, event: LineEvent) -> None:
        self._stdout.append(event.text + "\n")

    def _capture_stderr(self, event: LineEvent) -> None:
        self._stderr.append(event.text + "\n")

    def _debug(self, message: str) -> None:
        logger.debug(message)
        self.on_debug.emit(message)

    def _cleanup(
        self,
        process: subprocess.Popen[str] | None,
        readers: dict[OutputStream, threading.Thread],
        capture: IO[str] | None,
        gates: dict[OutputStream, _ReaderGate],
    ) -> None:
        """Release the process handle, pipes and capture file exactly once.

        Closes the reader gates last, so no line of this run is published
        after the run returns. Never raises: failures here must not mask the
        run's own result.
        """
        try:
            self._release(process, readers, capture)
        finally:
            for gate in gates.values():
                gate.close()

    def _release(
        self,
        process: subprocess.Popen[str] | None,
        readers: dict[OutputStream, threading.Thread],
        capture: IO[str] | None,
    ) -> None:
        with self._lock:
            self._process = None

        if capture is not None:
            try:
                capture.close()
            except OSError as e:
                logger.debug(f"Error closing capture file: {e}")

        if process is None:
            return

        if process.poll() is None:
            self._kill_quietly(process)
            try:
                process.wait(timeout=self.kill_timeout)
            except subprocess.TimeoutExpired:
                logger.warning(f"Subprocess did not exit after kill pid={process.pid}")

            # Readers were never joined against a dead child; give them their grace period now
            alive = {kind: reader for kind, reader in readers.items() if reader.is_alive()}
            if alive:
                self._join_readers(alive)

        for kind, stream in ((OutputStream.STDOUT, process.stdout), (OutputStream.STDERR, process.stderr)):
            if stream is None:
                continue
            reader = readers.get(kind)
            if reader is not None and reader.is_alive():
                # Closing a pipe another thread is blocked reading would block here
                logger.warning(f"Leaving {kind.value} pipe of pid={process.pid} for its reader to close")
                continue
            try:
                stream.close()
            except (OSError, ValueError) as e:
                logger.debug(f"Error closing {kind.value} pipe: {e}")

    def _kill(self, process: subprocess.Popen[str]) -> bool:
        """Kill the child (its process group on POSIX).

        Returns:
            False if the child had already exited
        """
        if process.poll() is not None:
            return False

        if IS_WINDOWS:
            process.kill()
            return True

        try:
            pgid = os.getpgid(process.pid)
            os.killpg(pgid, signal.SIGKILL)
            logger.debug(f"Sent SIGKILL to process group pgid={pgid}")
        except ProcessLookupError:
            return False
        except OSError as e:
            logger.debug(f"killpg failed, falling back to kill: {e}")
            process.kill()
        return True

    def _kill_quietly(self, process: subprocess.Popen[str]) -> None:
        try:
            self._kill(process)
        except Exception as e:
            logger.debug(f"Ignoring kill failure for pid={process.pid}: {e}")


def run_static(
    executable: str,
    arguments: str = "",
    on_stdout: Callable[[LineEvent], None] | None = None,
    on_stderr: Callable[[LineEvent], None] | None = None,
    on_debug: Callable[[str], None] | None = None,
    *,
    working_directory: str | None = None,
    runner: ProcessRunner | None = None,
) -> int:
    """Run a command with optional line callbacks and return its exit code.

    Args:
        executable: Program to run
        arguments: Pre-joined argument string
        on_stdout: Called with each stdout line event
        on_stderr: Called with each stderr line event
        on_debug: Called with each debug message
        working_directory: Directory to run in (None = current)
        runner: Runner to use (a new one by default)

    Returns:
        The child's exit code
    """
    runner = runner or ProcessRunner()
    if on_stdout is not None:
        runner.on_stdout_line.connect(on_stdout)
    if on_stderr is not None:
        runner.on_stderr_line.connect(on_stderr)
    if on_debug is not None:
        runner.on_debug.connect(on_debug)

    runner.run(
        ProcessStartSpec(
            working_directory=working_directory or "",
            executable=executable,
            arguments=arguments,
        )
    )
    # run() sets exit_code on every path that returns
    return runner.exit_code  # type: ignore[return-value]


def run_for_console(
    executable: str,
    arguments: str = "",
    *,
    working_directory: str | None = None,
    verbose: bool = True,
    runner: ProcessRunner | None = None,
) -> int:
    """Run a command echoing its output to the console.

    Stdout lines go to sys.stdout, stderr lines and (when verbose) debug
    messages go to sys.stderr.
    """

    def echo_stdout(event: LineEvent) -> None:
        print(event.text, file=sys.stdout, flush=True)

    def echo_stderr(message: Any) -> None:
        print(str(message), file=sys.stderr, flush=True)

    return run_static(
        executable,
        arguments,
        on_stdout=echo_stdout,
        on_stderr=echo_stderr,
        on_debug=echo_stderr if verbose else None,
        working_directory=working_directory,
        runner=runner,
    )
