"""Text stream that forwards to a logger.

Lets code that writes to a file-like object (``print(..., file=...)``,
``contextlib.redirect_stdout``) or a runner line hook end up in ``logging``.
"""

from __future__ import annotations

import io
import logging
import threading
from typing import Callable

from ..runtime.events import LineEvent

__all__ = ["LogWriter"]


class LogWriter(io.TextIOBase):
    """Write text to a logger, one record per complete line.

    A partial line is held until its newline arrives or ``flush()`` is called.

    Attributes:
        logger: Target logger
        level: Level of every record
        category: Optional prefix, rendered as "[category] line"
    """

    def __init__(
        self,
        logger: logging.Logger | str,
        level: int = logging.DEBUG,
        category: str | None = None,
    ) -> None:
        super().__init__()
        self.logger = logging.getLogger(logger) if isinstance(logger, str) else logger
        self.level = level
        self.category = category
        self._pending = ""
        self._lock = threading.Lock()

    def writable(self) -> bool:
        return True

    def write(self, text: str) -> int:
        if self.closed:
            raise ValueError("I/O operation on closed LogWriter")
        with self._lock:
            self._pending += text
            *lines, self._pending = self._pending.split("\n")
        for line in lines:
            self._emit(line.rstrip("\r"))
        return len(text)

    def flush(self) -> None:
        with self._lock:
            pending, self._pending = self._pending, ""
        if pending:
            self._emit(pending)

    def close(self) -> None:
        if not self.closed:
            self.flush()
        super().close()

    def subscriber(self) -> Callable[[LineEvent], None]:
        """Callback for a runner line hook that logs each line."""

        def forward(event: LineEvent) -> None:
            self._emit(event.text)

        return forward

    def _emit(self, line: str) -> None:
        if self.category:
            line = f"[{self.category}] {line}"
        self.logger.log(self.level, line)
