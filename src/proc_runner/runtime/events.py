"""Line events and subscriber lists.

proc-runner runtime module v0.1.0

Each output line read from the child is published as a ``LineEvent`` to the
subscribers of an ``EventHook``. Subscribers run synchronously on the thread
that emits (the stream's reader thread), so they must not block.
"""

from __future__ import annotations

import logging
import threading
import time
from enum import Enum
from typing import Callable, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field

__all__ = [
    "OutputStream",
    "LineEvent",
    "EventHook",
]

logger = logging.getLogger(__name__)

T = TypeVar("T")


class OutputStream(str, Enum):
    """Which child stream a line came from."""

    STDOUT = "stdout"
    STDERR = "stderr"


class LineEvent(BaseModel):
    """One line of child output.

    Attributes:
        stream: Originating stream
        text: Line content without the line terminator
        timestamp: Unix timestamp (seconds) when the line was read
    """

    model_config = ConfigDict(frozen=True)

    stream: OutputStream
    text: str
    timestamp: float = Field(default_factory=time.time)

    def __str__(self) -> str:
        return self.text


class EventHook(Generic[T]):
    """Ordered list of callbacks invoked with a single payload.

    Example:
        hook: EventHook[LineEvent] = EventHook("stdout")
        hook.connect(lambda event: print(event.text))
        hook.emit(LineEvent(stream=OutputStream.STDOUT, text="hello"))
    """

    def __init__(self, name: str = "") -> None:
        self.name = name
        self._lock = threading.Lock()
        self._subscribers: list[Callable[[T], None]] = []

    def connect(self, callback: Callable[[T], None]) -> Callable[[T], None]:
        """Add a subscriber. Returns the callback so it can be used as a decorator."""
        with self._lock:
            self._subscribers.append(callback)
        return callback

    def disconnect(self, callback: Callable[[T], None]) -> bool:
        """Remove a subscriber. Returns False if it was not connected."""
        with self._lock:
            try:
                self._subscribers.remove(callback)
            except ValueError:
                return False
        return True

    def clear(self) -> None:
        with self._lock:
            self._subscribers.clear()

    def __len__(self) -> int:
        return len(self._subscribers)

    def __contains__(self, callback: object) -> bool:
        return callback in self._subscribers

    def __iadd__(self, callback: Callable[[T], None]) -> "EventHook[T]":
        self.connect(callback)
        return self

    def emit(self, payload: T) -> None:
        """Invoke every subscriber in connection order.

        A subscriber that raises is logged and skipped; the remaining
        subscribers still receive the payload.
        """
        with self._lock:
            subscribers = list(self._subscribers)

        for callback in subscribers:
            try:
                callback(payload)
            except Exception:
                logger.exception(f"Subscriber {callback!r} of hook '{self.name}' failed")
