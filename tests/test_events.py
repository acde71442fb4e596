"""Line event and EventHook tests."""

from __future__ import annotations

import pydantic
import pytest

from proc_runner.runtime import EventHook, LineEvent, OutputStream


class TestLineEvent:
    """Test the LineEvent model."""

    def test_fields(self):
        event = LineEvent(stream=OutputStream.STDERR, text="boom")

        assert event.stream is OutputStream.STDERR
        assert event.text == "boom"
        assert event.timestamp > 0
        assert str(event) == "boom"

    def test_stream_from_string(self):
        event = LineEvent(stream="stdout", text="")

        assert event.stream is OutputStream.STDOUT

    def test_frozen(self):
        event = LineEvent(stream=OutputStream.STDOUT, text="a")

        with pytest.raises(pydantic.ValidationError):
            event.text = "b"


class TestEventHook:
    """Test subscriber lists."""

    def test_emit_in_connection_order(self):
        hook: EventHook[str] = EventHook("test")
        calls: list[str] = []
        hook.connect(lambda p: calls.append(f"first:{p}"))
        hook.connect(lambda p: calls.append(f"second:{p}"))

        hook.emit("x")

        assert calls == ["first:x", "second:x"]

    def test_connect_as_decorator(self):
        hook: EventHook[int] = EventHook()
        seen: list[int] = []

        @hook.connect
        def on_value(value: int) -> None:
            seen.append(value)

        hook.emit(3)

        assert seen == [3]
        assert on_value in hook

    def test_iadd(self):
        hook: EventHook[int] = EventHook()
        seen: list[int] = []
        hook += seen.append

        hook.emit(1)

        assert seen == [1]
        assert len(hook) == 1

    def test_disconnect(self):
        hook: EventHook[int] = EventHook()
        seen: list[int] = []
        hook.connect(seen.append)

        assert hook.disconnect(seen.append) is True
        assert hook.disconnect(seen.append) is False
        hook.emit(1)

        assert seen == []

    def test_clear(self):
        hook: EventHook[int] = EventHook()
        hook.connect(print)
        hook.clear()

        assert len(hook) == 0

    def test_failing_subscriber_is_logged_and_skipped(self, caplog: pytest.LogCaptureFixture):
        hook: EventHook[str] = EventHook("lines")
        seen: list[str] = []

        def explode(payload: str) -> None:
            raise ValueError("bad subscriber")

        hook.connect(explode)
        hook.connect(seen.append)

        hook.emit("line")

        assert seen == ["line"]
        assert "hook 'lines' failed" in caplog.text
