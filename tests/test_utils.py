"""CompletionEstimator and LogWriter tests."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

import pytest

from proc_runner.runtime import LineEvent, OutputStream
from proc_runner.utils import CompletionEstimator, LogWriter


class FakeClock:
    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class TestCompletionEstimator:
    """Test linear completion estimates."""

    def test_linear_extrapolation(self):
        clock = FakeClock(datetime(2024, 1, 1, 12, 0, 0))
        estimator = CompletionEstimator(clock=clock)
        estimator.start(total_items=10)

        clock.advance(20)
        # 2 items in 20s -> 10s each, 8 left
        assert estimator.estimate_remaining(1) == timedelta(seconds=80)
        assert estimator.estimate_completion_time(1) == datetime(2024, 1, 1, 12, 1, 40)

    def test_last_item_has_nothing_remaining(self):
        clock = FakeClock(datetime(2024, 1, 1))
        estimator = CompletionEstimator(clock=clock)
        estimator.start(total_items=3)
        clock.advance(9)

        assert estimator.estimate_remaining(2) == timedelta(0)
        assert estimator.total_items == 3

    def test_negative_index(self):
        estimator = CompletionEstimator()
        estimator.start(5)

        with pytest.raises(ValueError):
            estimator.estimate_remaining(-1)

    def test_not_started(self):
        with pytest.raises(RuntimeError):
            CompletionEstimator().estimate_remaining(0)


class TestLogWriter:
    """Test forwarding text to a logger."""

    def test_one_record_per_line(self, caplog: pytest.LogCaptureFixture):
        caplog.set_level(logging.DEBUG, logger="test.writer")
        writer = LogWriter("test.writer")

        writer.write("first\nsec")
        writer.write("ond\r\nthird")

        assert [r.getMessage() for r in caplog.records] == ["first", "second"]

        writer.flush()
        assert caplog.records[-1].getMessage() == "third"

    def test_level_and_category(self, caplog: pytest.LogCaptureFixture):
        caplog.set_level(logging.INFO, logger="test.writer")
        writer = LogWriter(logging.getLogger("test.writer"), logging.WARNING, category="make")

        print("building", file=writer)

        record = caplog.records[-1]
        assert record.levelno == logging.WARNING
        assert record.getMessage() == "[make] building"

    def test_close_flushes_and_rejects_writes(self, caplog: pytest.LogCaptureFixture):
        caplog.set_level(logging.DEBUG, logger="test.writer")
        writer = LogWriter("test.writer")
        writer.write("partial")

        writer.close()

        assert caplog.records[-1].getMessage() == "partial"
        with pytest.raises(ValueError):
            writer.write("more")

    def test_subscriber(self, caplog: pytest.LogCaptureFixture):
        caplog.set_level(logging.DEBUG, logger="test.writer")
        forward = LogWriter("test.writer", category="stderr").subscriber()

        forward(LineEvent(stream=OutputStream.STDERR, text="warning: x"))

        assert caplog.records[-1].getMessage() == "[stderr] warning: x"
