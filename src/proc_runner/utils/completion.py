"""Completion time estimation by linear extrapolation."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Callable

__all__ = ["CompletionEstimator"]


class CompletionEstimator:
    """Estimates when a batch of items will finish.

    The average time per finished item so far is extrapolated over the
    remaining items.

    Example:
        estimator = CompletionEstimator()
        estimator.start(total_items=30)
        for index, item in enumerate(items):
            process(item)
            print(estimator.estimate_completion_time(index))
    """

    def __init__(self, clock: Callable[[], datetime] = datetime.now) -> None:
        self._clock = clock
        self._start_time: datetime | None = None
        self._total_items = 0

    @property
    def total_items(self) -> int:
        return self._total_items

    def start(self, total_items: int) -> None:
        self._start_time = self._clock()
        self._total_items = total_items

    def estimate_remaining(self, current_index: int) -> timedelta:
        """Estimated time until all items are done.

        Args:
            current_index: Zero-based index of the item just finished

        Raises:
            ValueError: current_index is negative
            RuntimeError: start() was not called
        """
        if current_index < 0:
            raise ValueError("Current item index must be at least 0")
        if self._start_time is None:
            raise RuntimeError("CompletionEstimator.start() has not been called")

        done = current_index + 1
        elapsed = (self._clock() - self._start_time).total_seconds()
        avg_item_seconds = elapsed / done
        return timedelta(seconds=avg_item_seconds * (self._total_items - done))

    def estimate_completion_time(self, current_index: int) -> datetime:
        return self._clock() + self.estimate_remaining(current_index)
