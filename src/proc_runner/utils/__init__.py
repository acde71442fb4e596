"""Helpers used alongside the process runner."""

from .completion import CompletionEstimator
from .log_writer import LogWriter

__all__ = [
    "CompletionEstimator",
    "LogWriter",
]
