"""
Clock sources for the vesting engine.

The engine never reads wall time directly; it is handed a ``time_provider``
callable returning integer seconds. ``SystemClock`` wraps ``time.time`` and
``ManualClock`` is advanced explicitly by tests and by the CLI ``--at`` option.
"""

from __future__ import annotations

import time
from typing import Callable

TimeProvider = Callable[[], int]


class SystemClock:
    def now(self) -> int:
        return int(time.time())

    __call__ = now


class ManualClock:
    """Deterministic clock that only moves forward when told to."""

    def __init__(self, start_time: int):
        self.current_time = int(start_time)

    def now(self) -> int:
        return self.current_time

    __call__ = now

    def advance(self, seconds: int) -> int:
        if seconds < 0:
            raise ValueError("Clock cannot move backwards")
        self.current_time += int(seconds)
        return self.current_time

    def set(self, timestamp: int) -> int:
        if timestamp < self.current_time:
            raise ValueError(
                f"Clock cannot move backwards ({timestamp} < {self.current_time})"
            )
        self.current_time = int(timestamp)
        return self.current_time


def read_clock(time_provider: TimeProvider) -> int:
    """Call ``time_provider`` and coerce the result to an int timestamp."""
    timestamp = time_provider()
    try:
        return int(timestamp)
    except (TypeError, ValueError) as exc:
        raise ValueError("time_provider must return an integer timestamp") from exc
