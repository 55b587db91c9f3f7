"""Millisecond clocks used by the timer and power-up managers."""

from __future__ import annotations

import time
from typing import Callable

Clock = Callable[[], float]


def system_clock() -> float:
    """Return wall-clock time in milliseconds since the epoch."""
    return time.time() * 1000.0


class ManualClock:
    """A clock that only moves when told to. Used by tests and simulations.

    >>> clock = ManualClock(start=1000)
    >>> clock.advance(250)
    1250.0
    >>> clock()
    1250.0
    """

    def __init__(self, start: float = 0.0) -> None:
        self._now = float(start)

    def __call__(self) -> float:
        return self._now

    def advance(self, ms: float) -> float:
        if ms < 0:
            raise ValueError("ManualClock cannot move backwards")
        self._now += ms
        return self._now

    def set(self, now: float) -> None:
        self._now = float(now)
