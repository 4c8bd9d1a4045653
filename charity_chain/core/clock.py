"""
Ledger Clocks

Deadlines are absolute unix timestamps, so the ledger needs a notion of
"now". Production code reads the wall clock; tests and scripted runs use a
clock that only moves when told to.
"""

import time


class SystemClock:
    """Wall-clock time in unix seconds."""

    def now(self) -> float:
        return time.time()


class ManualClock:
    """
    A clock that advances only when asked.

    Useful for testing deadlines without sleeping.
    """

    def __init__(self, start: float = None):
        self._now = float(start) if start is not None else time.time()

    def now(self) -> float:
        return self._now

    def advance(self, seconds: float) -> float:
        """Move time forward and return the new time."""
        if seconds < 0:
            raise ValueError("Cannot move the clock backwards")
        self._now += seconds
        return self._now

    def set(self, timestamp: float) -> None:
        if timestamp < self._now:
            raise ValueError("Cannot move the clock backwards")
        self._now = float(timestamp)
