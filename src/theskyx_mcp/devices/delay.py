"""Delay providers (injectable sleep for testing).

Captures block the calling thread while the camera exposes. The wait is
routed through a DelayProvider so tests can run the polling state machine
instantly and assert on exactly which delays were requested.

Example:
    class RecordingDelay:
        def __init__(self):
            self.requests = []

        def delay(self, seconds: int) -> int:
            self.requests.append(seconds)
            return seconds

    service = TheSkyService(driver, delay=RecordingDelay())
"""

from __future__ import annotations

import time
from typing import Protocol, runtime_checkable

__all__ = [
    "Clock",
    "DelayProvider",
    "InstantDelay",
    "SystemClock",
    "SystemDelay",
]


@runtime_checkable
class DelayProvider(Protocol):  # pragma: no cover
    """Protocol for suspending the caller for whole seconds."""

    def delay(self, seconds: int) -> int:
        """Block for ``seconds`` and return the seconds actually delayed.

        Args:
            seconds: Whole seconds, >= 0. Callers round before requesting.

        Returns:
            Seconds actually delayed. May differ from the request.

        Raises:
            Any exception on failure. Callers treat it as fatal.
        """
        ...


class Clock(Protocol):  # pragma: no cover
    """Protocol for a monotonic wall clock (injectable for testing)."""

    def monotonic(self) -> float:
        """Seconds from an arbitrary, never-decreasing reference point."""
        ...


class SystemClock:
    """Default clock using time.monotonic()."""

    def monotonic(self) -> float:
        return time.monotonic()


class SystemDelay:
    """Default delay provider using time.sleep()."""

    def delay(self, seconds: int) -> int:
        """Sleep for whole seconds.

        Raises:
            ValueError: If seconds is negative.
        """
        if seconds < 0:
            raise ValueError(f"Delay must be >= 0 seconds, got {seconds}")
        time.sleep(seconds)
        return seconds


class InstantDelay:
    """Delay provider that returns immediately.

    Keeps a virtual clock advanced by every request, so it can also be
    injected as the Clock of code that measures elapsed time. Useful for
    the digital twin and for tests.

    Attributes:
        requests: Every delay requested, in order.
    """

    def __init__(self) -> None:
        self.requests: list[int] = []
        self._now = 0.0

    def delay(self, seconds: int) -> int:
        self.requests.append(seconds)
        self._now += seconds
        return seconds

    def monotonic(self) -> float:
        return self._now

    @property
    def total_seconds(self) -> int:
        """Sum of all requested delays."""
        return sum(self.requests)
