"""Tests for devices/delay.py."""

from __future__ import annotations

import pytest

from theskyx_mcp.devices import delay as delay_module
from theskyx_mcp.devices.delay import InstantDelay, SystemClock, SystemDelay


class TestSystemDelay:
    def test_sleeps_requested_seconds(self, monkeypatch):
        slept: list[float] = []
        monkeypatch.setattr(delay_module.time, "sleep", slept.append)

        assert SystemDelay().delay(3) == 3
        assert slept == [3]

    def test_zero_is_allowed(self, monkeypatch):
        monkeypatch.setattr(delay_module.time, "sleep", lambda s: None)
        assert SystemDelay().delay(0) == 0

    def test_negative_rejected(self, monkeypatch):
        slept: list[float] = []
        monkeypatch.setattr(delay_module.time, "sleep", slept.append)

        with pytest.raises(ValueError, match=">= 0"):
            SystemDelay().delay(-1)
        assert slept == []


class TestInstantDelay:
    def test_records_and_advances_virtual_clock(self):
        """Verifies InstantDelay doubles as a virtual clock.

        Arrangement:
        1. Fresh InstantDelay at virtual time zero.

        Action:
        Requests delays of 21 and 2 seconds.

        Assertion Strategy:
        Validates requests are recorded, each call returns its request,
        and monotonic() advanced by the sum.

        Testing Principle:
        Code measuring elapsed time sees the delays it asked for
        without any real waiting.
        """
        delay = InstantDelay()

        assert delay.delay(21) == 21
        assert delay.delay(2) == 2

        assert delay.requests == [21, 2]
        assert delay.monotonic() == 23.0
        assert delay.total_seconds == 23

    def test_starts_empty(self):
        delay = InstantDelay()
        assert delay.requests == []
        assert delay.total_seconds == 0


def test_system_clock_is_monotonic():
    clock = SystemClock()
    first = clock.monotonic()
    assert clock.monotonic() >= first
