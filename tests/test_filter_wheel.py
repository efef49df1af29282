"""Tests for devices/filter_wheel.py - presence probe and filter names."""

from __future__ import annotations

import pytest

from tests.helpers import RecordingChannel
from theskyx_mcp.devices.filter_wheel import FilterWheelProbe, clean_filter_names
from theskyx_mcp.drivers.types import FilterWheelConnectError, SkyXProtocolError


class TestHasFilterWheel:
    def test_already_connected(self):
        """Verifies a connected wheel is reported without probing.

        Arrangement:
        1. Channel reports the wheel connected.

        Action:
        Calls has_filter_wheel().

        Assertion Strategy:
        Validates True with no connect or disconnect call.

        Testing Principle:
        The probe only changes wheel state when it has to.
        """
        channel = RecordingChannel(wheel_connected=True)

        assert FilterWheelProbe(channel).has_filter_wheel() is True
        assert channel.names() == ["filter_wheel_is_connected"]

    def test_not_connected_but_connectable(self):
        channel = RecordingChannel(wheel_connected=False)

        assert FilterWheelProbe(channel).has_filter_wheel() is True
        assert channel.names() == [
            "filter_wheel_is_connected",
            "filter_wheel_connect",
            "filter_wheel_disconnect",
        ]

    def test_disconnect_failure_ignored(self):
        channel = RecordingChannel(wheel_connected=False)
        channel.failures["filter_wheel_disconnect"] = OSError("gone")

        assert FilterWheelProbe(channel).has_filter_wheel() is True
        assert channel.count("filter_wheel_disconnect") == 1

    @pytest.mark.parametrize(
        "error",
        [FilterWheelConnectError("code 1"), OSError("refused"), RuntimeError("x")],
    )
    def test_connect_failure_means_absent(self, error):
        channel = RecordingChannel(wheel_connected=False)
        channel.failures["filter_wheel_connect"] = error

        assert FilterWheelProbe(channel).has_filter_wheel() is False
        assert channel.count("filter_wheel_disconnect") == 0

    def test_connected_query_failure_propagates(self):
        channel = RecordingChannel()
        channel.failures["filter_wheel_is_connected"] = SkyXProtocolError("garbled")

        with pytest.raises(SkyXProtocolError):
            FilterWheelProbe(channel).has_filter_wheel()
        assert channel.count("filter_wheel_connect") == 0

    def test_not_cached(self):
        channel = RecordingChannel(wheel_connected=True)
        probe = FilterWheelProbe(channel)

        probe.has_filter_wheel()
        probe.has_filter_wheel()

        assert channel.count("filter_wheel_is_connected") == 2


class TestFilterNames:
    def test_stops_at_first_blank(self):
        channel = RecordingChannel(
            raw_filter_names=["Red", " Green ", "BLUE", "Luminance", "Ha", "", "", "Extra"]
        )
        probe = FilterWheelProbe(channel)

        assert probe.filter_names() == ["red", "green", "blue", "luminance", "ha"]
        assert probe.number_of_filters() == 5

    def test_whitespace_only_name_is_blank(self):
        assert clean_filter_names(["L", "   ", "R"]) == ["l"]

    def test_empty_list(self):
        channel = RecordingChannel(raw_filter_names=[])
        assert FilterWheelProbe(channel).number_of_filters() == 0

    def test_channel_failure_propagates(self):
        channel = RecordingChannel()
        channel.failures["filter_names"] = OSError("timed out")

        with pytest.raises(OSError):
            FilterWheelProbe(channel).filter_names()
