"""Tests for devices/service.py - TheSkyService."""

from __future__ import annotations

import io
import json
import logging

import pytest

from tests.helpers import RecordingChannel, ScriptedDelay
from theskyx_mcp.devices import (
    CaptureTimeoutError,
    ConnectionNotOpenError,
    InvalidExposureError,
    TheSkyService,
)
from theskyx_mcp.drivers.types import SkyXCommandError
from theskyx_mcp.observability import CaptureStats, configure_logging


@pytest.fixture
def service(channel, delay) -> TheSkyService:
    return TheSkyService(channel, delay, clock=delay)


@pytest.fixture
def open_service(service, channel) -> TheSkyService:
    service.connect("observatory.local", 3040)
    channel.calls.clear()
    return service


class TestConnection:
    def test_connect_opens_and_connects_camera(self, service, channel):
        service.connect("observatory.local", 3040)

        assert service.is_open
        assert channel.calls == [
            ("connect", ("observatory.local", 3040)),
            ("connect_camera", ()),
        ]

    def test_connect_when_open_is_noop(self, open_service, channel):
        open_service.connect("other", 1234)

        assert channel.calls == []
        assert open_service.is_open

    def test_connect_failure_leaves_closed(self, service, channel):
        channel.failures["connect"] = ConnectionRefusedError("refused")

        with pytest.raises(ConnectionRefusedError):
            service.connect("nowhere", 3040)
        assert not service.is_open
        assert channel.count("connect_camera") == 0

    def test_camera_failure_keeps_connection_open(self, service, channel):
        channel.failures["connect_camera"] = SkyXCommandError("no camera")

        with pytest.raises(SkyXCommandError):
            service.connect("observatory.local", 3040)
        assert service.is_open

    def test_close(self, open_service, channel):
        open_service.close()

        assert not open_service.is_open
        assert channel.names() == ["close"]

    def test_close_failure_still_closes_and_logs_once(self, open_service, channel):
        """Verifies a failing channel close leaves the service closed.

        Arrangement:
        1. Open service whose channel raises OSError on close().
        2. JSON logging captured at error level.

        Action:
        Calls close().

        Assertion Strategy:
        Validates the OSError propagates, is_open is False afterwards and
        exactly one error line names the close operation.
        """
        buffer = io.StringIO()
        configure_logging(level=logging.ERROR, json_format=True, stream=buffer, force=True)
        channel.failures["close"] = OSError("socket already gone")

        with pytest.raises(OSError, match="socket already gone"):
            open_service.close()

        assert not open_service.is_open
        lines = [json.loads(line) for line in buffer.getvalue().splitlines()]
        assert len(lines) == 1
        assert lines[0]["operation"] == "close"
        assert lines[0]["error_type"] == "OSError"

    def test_close_when_not_open_is_noop(self, service, channel):
        service.close()
        assert channel.calls == []


class TestRequiresOpenConnection:
    @pytest.mark.parametrize(
        ("method", "args"),
        [
            ("connect_camera", ()),
            ("start_cooling", (-10.0,)),
            ("stop_cooling", ()),
            ("get_camera_temperature", ()),
            ("measure_download_time", (1,)),
            ("wait_for_camera_inactive", (1, 1)),
        ],
    )
    def test_raises_when_closed(self, service, channel, method, args):
        with pytest.raises(ConnectionNotOpenError, match="Connection not open"):
            getattr(service, method)(*args)
        assert channel.calls == []

    def test_captures_do_not_check_connection(self, service, channel):
        """Captures go straight to the channel, which enforces its own state."""
        service.capture_bias_frame(1, 1.0)
        assert channel.names() == ["start_bias_frame_capture", "is_capture_done"]


class TestCameraOperations:
    def test_cooling(self, open_service, channel):
        open_service.start_cooling(-15.0)
        open_service.stop_cooling()

        assert channel.calls == [("start_cooling", (-15.0,)), ("stop_cooling", ())]

    def test_temperature(self, open_service):
        assert open_service.get_camera_temperature() == -10.0

    def test_download_time(self, open_service, channel):
        assert open_service.measure_download_time(2) == 3.0
        assert channel.calls == [("measure_download_time", (2,))]

    def test_driver_error_propagates_and_is_logged(self, open_service, channel):
        buffer = io.StringIO()
        configure_logging(level=logging.ERROR, json_format=True, stream=buffer, force=True)
        channel.failures["start_cooling"] = SkyXCommandError("TheSkyX error: busy")

        with pytest.raises(SkyXCommandError):
            open_service.start_cooling(-10.0)

        lines = [json.loads(line) for line in buffer.getvalue().splitlines()]
        assert len(lines) == 1
        assert lines[0]["level"] == "ERROR"
        assert lines[0]["operation"] == "start_cooling"
        assert lines[0]["error_type"] == "SkyXCommandError"


class TestWaitForCameraInactive:
    def test_returns_when_idle(self, open_service, channel, delay):
        open_service.wait_for_camera_inactive(5, 1)

        assert channel.names() == ["connect_camera", "is_capture_done"]
        assert delay.requests == []

    def test_polls_until_idle(self, open_service, delay):
        channel = RecordingChannel(done_replies=[False, False, True])
        open_service.channel = channel

        open_service.wait_for_camera_inactive(5, 1)

        assert delay.requests == [5, 5]
        assert channel.count("is_capture_done") == 3

    def test_times_out_on_wall_clock(self, open_service, delay):
        channel = RecordingChannel(done_replies=[False])
        open_service.channel = channel

        with pytest.raises(CaptureTimeoutError, match="wait_for_camera_inactive"):
            open_service.wait_for_camera_inactive(10, 1)

        # 60 s timeout, checked after each 10 s delay
        assert delay.requests == [10] * 7


class TestFilterWheel:
    def test_has_filter_wheel(self, service, channel):
        channel.wheel_connected = True
        assert service.has_filter_wheel() is True

    def test_filter_names(self, service, channel):
        channel.raw_filter_names = ["Lum", "Red", "", "junk"]
        assert service.filter_names() == ["lum", "red"]
        assert service.number_of_filters() == 2


class TestCaptures:
    def test_dark_end_to_end(self, open_service, channel, delay):
        open_service.capture_dark_frame(1, 20.0, 5.0)

        assert channel.calls == [
            ("start_dark_frame_capture", (1, 20.0, 5.0)),
            ("is_capture_done", ()),
        ]
        assert delay.requests == [26]

    def test_flat_simulated_via_attributes(self, open_service, channel):
        open_service.simulate_flat_capture = True
        open_service.simulation_noise_fraction = 0.0

        adu = open_service.capture_and_measure_flat_frame(1.0, 2, 2, 1.0, True)

        assert adu == round(11678.0 - 293.09)
        assert channel.count("get_adu_value") == 1

    @pytest.mark.parametrize("exposure", [0, -1.0])
    def test_flat_non_positive_exposure(self, open_service, channel, exposure):
        with pytest.raises(InvalidExposureError):
            open_service.capture_and_measure_flat_frame(exposure, 1, 1, 1.0, True)
        assert channel.calls == []

    def test_stats_injected(self, channel):
        stats = CaptureStats()
        delay = ScriptedDelay()
        service = TheSkyService(channel, delay, stats=stats, clock=delay)

        service.capture_bias_frame(1, 1.0)

        assert stats.get_summary("bias").successful_captures == 1

    def test_constructor_simulation_settings(self, channel, delay):
        service = TheSkyService(
            channel, delay, simulate_flat_capture=True, simulation_noise_fraction=0.1
        )
        assert service.simulate_flat_capture is True
        assert service.simulation_noise_fraction == 0.1
