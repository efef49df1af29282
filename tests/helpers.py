"""Test doubles and helper functions for theskyx-mcp.

- RecordingChannel: CommandChannel that records every call in order and
  answers from scripted queues
- ScriptedDelay: DelayProvider that records requests, returns scripted
  "actual" durations and can be told to fail
- FixedGenerator: random source returning preset draws
- assert_implements_protocol: isinstance() check with a useful message

Example:
    from tests.helpers import RecordingChannel, assert_implements_protocol
    from theskyx_mcp.drivers.types import CommandChannel

    def test_recording_channel_is_a_channel():
        assert_implements_protocol(RecordingChannel(), CommandChannel)
"""

from __future__ import annotations

from collections import deque
from collections.abc import Iterable
from typing import Any


class RecordingChannel:
    """CommandChannel double recording calls and replaying scripted answers.

    Attributes:
        calls: (method name, args) tuples in call order.
        done_replies: Answers for is_capture_done(); the last one repeats.
        adu_value: Answer for get_adu_value().
        wheel_connected: Answer for filter_wheel_is_connected().
        raw_filter_names: Answer for filter_names().
        failures: Method name -> exception raised when that method is called.
    """

    def __init__(
        self,
        done_replies: Iterable[bool] = (True,),
        adu_value: int = 30_000,
        wheel_connected: bool = False,
        raw_filter_names: Iterable[str] = (),
        temperature: float = -10.0,
        download_seconds: float = 3.0,
    ) -> None:
        self.calls: list[tuple[str, tuple[Any, ...]]] = []
        self.done_replies: deque[bool] = deque(done_replies)
        self.adu_value = adu_value
        self.wheel_connected = wheel_connected
        self.raw_filter_names = list(raw_filter_names)
        self.temperature = temperature
        self.download_seconds = download_seconds
        self.failures: dict[str, Exception] = {}

    # Bookkeeping

    def _record(self, name: str, *args: Any) -> None:
        self.calls.append((name, args))
        if name in self.failures:
            raise self.failures[name]

    def names(self) -> list[str]:
        """Method names called, in order."""
        return [name for name, _ in self.calls]

    def count(self, name: str) -> int:
        return self.names().count(name)

    # CommandChannel

    def connect(self, host: str, port: int) -> None:
        self._record("connect", host, port)

    def close(self) -> None:
        self._record("close")

    def connect_camera(self) -> None:
        self._record("connect_camera")

    def start_cooling(self, target_celsius: float) -> None:
        self._record("start_cooling", target_celsius)

    def stop_cooling(self) -> None:
        self._record("stop_cooling")

    def get_camera_temperature(self) -> float:
        self._record("get_camera_temperature")
        return self.temperature

    def measure_download_time(self, binning: int) -> float:
        self._record("measure_download_time", binning)
        return self.download_seconds

    def start_dark_frame_capture(
        self, binning: int, seconds: float, download_seconds: float
    ) -> None:
        self._record("start_dark_frame_capture", binning, seconds, download_seconds)

    def start_bias_frame_capture(self, binning: int, download_seconds: float) -> None:
        self._record("start_bias_frame_capture", binning, download_seconds)

    def start_flat_frame_capture(
        self,
        binning: int,
        seconds: float,
        filter_slot: int,
        download_seconds: float,
        save_image: bool,
    ) -> None:
        self._record(
            "start_flat_frame_capture",
            binning,
            seconds,
            filter_slot,
            download_seconds,
            save_image,
        )

    def is_capture_done(self) -> bool:
        self._record("is_capture_done")
        if len(self.done_replies) > 1:
            return self.done_replies.popleft()
        return self.done_replies[0]

    def get_adu_value(self) -> int:
        self._record("get_adu_value")
        return self.adu_value

    def filter_wheel_is_connected(self) -> bool:
        self._record("filter_wheel_is_connected")
        return self.wheel_connected

    def filter_wheel_connect(self) -> None:
        self._record("filter_wheel_connect")

    def filter_wheel_disconnect(self) -> None:
        self._record("filter_wheel_disconnect")

    def filter_names(self) -> list[str]:
        self._record("filter_names")
        return list(self.raw_filter_names)


class ScriptedDelay:
    """DelayProvider double.

    Records each request. Returns ``actual`` when set (to check that the
    orchestrator ignores the reported duration), otherwise the request.
    Raises ``fail_with`` on the call numbered ``fail_on`` (1-based).
    """

    def __init__(
        self,
        actual: int | None = None,
        fail_on: int | None = None,
        fail_with: Exception | None = None,
    ) -> None:
        self.requests: list[int] = []
        self.actual = actual
        self.fail_on = fail_on
        self.fail_with = fail_with or RuntimeError("delay failed")
        self._now = 0.0

    def delay(self, seconds: int) -> int:
        self.requests.append(seconds)
        if self.fail_on is not None and len(self.requests) == self.fail_on:
            raise self.fail_with
        self._now += seconds
        return seconds if self.actual is None else self.actual

    def monotonic(self) -> float:
        return self._now


class FixedGenerator:
    """Stand-in for numpy.random.Generator returning preset draws."""

    def __init__(self, draws: Iterable[float]) -> None:
        self._draws = iter(draws)

    def random(self) -> float:
        return next(self._draws)


def assert_implements_protocol(instance: object, protocol: type[Any]) -> None:
    """Assert that an instance satisfies a @runtime_checkable Protocol.

    On failure the message lists the protocol members the instance lacks,
    which isinstance() alone does not tell you.

    Raises:
        AssertionError: If instance doesn't implement protocol.
    """
    if isinstance(instance, protocol):
        return

    object_attrs = set(dir(object))
    protocol_members = {
        attr
        for attr in set(dir(protocol)) - object_attrs
        if not attr.startswith("_")
    }
    missing = sorted(m for m in protocol_members if not hasattr(instance, m))
    missing_str = ", ".join(missing) if missing else "unknown"
    raise AssertionError(
        f"{type(instance).__name__} does not implement {protocol.__name__}. "
        f"Missing: {missing_str}"
    )
