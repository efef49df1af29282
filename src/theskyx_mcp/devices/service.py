"""High-level TheSkyX service.

TheSkyService is what callers (the MCP tools, scripts) use to drive a
camera through TheSkyX. It keeps the open/closed connection state, guards
operations that need an open connection and delegates to:

- the command channel for camera and temperature operations
- CaptureOrchestrator for dark, bias and flat captures
- FilterWheelProbe for filter wheel presence and filter names

Example:
    from theskyx_mcp.devices import TheSkyService
    from theskyx_mcp.drivers import TheSkyXDriver

    service = TheSkyService(TheSkyXDriver())
    service.connect("observatory.local", 3040)
    service.start_cooling(-10.0)
    download = service.measure_download_time(binning=1)
    service.capture_dark_frame(1, 30.0, download)
    service.close()
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

import numpy as np

from theskyx_mcp.devices.capture import (
    DEFAULT_NOISE_FRACTION,
    CaptureOrchestrator,
    CaptureTimeoutError,
)
from theskyx_mcp.devices.delay import Clock, DelayProvider, SystemClock, SystemDelay
from theskyx_mcp.devices.filter_wheel import FilterWheelProbe
from theskyx_mcp.drivers.types import CommandChannel
from theskyx_mcp.observability import CaptureStats, get_logger

logger = get_logger(__name__)

#: Defaults for wait_for_camera_inactive().
DEFAULT_INACTIVE_POLL_SECONDS = 5
DEFAULT_INACTIVE_TIMEOUT_MINUTES = 10


class ConnectionNotOpenError(Exception):
    """Operation needs connect() to have succeeded first."""

    def __init__(self, operation: str):
        super().__init__(f"{operation}: Connection not open")
        self.operation = operation


@contextmanager
def _log_failure(operation: str) -> Iterator[None]:
    """Log an exception once at error level, then let it propagate."""
    try:
        yield
    except Exception as e:
        logger.error(
            "Operation failed",
            operation=operation,
            error=str(e),
            error_type=type(e).__name__,
        )
        raise


class TheSkyService:
    """Camera and filter wheel control through TheSkyX.

    Not thread-safe; one capture at a time. Simulation settings are
    instance attributes and take effect on the next flat capture.

    Attributes:
        simulate_flat_capture: Replace measured flat ADU with the model.
        simulation_noise_fraction: Noise band of the flat model.
    """

    def __init__(
        self,
        channel: CommandChannel,
        delay: DelayProvider | None = None,
        *,
        simulate_flat_capture: bool = False,
        simulation_noise_fraction: float = DEFAULT_NOISE_FRACTION,
        rng: np.random.Generator | None = None,
        stats: CaptureStats | None = None,
        clock: Clock | None = None,
    ) -> None:
        """Create a service around a command channel.

        Args:
            channel: TheSkyXDriver, DigitalTwinDriver or a test double.
            delay: Delay provider for capture waits. Defaults to SystemDelay.
            simulate_flat_capture: Override flat ADU with the model.
            simulation_noise_fraction: Noise band for the model.
            rng: Random source for the flat model.
            stats: Optional capture statistics collector.
            clock: Wall clock for wait_for_camera_inactive timeouts.
        """
        self._channel = channel
        self._delay = delay or SystemDelay()
        self._clock = clock or SystemClock()
        self._is_open = False
        self._orchestrator = CaptureOrchestrator(
            channel,
            self._delay,
            simulate_flat_capture=simulate_flat_capture,
            simulation_noise_fraction=simulation_noise_fraction,
            rng=rng,
            stats=stats,
            clock=self._clock,
        )
        self._filter_wheel = FilterWheelProbe(channel)

    def __repr__(self) -> str:
        return f"TheSkyService(channel={self._channel!r}, open={self._is_open})"

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def is_open(self) -> bool:
        return self._is_open

    @property
    def channel(self) -> CommandChannel:
        return self._channel

    @channel.setter
    def channel(self, channel: CommandChannel) -> None:
        """Swap the command channel (for tests). Connection state is kept."""
        self._channel = channel
        self._orchestrator.channel = channel
        self._filter_wheel.channel = channel

    @property
    def simulate_flat_capture(self) -> bool:
        return self._orchestrator.simulate_flat_capture

    @simulate_flat_capture.setter
    def simulate_flat_capture(self, value: bool) -> None:
        self._orchestrator.simulate_flat_capture = value

    @property
    def simulation_noise_fraction(self) -> float:
        return self._orchestrator.simulation_noise_fraction

    @simulation_noise_fraction.setter
    def simulation_noise_fraction(self, value: float) -> None:
        self._orchestrator.simulation_noise_fraction = value

    # -------------------------------------------------------------------------
    # Connection
    # -------------------------------------------------------------------------

    def connect(self, host: str, port: int) -> None:
        """Open the connection to TheSkyX and connect its camera.

        Does nothing if already open.

        Raises:
            SkyXError, OSError: From the channel. If connecting the camera
                fails the connection stays open.
        """
        if self._is_open:
            logger.warning("Already connected", host=host, port=port)
            return

        with _log_failure("connect"):
            self._channel.connect(host, port)
        self._is_open = True
        logger.info("Connected to TheSkyX", host=host, port=port)

        self.connect_camera()

    def close(self) -> None:
        """Close the connection. Does nothing if not open.

        The service counts as closed afterwards even when the channel
        raises; the failure is logged once and propagated.
        """
        if not self._is_open:
            logger.debug("Close requested but not open")
            return
        try:
            with _log_failure("close"):
                self._channel.close()
        finally:
            self._is_open = False
        logger.info("Disconnected from TheSkyX")

    # -------------------------------------------------------------------------
    # Camera
    # -------------------------------------------------------------------------

    def connect_camera(self) -> None:
        self._require_open("connect_camera")
        with _log_failure("connect_camera"):
            self._channel.connect_camera()

    def start_cooling(self, target_celsius: float) -> None:
        """Turn on the cooler and regulate to target_celsius."""
        self._require_open("start_cooling")
        logger.debug("Starting cooling", target_celsius=target_celsius)
        with _log_failure("start_cooling"):
            self._channel.start_cooling(target_celsius)

    def stop_cooling(self) -> None:
        self._require_open("stop_cooling")
        with _log_failure("stop_cooling"):
            self._channel.stop_cooling()

    def get_camera_temperature(self) -> float:
        self._require_open("get_camera_temperature")
        with _log_failure("get_camera_temperature"):
            return self._channel.get_camera_temperature()

    def measure_download_time(self, binning: int) -> float:
        """Measure how long one frame takes to download at this binning.

        Takes a short synchronous exposure, so the call blocks for a few
        seconds on real hardware.
        """
        self._require_open("measure_download_time")
        with _log_failure("measure_download_time"):
            return self._channel.measure_download_time(binning)

    def wait_for_camera_inactive(
        self,
        polling_interval_seconds: int = DEFAULT_INACTIVE_POLL_SECONDS,
        timeout_minutes: int = DEFAULT_INACTIVE_TIMEOUT_MINUTES,
    ) -> None:
        """Block until the camera has no exposure in progress.

        Useful after a client was interrupted mid-capture. Reconnects the
        camera, then polls its status every polling_interval_seconds.
        Unlike captures, the timeout is measured on the wall clock.

        Raises:
            ConnectionNotOpenError: Not connected.
            CaptureTimeoutError: Camera still busy after timeout_minutes.
        """
        operation = "wait_for_camera_inactive"
        self._require_open(operation)
        with _log_failure(operation):
            self._channel.connect_camera()
            timeout_seconds = timeout_minutes * 60.0
            started = self._clock.monotonic()
            while not self._channel.is_capture_done():
                logger.debug(
                    "Camera busy, waiting", delay_seconds=polling_interval_seconds
                )
                self._delay.delay(polling_interval_seconds)
                waited = self._clock.monotonic() - started
                if waited > timeout_seconds:
                    raise CaptureTimeoutError(operation, waited, timeout_seconds)
        logger.debug("Camera inactive")

    # -------------------------------------------------------------------------
    # Filter wheel
    # -------------------------------------------------------------------------

    def has_filter_wheel(self) -> bool:
        with _log_failure("has_filter_wheel"):
            return self._filter_wheel.has_filter_wheel()

    def number_of_filters(self) -> int:
        """Count of filters up to the first blank name."""
        with _log_failure("number_of_filters"):
            return self._filter_wheel.number_of_filters()

    def filter_names(self) -> list[str]:
        """Lower-cased filter names up to the first blank name."""
        with _log_failure("filter_names"):
            return self._filter_wheel.filter_names()

    # -------------------------------------------------------------------------
    # Captures
    # -------------------------------------------------------------------------

    def capture_dark_frame(
        self, binning: int, seconds: float, download_seconds: float
    ) -> None:
        with _log_failure("capture_dark_frame"):
            self._orchestrator.capture_dark_frame(binning, seconds, download_seconds)

    def capture_bias_frame(self, binning: int, download_seconds: float) -> None:
        with _log_failure("capture_bias_frame"):
            self._orchestrator.capture_bias_frame(binning, download_seconds)

    def capture_and_measure_flat_frame(
        self,
        exposure: float,
        binning: int,
        filter_slot: int,
        download_seconds: float,
        save_image: bool,
    ) -> int:
        """Take a flat frame and return its average ADU.

        See CaptureOrchestrator.capture_and_measure_flat_frame().
        """
        with _log_failure("capture_and_measure_flat_frame"):
            return self._orchestrator.capture_and_measure_flat_frame(
                exposure, binning, filter_slot, download_seconds, save_image
            )

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _require_open(self, operation: str) -> None:
        if not self._is_open:
            raise ConnectionNotOpenError(operation)


__all__ = [
    "DEFAULT_INACTIVE_POLL_SECONDS",
    "DEFAULT_INACTIVE_TIMEOUT_MINUTES",
    "ConnectionNotOpenError",
    "TheSkyService",
]
