"""Digital Twin TheSkyX Driver - Simulated Server for Testing.

Implements the CommandChannel protocol entirely in memory so the service,
the MCP tools and the capture state machine can run without TheSkyX.

Behavior mirrors TheSkyX's own camera simulator where it matters:
- Flat frames always measure the same ADU value (configurable)
- An exposure stays "not complete" for a configurable number of polls
- Cooling moves the reported temperature straight to the set point
- A missing filter wheel makes filter_wheel_connect() fail

Classes:
    DigitalTwinConfig: Simulation parameters
    DigitalTwinDriver: CommandChannel implementation

Example:
    from theskyx_mcp.drivers.twin import DigitalTwinConfig, DigitalTwinDriver

    driver = DigitalTwinDriver(DigitalTwinConfig(polls_until_done=2))
    driver.connect("twin", 3040)
    driver.connect_camera()
    driver.start_dark_frame_capture(1, 20.0, 5.0)
    driver.is_capture_done()  # False
    driver.is_capture_done()  # False
    driver.is_capture_done()  # True
"""

from __future__ import annotations

from dataclasses import dataclass, field

from theskyx_mcp.drivers.types import (
    FILTER_SLOT_NO_FILTER,
    CameraNotConnectedError,
    FilterWheelConnectError,
    SkyXError,
)
from theskyx_mcp.observability import get_logger

logger = get_logger(__name__)

__all__ = [
    "DEFAULT_FILTER_NAMES",
    "DigitalTwinConfig",
    "DigitalTwinDriver",
    "TwinExposure",
]

# TheSkyX's simulated wheel reports a long list padded with blanks
DEFAULT_FILTER_NAMES: tuple[str, ...] = (
    "Red",
    "Green",
    "Blue",
    "Luminance",
    "Ha",
    "",
    "",
    "",
)

# Constant ADU TheSkyX's camera simulator reports for any flat
_SIMULATOR_ADU = 25_000


@dataclass
class DigitalTwinConfig:
    """Configuration for digital twin behavior."""

    has_filter_wheel: bool = True
    filter_names: tuple[str, ...] = DEFAULT_FILTER_NAMES
    download_seconds: float = 2.5
    adu_value: int = _SIMULATOR_ADU
    polls_until_done: int = 0  # "not complete" replies before "complete"
    ambient_celsius: float = 20.0


@dataclass
class TwinExposure:
    """An exposure the twin was asked to start (for inspection in tests)."""

    kind: str
    binning: int
    seconds: float
    filter_slot: int = FILTER_SLOT_NO_FILTER
    save_image: bool = True


@dataclass
class _TwinState:
    is_open: bool = False
    camera_connected: bool = False
    wheel_connected: bool = False
    regulating: bool = False
    temperature: float = 20.0
    set_point: float | None = None
    remaining_polls: int = 0
    exposing: bool = False
    exposures: list[TwinExposure] = field(default_factory=list)


class DigitalTwinDriver:
    """In-memory stand-in for TheSkyX.

    Implements the CommandChannel protocol. Not thread-safe; one twin per
    service.
    """

    def __init__(self, config: DigitalTwinConfig | None = None) -> None:
        self._config = config or DigitalTwinConfig()
        self._state = _TwinState(temperature=self._config.ambient_celsius)

    def __repr__(self) -> str:
        return (
            f"DigitalTwinDriver(open={self._state.is_open}, "
            f"camera={self._state.camera_connected}, "
            f"wheel={self._config.has_filter_wheel})"
        )

    @property
    def exposures(self) -> list[TwinExposure]:
        """Exposures started so far, oldest first."""
        return list(self._state.exposures)

    @property
    def wheel_connected(self) -> bool:
        return self._state.wheel_connected

    # -------------------------------------------------------------------------
    # Connection lifecycle
    # -------------------------------------------------------------------------

    def connect(self, host: str, port: int) -> None:
        self._state.is_open = True
        logger.info("Digital twin connected", host=host, port=port)

    def close(self) -> None:
        self._state.is_open = False
        self._state.camera_connected = False

    # -------------------------------------------------------------------------
    # Camera
    # -------------------------------------------------------------------------

    def connect_camera(self) -> None:
        self._require_open()
        self._state.camera_connected = True

    def start_cooling(self, target_celsius: float) -> None:
        self._require_camera("start_cooling")
        self._state.regulating = True
        self._state.set_point = target_celsius
        # No thermal model: the sensor is at the set point immediately
        self._state.temperature = target_celsius

    def stop_cooling(self) -> None:
        self._require_camera("stop_cooling")
        self._state.regulating = False
        self._state.set_point = None
        self._state.temperature = self._config.ambient_celsius

    def get_camera_temperature(self) -> float:
        self._require_camera("get_camera_temperature")
        return self._state.temperature

    def measure_download_time(self, binning: int) -> float:
        self._require_camera("measure_download_time")
        return self._config.download_seconds

    def start_dark_frame_capture(
        self, binning: int, seconds: float, download_seconds: float
    ) -> None:
        self._start("dark", TwinExposure("dark", binning, seconds))

    def start_bias_frame_capture(self, binning: int, download_seconds: float) -> None:
        self._start("bias", TwinExposure("bias", binning, 0.0))

    def start_flat_frame_capture(
        self,
        binning: int,
        seconds: float,
        filter_slot: int,
        download_seconds: float,
        save_image: bool,
    ) -> None:
        if filter_slot != FILTER_SLOT_NO_FILTER and not self._config.has_filter_wheel:
            raise SkyXError("TheSkyX error: filter wheel not connected")
        self._start(
            "flat", TwinExposure("flat", binning, seconds, filter_slot, save_image)
        )

    def is_capture_done(self) -> bool:
        self._require_camera("is_capture_done")
        if self._state.remaining_polls > 0:
            self._state.remaining_polls -= 1
            return False
        self._state.exposing = False
        return True

    def get_adu_value(self) -> int:
        self._require_camera("get_adu_value")
        return self._config.adu_value

    # -------------------------------------------------------------------------
    # Filter wheel
    # -------------------------------------------------------------------------

    def filter_wheel_is_connected(self) -> bool:
        self._require_open()
        return self._state.wheel_connected

    def filter_wheel_connect(self) -> None:
        self._require_open()
        if not self._config.has_filter_wheel:
            raise FilterWheelConnectError("Filter wheel connect returned code 1")
        self._state.wheel_connected = True

    def filter_wheel_disconnect(self) -> None:
        self._require_open()
        self._state.wheel_connected = False

    def filter_names(self) -> list[str]:
        self._require_open()
        if not self._config.has_filter_wheel:
            return []
        return list(self._config.filter_names)

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _start(self, kind: str, exposure: TwinExposure) -> None:
        self._require_camera(f"start_{kind}_frame_capture")
        self._state.exposures.append(exposure)
        self._state.exposing = True
        self._state.remaining_polls = self._config.polls_until_done
        logger.debug(
            "Twin exposure started",
            kind=kind,
            binning=exposure.binning,
            seconds=exposure.seconds,
        )

    def _require_open(self) -> None:
        if not self._state.is_open:
            raise SkyXError("Driver not connected to TheSkyX")

    def _require_camera(self, operation: str) -> None:
        self._require_open()
        if not self._state.camera_connected:
            raise CameraNotConnectedError(f"{operation}: Camera not connected")
