"""Driver type definitions and protocols.

Kept apart from the implementations so that devices and tests can import
the CommandChannel protocol and driver exceptions without pulling in
socket code.

Types defined here:
- CommandChannel: Protocol for anything that can run TheSkyX operations
- SkyXError and subclasses: failures reported by a channel
- FILTER_SLOT_NO_FILTER: sentinel meaning "leave the filter wheel alone"
- DEFAULT_NOISE_FRACTION: default noise band of the flat model
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

#: Filter slot sentinel: do not select a filter before a flat exposure.
FILTER_SLOT_NO_FILTER = -1

#: Default TCP port of TheSkyX's scripting server.
DEFAULT_SKYX_PORT = 3040

#: Fraction of the modeled flat value used as the noise band (±half of it).
DEFAULT_NOISE_FRACTION = 0.2


class SkyXError(Exception):
    """Base exception for command channel failures."""

    pass


class SkyXCommandError(SkyXError):
    """TheSkyX ran the script and reported an error line."""

    pass


class SkyXProtocolError(SkyXError):
    """A reply could not be parsed (missing separator, non-numeric value)."""

    pass


class CameraNotConnectedError(SkyXError):
    """Camera operation attempted before connect_camera() succeeded."""

    pass


class FilterWheelConnectError(SkyXError):
    """TheSkyX refused to connect the filter wheel (non-zero result code)."""

    pass


@runtime_checkable
class CommandChannel(Protocol):  # pragma: no cover
    """Logical operations on a remote TheSkyX instance.

    Implementations turn each call into a script round trip (TheSkyXDriver)
    or simulate it in memory (DigitalTwinDriver). Every method raises on
    failure; the exception type is implementation specific but should
    derive from SkyXError or OSError.

    Business context: The capture orchestrator, presence detector and
    service only ever talk to this protocol, so the same state machine runs
    against real hardware, the digital twin, or a scripted test double.
    """

    # Connection lifecycle

    def connect(self, host: str, port: int) -> None:
        """Remember (or open) the connection to TheSkyX at host:port."""
        ...

    def close(self) -> None:
        """Release the connection. Safe to call when not connected."""
        ...

    # Camera lifecycle and temperature

    def connect_camera(self) -> None:
        """Ask TheSkyX to connect its configured imaging camera."""
        ...

    def start_cooling(self, target_celsius: float) -> None:
        """Enable the thermoelectric cooler and set the target temperature."""
        ...

    def stop_cooling(self) -> None:
        """Turn temperature regulation off."""
        ...

    def get_camera_temperature(self) -> float:
        """Current sensor temperature in degrees Celsius."""
        ...

    # Exposures

    def measure_download_time(self, binning: int) -> float:
        """Seconds needed to download one frame at the given binning."""
        ...

    def start_dark_frame_capture(
        self, binning: int, seconds: float, download_seconds: float
    ) -> None:
        """Start an asynchronous dark exposure; returns once accepted."""
        ...

    def start_bias_frame_capture(self, binning: int, download_seconds: float) -> None:
        """Start an asynchronous bias exposure; returns once accepted."""
        ...

    def start_flat_frame_capture(
        self,
        binning: int,
        seconds: float,
        filter_slot: int,
        download_seconds: float,
        save_image: bool,
    ) -> None:
        """Start an asynchronous flat exposure, selecting a filter first.

        ``filter_slot`` is one-based; FILTER_SLOT_NO_FILTER skips filter
        selection.
        """
        ...

    def is_capture_done(self) -> bool:
        """True once the camera reports the current exposure complete."""
        ...

    def get_adu_value(self) -> int:
        """Average pixel value (ADU) of the most recent image."""
        ...

    # Filter wheel

    def filter_wheel_is_connected(self) -> bool:
        """True if the filter wheel is currently connected."""
        ...

    def filter_wheel_connect(self) -> None:
        """Connect the filter wheel; raises if absent or refused."""
        ...

    def filter_wheel_disconnect(self) -> None:
        """Disconnect the filter wheel."""
        ...

    def filter_names(self) -> list[str]:
        """Raw filter names in slot order, possibly padded with blanks."""
        ...
