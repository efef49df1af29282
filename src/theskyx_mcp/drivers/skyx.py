"""TheSkyX scripting driver.

Implements the CommandChannel protocol by sending small JavaScript
programs to TheSkyX's TCP scripting server and parsing the replies.

Packet Format:
    /* Java Script */
    /* Socket Start Packet */
    <script lines>
    /* Socket End Packet */

Reply Format:
    <data>|<error line>

    The error line is empty or starts with "No error." on success. Anything
    else is an error message from TheSkyX and raises SkyXCommandError.

Camera Frame Types (ccdsoftCamera.Frame):
    2 = bias, 3 = dark, 4 = flat

Example:
    from theskyx_mcp.drivers import TheSkyXDriver

    driver = TheSkyXDriver()
    driver.connect("observatory.local", 3040)
    driver.connect_camera()
    print(driver.get_camera_temperature())

Testing:
    Inject a mock transport to assert on scripts without a server:

    driver = TheSkyXDriver(transport=MockTransport())
    driver.connect("mock", 3040)

    See tests/drivers/test_skyx.py for a full MockTransport.
"""

from __future__ import annotations

from theskyx_mcp.drivers.transport import TcpTransport, Transport
from theskyx_mcp.drivers.types import (
    FILTER_SLOT_NO_FILTER,
    CameraNotConnectedError,
    FilterWheelConnectError,
    SkyXCommandError,
    SkyXError,
    SkyXProtocolError,
)
from theskyx_mcp.observability import get_logger
from theskyx_mcp.utils import round_half_away

logger = get_logger(__name__)

PACKET_HEADER = "/* Java Script */\n/* Socket Start Packet */\n"
PACKET_FOOTER = "/* Socket End Packet */\n"

#: Exposure used to time a frame download. Zero-length bias frames are not
#: supported by every camera, so a 0.1 s dark stands in for one.
DOWNLOAD_PROBE_EXPOSURE = 0.1

FRAME_BIAS = 2
FRAME_DARK = 3
FRAME_FLAT = 4


def _script(*lines: str) -> str:
    """Join script lines, one statement per line, with a trailing newline."""
    return "".join(f"{line}\n" for line in lines)


def _js_bool(value: bool) -> str:
    return "true" if value else "false"


def _exposure_setup(
    frame: int,
    binning: int,
    auto_save: bool,
    asynchronous: bool = True,
) -> list[str]:
    """Common camera property assignments for a main-camera exposure."""
    return [
        "ccdsoftCamera.Autoguider=false;",
        f"ccdsoftCamera.Asynchronous={_js_bool(asynchronous)};",
        f"ccdsoftCamera.Frame={frame};",
        "ccdsoftCamera.ImageReduction=0;",
        "ccdsoftCamera.ToNewWindow=false;",
        f"ccdsoftCamera.AutoSaveOn={_js_bool(auto_save)};",
        f"ccdsoftCamera.BinX={binning};",
        f"ccdsoftCamera.BinY={binning};",
    ]


_TAKE_IMAGE = (
    "var cameraResult = ccdsoftCamera.TakeImage();",
    "var Out;",
    'Out=cameraResult+"\\n";',
)


class TheSkyXDriver:
    """Command channel backed by TheSkyX's scripting server.

    Implements the CommandChannel protocol. ``connect()`` only records the
    server coordinates; the socket is opened per command by the transport.
    Camera operations require a prior successful ``connect_camera()``.
    """

    def __init__(self, transport: Transport | None = None) -> None:
        """Create a driver.

        Args:
            transport: Packet transport. Defaults to TcpTransport().
        """
        self._transport: Transport = transport or TcpTransport()
        self._host: str | None = None
        self._port: int | None = None
        self._is_open = False
        self._camera_connected = False

    @property
    def is_open(self) -> bool:
        """True between connect() and close()."""
        return self._is_open

    @property
    def camera_connected(self) -> bool:
        """True once connect_camera() has succeeded."""
        return self._camera_connected

    # -------------------------------------------------------------------------
    # Connection lifecycle
    # -------------------------------------------------------------------------

    def connect(self, host: str, port: int) -> None:
        """Remember the server coordinates for subsequent commands.

        No socket is opened here. A second call while open is ignored.
        """
        if self._is_open:
            logger.warning("Driver already connected", host=host, port=port)
            return
        self._host = host
        self._port = port
        self._is_open = True
        logger.debug("Driver connected", host=host, port=port)

    def close(self) -> None:
        """Forget the server; camera must be reconnected after reopening."""
        if not self._is_open:
            logger.debug("Driver close requested but not open")
            return
        self._is_open = False
        self._camera_connected = False
        logger.debug("Driver closed", host=self._host, port=self._port)

    # -------------------------------------------------------------------------
    # Camera
    # -------------------------------------------------------------------------

    def connect_camera(self) -> None:
        """Ask TheSkyX to connect its configured camera."""
        self._send_ignore_reply(
            _script("ccdsoftCamera.Connect();", "var Out;", "Out=0;")
        )
        self._camera_connected = True

    def start_cooling(self, target_celsius: float) -> None:
        """Turn on temperature regulation at ``target_celsius``.

        Regulation is cycled off and on so the new set point takes effect
        immediately, and is left running when TheSkyX disconnects the
        camera.
        """
        self._require_camera("start_cooling")
        self._send_ignore_reply(
            _script(
                "ccdsoftCamera.RegulateTemperature=false;",
                f"ccdsoftCamera.TemperatureSetPoint={target_celsius:.2f};",
                "ccdsoftCamera.RegulateTemperature=true;",
                "ccdsoftCamera.ShutDownTemperatureRegulationOnDisconnect=false;",
            )
        )

    def stop_cooling(self) -> None:
        self._require_camera("stop_cooling")
        self._send_ignore_reply(_script("ccdsoftCamera.RegulateTemperature=false;"))

    def get_camera_temperature(self) -> float:
        self._require_camera("get_camera_temperature")
        return self._send_float_reply(
            _script(
                "var temp=ccdsoftCamera.Temperature;",
                "var Out;",
                'Out=temp + "\\n";',
            )
        )

    def get_adu_value(self) -> int:
        """Average pixel value of the active image, halves rounded away from zero."""
        self._require_camera("get_adu_value")
        average = self._send_float_reply(
            _script(
                "ccdsoftCameraImage.AttachToActive();",
                "var averageAdu = ccdsoftCameraImage.averagePixelValue();",
                "var Out;",
                'Out=averageAdu + "\\n";',
            )
        )
        return round_half_away(average)

    def measure_download_time(self, binning: int) -> float:
        """Measure how long the camera takes to download one frame.

        TheSkyX gives no notification when a download finishes, so capture
        timing needs an estimate: exposure + download time is how long to
        wait before the first completion poll.

        The probe is a synchronous 0.1 s dark at the camera's 1x1 binning,
        bracketed by two universal-time readings (decimal hours). The
        download time is the bracket in seconds minus the exposure.

        Args:
            binning: Requested binning. Logged only; the probe always runs
                at 1x1, the slowest download.

        Returns:
            Download time in seconds.

        Raises:
            SkyXProtocolError: If the reply is not two comma-separated
                numbers.
        """
        self._require_camera("measure_download_time")
        logger.debug("Measuring download time", binning=binning)
        lines = _exposure_setup(FRAME_DARK, 1, auto_save=False, asynchronous=False)
        lines.insert(5, "ccdsoftCamera.ccdsoftAutoSaveAs=0;")
        reply = self._send_string_reply(
            _script(
                *lines,
                f"ccdsoftCamera.ExposureTime={DOWNLOAD_PROBE_EXPOSURE:.2f};",
                "sky6Utils.ComputeUniversalTime();",
                "var timeBefore=sky6Utils.dOut0;",
                "var cameraResult = ccdsoftCamera.TakeImage();",
                "sky6Utils.ComputeUniversalTime();",
                "var timeAfter=sky6Utils.dOut0;",
                "var out;",
                'out = timeBefore + "," + timeAfter + "\\n";',
            )
        )

        parts = reply.split(",")
        if len(parts) != 2:
            raise SkyXProtocolError(f"Expected 'before,after' times, got {reply!r}")
        try:
            time_before = float(parts[0])
            time_after = float(parts[1])
        except ValueError as e:
            raise SkyXProtocolError(f"Error parsing download times {reply!r}") from e

        # Universal time wrapped past midnight during the probe
        if time_after < time_before:
            time_after += 24.0

        return (time_after - time_before) * 3600.0 - DOWNLOAD_PROBE_EXPOSURE

    def start_dark_frame_capture(
        self, binning: int, seconds: float, download_seconds: float
    ) -> None:
        """Start an asynchronous, auto-saved dark exposure."""
        self._require_camera("start_dark_frame_capture")
        logger.debug(
            "Starting dark capture",
            binning=binning,
            seconds=seconds,
            download_seconds=download_seconds,
        )
        self._send_ignore_reply(
            _script(
                *_exposure_setup(FRAME_DARK, binning, auto_save=True),
                f"ccdsoftCamera.ExposureTime={seconds:.2f};",
                *_TAKE_IMAGE,
            )
        )

    def start_bias_frame_capture(self, binning: int, download_seconds: float) -> None:
        """Start an asynchronous, auto-saved bias exposure."""
        self._require_camera("start_bias_frame_capture")
        logger.debug(
            "Starting bias capture", binning=binning, download_seconds=download_seconds
        )
        self._send_ignore_reply(
            _script(
                *_exposure_setup(FRAME_BIAS, binning, auto_save=True),
                *_TAKE_IMAGE,
            )
        )

    def start_flat_frame_capture(
        self,
        binning: int,
        seconds: float,
        filter_slot: int,
        download_seconds: float,
        save_image: bool,
    ) -> None:
        """Start an asynchronous flat exposure.

        Args:
            binning: Binning factor for both axes.
            seconds: Exposure length.
            filter_slot: One-based filter slot, or FILTER_SLOT_NO_FILTER to
                leave the wheel where it is. TheSkyX indexes slots from
                zero, so one is subtracted.
            download_seconds: Measured download time (logged only).
            save_image: Whether TheSkyX should auto-save the frame.
        """
        self._require_camera("start_flat_frame_capture")
        logger.debug(
            "Starting flat capture",
            binning=binning,
            seconds=seconds,
            filter_slot=filter_slot,
            download_seconds=download_seconds,
            save_image=save_image,
        )
        lines: list[str] = []
        if filter_slot != FILTER_SLOT_NO_FILTER:
            lines.append("ccdsoftCamera.filterWheelConnect();")
            lines.append(f"ccdsoftCamera.FilterIndexZeroBased={filter_slot - 1};")
        lines.extend(_exposure_setup(FRAME_FLAT, binning, auto_save=save_image))
        lines.append(f"ccdsoftCamera.ExposureTime={seconds:.2f};")
        lines.extend(_TAKE_IMAGE)
        self._send_ignore_reply(_script(*lines))

    def is_capture_done(self) -> bool:
        self._require_camera("is_capture_done")
        reply = self._send_string_reply(
            _script(
                "var complete = ccdsoftCamera.IsExposureComplete;",
                "var Out;",
                'Out=complete+"\\n";',
            )
        )
        logger.debug("Exposure complete poll", reply=reply)
        return reply == "1"

    # -------------------------------------------------------------------------
    # Filter wheel
    # -------------------------------------------------------------------------

    def filter_wheel_is_connected(self) -> bool:
        code = self._send_int_reply(
            _script(
                "var isConnected;",
                "isConnected = ccdsoftCamera.filterWheelIsConnected();",
                "var out;",
                'out = isConnected + "\\n";',
            )
        )
        return code == 1

    def filter_wheel_connect(self) -> None:
        """Connect the filter wheel.

        Raises:
            FilterWheelConnectError: If TheSkyX returns a non-zero code.
            SkyXCommandError: If the script itself failed (typically no
                wheel is configured).
        """
        code = self._send_int_reply(
            _script(
                "result = ccdsoftCamera.filterWheelConnect();",
                "var out;",
                'out = result + "\\n";',
            )
        )
        if code != 0:
            raise FilterWheelConnectError(f"Filter wheel connect returned code {code}")

    def filter_wheel_disconnect(self) -> None:
        self._send_ignore_reply(
            _script(
                "ccdsoftCamera.filterWheelDisconnect();",
                "var out;",
                "out = 0;",
            )
        )

    def filter_names(self) -> list[str]:
        """All filter names TheSkyX reports, in slot order.

        There is no single call for this, so the script loops over
        ``szFilterName(i)`` and joins the names with tabs. The list may be
        padded with blank or auto-generated names; trimming is the
        caller's job.
        """
        reply = self._send(
            _script(
                "var numFilters = ccdsoftCamera.lNumberFilters;",
                'var result = "";',
                "var i;",
                "for (i = 0; i < numFilters; i++) {",
                "   filterName = ccdsoftCamera.szFilterName(i);",
                '   result = result + "\\t" + filterName;',
                "}",
                'var out = result + "\\n";',
            )
        ).rstrip("\r\n")
        names = reply.split("\t")
        # The script prefixes every name with a tab, leaving an empty head
        if names and names[0] == "":
            names = names[1:]
        return names

    # -------------------------------------------------------------------------
    # Packet I/O
    # -------------------------------------------------------------------------

    def _require_camera(self, operation: str) -> None:
        if not self._camera_connected:
            raise CameraNotConnectedError(f"{operation}: Camera not connected")

    def _send(self, script: str) -> str:
        """Wrap ``script`` in a packet, send it, and return the data part.

        Raises:
            SkyXError: If the driver is not connected.
            SkyXProtocolError: If the reply has no '|' separator.
            SkyXCommandError: If TheSkyX reported an error.
            OSError: On socket failure.
        """
        if not self._is_open or self._host is None or self._port is None:
            raise SkyXError("Driver not connected to TheSkyX")

        packet = f"{PACKET_HEADER}{script}{PACKET_FOOTER}"
        logger.debug("Sending packet", script=script)
        try:
            reply = self._transport.round_trip(self._host, self._port, packet)
        except OSError as e:
            logger.error("Socket error talking to TheSkyX", error=str(e))
            raise
        logger.debug("Received reply", reply=reply)

        data, sep, error_line = reply.partition("|")
        if not sep:
            raise SkyXProtocolError(f"Malformed reply from TheSkyX: {reply!r}")

        error_line = error_line.strip().lower()
        if error_line and not error_line.startswith("no error."):
            raise SkyXCommandError(f"TheSkyX error: {error_line}")
        return data

    def _send_ignore_reply(self, script: str) -> None:
        self._send(script)

    def _send_string_reply(self, script: str) -> str:
        return self._send(script).strip()

    def _send_float_reply(self, script: str) -> float:
        reply = self._send_string_reply(script)
        try:
            return float(reply)
        except ValueError as e:
            raise SkyXProtocolError(f"Error parsing numeric result {reply!r}") from e

    def _send_int_reply(self, script: str) -> int:
        reply = self._send_string_reply(script)
        try:
            return int(reply)
        except ValueError as e:
            raise SkyXProtocolError(f"Error parsing integer result {reply!r}") from e
