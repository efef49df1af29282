"""Command channel drivers for TheSkyX.

Supports two modes:
- HARDWARE: Real TheSkyX scripting server over TCP
- DIGITAL_TWIN: In-memory simulation for testing without TheSkyX

Use drivers.config to switch modes:
    from theskyx_mcp.drivers import config
    config.use_digital_twin()  # or config.use_hardware("observatory-pc")

Transport Protocol:
    Transport lets TheSkyXDriver be tested with canned replies.

    from theskyx_mcp.drivers import Transport
"""

from theskyx_mcp.drivers import config
from theskyx_mcp.drivers.config import (
    DriverConfig,
    DriverFactory,
    DriverMode,
    configure,
    get_factory,
    reset_factory,
    use_digital_twin,
    use_hardware,
)
from theskyx_mcp.drivers.skyx import TheSkyXDriver
from theskyx_mcp.drivers.transport import TcpTransport, Transport
from theskyx_mcp.drivers.twin import DigitalTwinConfig, DigitalTwinDriver
from theskyx_mcp.drivers.types import (
    DEFAULT_SKYX_PORT,
    FILTER_SLOT_NO_FILTER,
    CameraNotConnectedError,
    CommandChannel,
    FilterWheelConnectError,
    SkyXCommandError,
    SkyXError,
    SkyXProtocolError,
)

__all__ = [
    "config",
    # Configuration
    "DriverMode",
    "DriverConfig",
    "DriverFactory",
    "get_factory",
    "configure",
    "reset_factory",
    "use_digital_twin",
    "use_hardware",
    # Channels
    "CommandChannel",
    "TheSkyXDriver",
    "DigitalTwinConfig",
    "DigitalTwinDriver",
    # Transport
    "Transport",
    "TcpTransport",
    # Types
    "DEFAULT_SKYX_PORT",
    "FILTER_SLOT_NO_FILTER",
    "SkyXError",
    "SkyXCommandError",
    "SkyXProtocolError",
    "CameraNotConnectedError",
    "FilterWheelConnectError",
]
