"""MCP Tools for camera and filter wheel control through TheSkyX.

Every handler runs the blocking service call in a worker thread, so a
ten-minute dark frame never stalls the MCP event loop. Results and
failures are both returned as JSON text; failures look like
``{"error": "<kind>", "message": "..."}`` with kind one of ``timeout``,
``invalid_argument``, ``not_connected``, ``skyx`` or ``internal``.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from mcp.server import Server
from mcp.types import TextContent, Tool

from theskyx_mcp.devices import (
    CaptureTimeoutError,
    ConnectionNotOpenError,
    TheSkyService,
)
from theskyx_mcp.drivers import (
    FILTER_SLOT_NO_FILTER,
    CameraNotConnectedError,
    SkyXError,
)
from theskyx_mcp.drivers.config import get_factory
from theskyx_mcp.observability import CaptureStats, LogContext, get_logger

logger = get_logger(__name__)


# =============================================================================
# Service holder
# =============================================================================


@dataclass
class _ToolState:
    service: TheSkyService | None = None
    stats: CaptureStats = field(default_factory=CaptureStats)


_state = _ToolState()


def init_service(
    service: TheSkyService | None = None, stats: CaptureStats | None = None
) -> TheSkyService:
    """Install the service the tools operate on.

    Args:
        service: Service to use. None creates one from the global driver
            factory, wired to the tools' statistics collector.
        stats: Collector reported by get_capture_stats. Pass the same one
            given to ``service`` so its captures are counted.

    Returns:
        The installed service.
    """
    if stats is not None:
        _state.stats = stats
    if service is None:
        service = get_factory().create_service(stats=_state.stats)
    _state.service = service
    return service


def get_service() -> TheSkyService:
    """Return the installed service, creating a default one on first use."""
    if _state.service is None:
        return init_service()
    return _state.service


def get_stats() -> CaptureStats:
    return _state.stats


def shutdown_service() -> None:
    """Close the service connection (if open) and forget the service."""
    service = _state.service
    _state.service = None
    if service is not None and service.is_open:
        service.close()


# =============================================================================
# Tool definitions
# =============================================================================

_BINNING = {
    "type": "integer",
    "description": "Binning factor (1 for 1x1, 2 for 2x2, ...)",
    "minimum": 1,
    "default": 1,
}

_DOWNLOAD = {
    "type": "number",
    "description": (
        "Seconds to download one frame at this binning "
        "(from measure_download_time)"
    ),
    "minimum": 0,
    "default": 0,
}

_NO_ARGS: dict[str, Any] = {"type": "object", "properties": {}, "required": []}

TOOLS = [
    Tool(
        name="connect",
        description="Connect to TheSkyX and its camera",
        inputSchema={
            "type": "object",
            "properties": {
                "host": {
                    "type": "string",
                    "description": "TheSkyX host (default from server config)",
                },
                "port": {
                    "type": "integer",
                    "description": "TheSkyX scripting port (default 3040)",
                },
            },
            "required": [],
        },
    ),
    Tool(
        name="disconnect",
        description="Close the connection to TheSkyX",
        inputSchema=_NO_ARGS,
    ),
    Tool(
        name="start_cooling",
        description="Turn on the camera cooler and regulate to a target temperature",
        inputSchema={
            "type": "object",
            "properties": {
                "target_celsius": {
                    "type": "number",
                    "description": "Target sensor temperature in degrees Celsius",
                },
            },
            "required": ["target_celsius"],
        },
    ),
    Tool(
        name="stop_cooling",
        description="Turn off camera temperature regulation",
        inputSchema=_NO_ARGS,
    ),
    Tool(
        name="get_camera_temperature",
        description="Read the camera sensor temperature",
        inputSchema=_NO_ARGS,
    ),
    Tool(
        name="measure_download_time",
        description="Measure seconds needed to download one frame at a binning",
        inputSchema={
            "type": "object",
            "properties": {"binning": _BINNING},
            "required": [],
        },
    ),
    Tool(
        name="capture_dark_frame",
        description="Take a dark frame and wait for it to finish",
        inputSchema={
            "type": "object",
            "properties": {
                "binning": _BINNING,
                "seconds": {
                    "type": "number",
                    "description": "Exposure length in seconds",
                    "exclusiveMinimum": 0,
                },
                "download_seconds": _DOWNLOAD,
            },
            "required": ["seconds"],
        },
    ),
    Tool(
        name="capture_bias_frame",
        description="Take a bias frame and wait for it to finish",
        inputSchema={
            "type": "object",
            "properties": {
                "binning": _BINNING,
                "download_seconds": _DOWNLOAD,
            },
            "required": [],
        },
    ),
    Tool(
        name="capture_flat_frame",
        description="Take a flat frame and return its average ADU",
        inputSchema={
            "type": "object",
            "properties": {
                "exposure": {
                    "type": "number",
                    "description": "Exposure length in seconds",
                    "exclusiveMinimum": 0,
                },
                "binning": _BINNING,
                "filter_slot": {
                    "type": "integer",
                    "description": (
                        "One-based filter slot; -1 leaves the filter wheel alone"
                    ),
                    "default": FILTER_SLOT_NO_FILTER,
                },
                "download_seconds": _DOWNLOAD,
                "save_image": {
                    "type": "boolean",
                    "description": "Have TheSkyX save the frame to disk",
                    "default": True,
                },
            },
            "required": ["exposure"],
        },
    ),
    Tool(
        name="has_filter_wheel",
        description="Report whether a filter wheel is attached",
        inputSchema=_NO_ARGS,
    ),
    Tool(
        name="list_filters",
        description="List filter names in slot order (slot 1 first)",
        inputSchema=_NO_ARGS,
    ),
    Tool(
        name="get_capture_stats",
        description="Capture success rates and durations per frame kind",
        inputSchema=_NO_ARGS,
    ),
]


def register(server: Server) -> None:
    """Register the TheSkyX tools with the MCP server.

    Args:
        server: MCP Server instance, not yet running.

    Example:
        >>> server = Server("theskyx-mcp")
        >>> register(server)
    """

    @server.list_tools()
    async def list_tools() -> list[Tool]:
        return TOOLS

    @server.call_tool()
    async def call_tool(name: str, arguments: dict[str, Any]) -> list[TextContent]:
        """Dispatch a tool call by name.

        Returns:
            Single TextContent with a JSON result or JSON error. Never
            raises for tool failures.
        """
        return await dispatch(name, arguments or {})


async def dispatch(name: str, arguments: dict[str, Any]) -> list[TextContent]:
    """Run one tool and convert the outcome to JSON text."""
    handler = _HANDLERS.get(name)
    if handler is None:
        return _error("invalid_argument", f"Unknown tool: {name}")

    with LogContext(tool=name):
        try:
            result = await handler(arguments)
        except Exception as e:
            kind = _error_kind(e)
            if kind == "internal":
                logger.exception("Unexpected tool failure", error=str(e))
            else:
                logger.warning("Tool failed", error_kind=kind, error=str(e))
            return _error(kind, str(e))
    return _ok(result)


# =============================================================================
# Handlers
# =============================================================================


def _call(func: Callable[..., Any], *args: Any) -> Awaitable[Any]:
    """Run a blocking service call in a worker thread."""
    return asyncio.to_thread(func, *args)


async def _connect(arguments: dict[str, Any]) -> dict[str, Any]:
    config = get_factory().config
    host = arguments.get("host") or config.host
    port = int(arguments.get("port") or config.port)
    service = get_service()
    await _call(service.connect, host, port)
    return {"connected": True, "host": host, "port": port}


async def _disconnect(arguments: dict[str, Any]) -> dict[str, Any]:
    service = get_service()
    await _call(service.close)
    return {"connected": False}


async def _start_cooling(arguments: dict[str, Any]) -> dict[str, Any]:
    target = float(arguments["target_celsius"])
    await _call(get_service().start_cooling, target)
    return {"cooling": True, "target_celsius": target}


async def _stop_cooling(arguments: dict[str, Any]) -> dict[str, Any]:
    await _call(get_service().stop_cooling)
    return {"cooling": False}


async def _get_camera_temperature(arguments: dict[str, Any]) -> dict[str, Any]:
    temperature = await _call(get_service().get_camera_temperature)
    return {"temperature_celsius": temperature}


async def _measure_download_time(arguments: dict[str, Any]) -> dict[str, Any]:
    binning = int(arguments.get("binning", 1))
    seconds = await _call(get_service().measure_download_time, binning)
    return {"binning": binning, "download_seconds": seconds}


async def _capture_dark_frame(arguments: dict[str, Any]) -> dict[str, Any]:
    binning = int(arguments.get("binning", 1))
    seconds = float(arguments["seconds"])
    download = float(arguments.get("download_seconds", 0.0))
    await _call(get_service().capture_dark_frame, binning, seconds, download)
    return {"kind": "dark", "binning": binning, "seconds": seconds, "complete": True}


async def _capture_bias_frame(arguments: dict[str, Any]) -> dict[str, Any]:
    binning = int(arguments.get("binning", 1))
    download = float(arguments.get("download_seconds", 0.0))
    await _call(get_service().capture_bias_frame, binning, download)
    return {"kind": "bias", "binning": binning, "complete": True}


async def _capture_flat_frame(arguments: dict[str, Any]) -> dict[str, Any]:
    exposure = float(arguments["exposure"])
    binning = int(arguments.get("binning", 1))
    filter_slot = int(arguments.get("filter_slot", FILTER_SLOT_NO_FILTER))
    download = float(arguments.get("download_seconds", 0.0))
    save_image = bool(arguments.get("save_image", True))
    service = get_service()
    adu = await _call(
        service.capture_and_measure_flat_frame,
        exposure,
        binning,
        filter_slot,
        download,
        save_image,
    )
    return {
        "kind": "flat",
        "exposure": exposure,
        "binning": binning,
        "filter_slot": filter_slot,
        "adu": adu,
        "simulated": service.simulate_flat_capture,
    }


async def _has_filter_wheel(arguments: dict[str, Any]) -> dict[str, Any]:
    present = await _call(get_service().has_filter_wheel)
    return {"has_filter_wheel": present}


async def _list_filters(arguments: dict[str, Any]) -> dict[str, Any]:
    names = await _call(get_service().filter_names)
    return {
        "count": len(names),
        "filters": [{"slot": i + 1, "name": name} for i, name in enumerate(names)],
    }


async def _get_capture_stats(arguments: dict[str, Any]) -> dict[str, Any]:
    return get_stats().to_dict()


Handler = Callable[[dict[str, Any]], Awaitable[dict[str, Any]]]

_HANDLERS: dict[str, Handler] = {
    "connect": _connect,
    "disconnect": _disconnect,
    "start_cooling": _start_cooling,
    "stop_cooling": _stop_cooling,
    "get_camera_temperature": _get_camera_temperature,
    "measure_download_time": _measure_download_time,
    "capture_dark_frame": _capture_dark_frame,
    "capture_bias_frame": _capture_bias_frame,
    "capture_flat_frame": _capture_flat_frame,
    "has_filter_wheel": _has_filter_wheel,
    "list_filters": _list_filters,
    "get_capture_stats": _get_capture_stats,
}


# =============================================================================
# Result helpers
# =============================================================================


def _error_kind(error: Exception) -> str:
    """Map an exception to the error kind reported to MCP clients."""
    if isinstance(error, CaptureTimeoutError):
        return "timeout"
    if isinstance(error, ConnectionNotOpenError | CameraNotConnectedError):
        return "not_connected"
    if isinstance(error, ValueError | KeyError | TypeError):
        return "invalid_argument"
    if isinstance(error, SkyXError | OSError):
        return "skyx"
    return "internal"


def _ok(result: dict[str, Any]) -> list[TextContent]:
    return [TextContent(type="text", text=json.dumps(result, indent=2))]


def _error(kind: str, message: str) -> list[TextContent]:
    return [
        TextContent(
            type="text",
            text=json.dumps({"error": kind, "message": message}, indent=2),
        )
    ]
