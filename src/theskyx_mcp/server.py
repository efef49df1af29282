"""MCP Server entry point for TheSkyX camera control."""

from __future__ import annotations

import argparse
import asyncio
from collections.abc import Sequence
from typing import Literal

from mcp.server import Server
from mcp.server.stdio import stdio_server

from theskyx_mcp.drivers.config import (
    DEFAULT_SIMULATION_NOISE_FRACTION,
    DEFAULT_SKYX_HOST,
    DriverConfig,
    DriverMode,
    configure,
)
from theskyx_mcp.drivers.types import DEFAULT_SKYX_PORT
from theskyx_mcp.observability import configure_logging, get_logger
from theskyx_mcp.tools import camera

logger = get_logger(__name__)

SERVER_NAME = "theskyx-mcp"


def create_server(
    mode: Literal["hardware", "digital_twin"] = "digital_twin",
    host: str = DEFAULT_SKYX_HOST,
    port: int = DEFAULT_SKYX_PORT,
    simulate_flats: bool = False,
    noise_fraction: float = DEFAULT_SIMULATION_NOISE_FRACTION,
) -> Server:
    """Create and configure the MCP server.

    Configures the global driver factory, installs a TheSkyService for the
    tools and registers them.

    Business context: Lets an AI agent run an evening's calibration frames
    (cool down, darks, bias, flats per filter) through TheSkyX without a
    human at the observatory computer. Digital twin mode is the default so
    a misconfigured client never drives real hardware by accident.

    Args:
        mode: "hardware" for a real TheSkyX, "digital_twin" for simulation.
        host: TheSkyX host used by the connect tool when none is given.
        port: TheSkyX scripting port.
        simulate_flats: Replace measured flat ADU with the flat model.
        noise_fraction: Noise band of the flat model.

    Returns:
        Server with all tools registered.

    Example:
        >>> server = create_server(mode="hardware", host="observatory.local")
    """
    server = Server(SERVER_NAME)

    driver_mode = DriverMode(mode.lower())
    configure(
        DriverConfig(
            mode=driver_mode,
            host=host,
            port=port,
            simulate_flat_capture=simulate_flats,
            simulation_noise_fraction=noise_fraction,
        )
    )
    if driver_mode == DriverMode.HARDWARE:
        logger.info("Using HARDWARE mode (TheSkyX)", host=host, port=port)
    else:
        logger.info("Using DIGITAL_TWIN mode (simulated TheSkyX)")

    service = camera.init_service()
    logger.info(
        "Initialized TheSkyX service",
        channel=type(service.channel).__name__,
        simulate_flats=simulate_flats,
    )

    camera.register(server)
    return server


async def run_server(
    mode: Literal["hardware", "digital_twin"] = "digital_twin",
    host: str = DEFAULT_SKYX_HOST,
    port: int = DEFAULT_SKYX_PORT,
    simulate_flats: bool = False,
    noise_fraction: float = DEFAULT_SIMULATION_NOISE_FRACTION,
) -> None:
    """Run the MCP server over stdio until stdin closes.

    The TheSkyX connection is closed on the way out.
    """
    server = create_server(mode, host, port, simulate_flats, noise_fraction)
    try:
        async with stdio_server() as (read_stream, write_stream):
            await server.run(
                read_stream,
                write_stream,
                server.create_initialization_options(),
            )
    finally:
        camera.shutdown_service()
        logger.info("TheSkyX service shut down")


def _noise_fraction(value: str) -> float:
    fraction = float(value)
    if not 0.0 <= fraction <= 1.0:
        raise argparse.ArgumentTypeError(
            f"noise fraction must be between 0 and 1, got {value}"
        )
    return fraction


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments.

    Args:
        argv: Arguments without the program name. None reads sys.argv.

    Returns:
        Namespace with host, port, mode, simulate_flats, noise_fraction,
        log_level and json_logs.

    Raises:
        SystemExit: On invalid arguments or --help.
    """
    parser = argparse.ArgumentParser(
        prog=SERVER_NAME,
        description="TheSkyX MCP Server - camera cooling, calibration frames, filters",
    )
    parser.add_argument(
        "--host",
        type=str,
        default=DEFAULT_SKYX_HOST,
        help=f"TheSkyX host (default: {DEFAULT_SKYX_HOST})",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=DEFAULT_SKYX_PORT,
        help=f"TheSkyX scripting port (default: {DEFAULT_SKYX_PORT})",
    )
    parser.add_argument(
        "--mode",
        type=str,
        choices=["hardware", "digital_twin"],
        default="digital_twin",
        help=(
            "Driver mode: 'hardware' for a real TheSkyX, "
            "'digital_twin' for simulation (default)"
        ),
    )
    parser.add_argument(
        "--simulate-flats",
        action="store_true",
        help="Return modeled flat ADU values instead of measured ones",
    )
    parser.add_argument(
        "--noise-fraction",
        type=_noise_fraction,
        default=DEFAULT_SIMULATION_NOISE_FRACTION,
        help=(
            "Noise band of simulated flat values, 0 to 1 "
            f"(default: {DEFAULT_SIMULATION_NOISE_FRACTION})"
        ),
    )
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["critical", "error", "warning", "info", "debug"],
        default="info",
        help="Log level (default: info)",
    )
    parser.add_argument(
        "--json-logs",
        action="store_true",
        help="Emit logs as JSON lines on stderr",
    )
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> None:
    """Entry point for the theskyx-mcp command.

    Parses arguments, configures logging on stderr (stdout carries the MCP
    protocol) and runs the server until the client disconnects.

    Example:
        >>> # MCP client config:
        >>> # "command": "theskyx-mcp", "args": ["--mode", "hardware",
        >>> #                                    "--host", "observatory.local"]
    """
    args = parse_args(argv)

    configure_logging(level=args.log_level, json_format=args.json_logs, force=True)

    logger.info("Starting MCP server", mode=args.mode, host=args.host, port=args.port)
    asyncio.run(
        run_server(
            args.mode,
            args.host,
            args.port,
            args.simulate_flats,
            args.noise_fraction,
        )
    )


if __name__ == "__main__":  # pragma: no cover
    main()
