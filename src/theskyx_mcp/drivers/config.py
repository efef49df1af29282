"""Driver configuration and factory.

Supports switching between a real TheSkyX instance and the in-memory
digital twin so the MCP server can be developed and tested without an
observatory computer.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

from theskyx_mcp.drivers.skyx import TheSkyXDriver
from theskyx_mcp.drivers.twin import DigitalTwinConfig, DigitalTwinDriver
from theskyx_mcp.drivers.types import (
    DEFAULT_NOISE_FRACTION,
    DEFAULT_SKYX_PORT,
    CommandChannel,
)

if TYPE_CHECKING:
    from theskyx_mcp.devices.service import TheSkyService
    from theskyx_mcp.observability import CaptureStats

# =============================================================================
# Constants
# =============================================================================

DEFAULT_SKYX_HOST = "localhost"

DEFAULT_SIMULATION_NOISE_FRACTION = DEFAULT_NOISE_FRACTION


class DriverMode(Enum):
    """Driver mode selection."""

    HARDWARE = "hardware"  # Real TheSkyX over TCP
    DIGITAL_TWIN = "digital_twin"  # In-memory simulation


@dataclass
class DriverConfig:
    """Configuration for driver selection and service settings.

    Attributes:
        mode: HARDWARE for a real TheSkyX, DIGITAL_TWIN for simulation.
        host: TheSkyX host name or address.
        port: TheSkyX scripting port.
        simulate_flat_capture: Replace measured flat ADU with the model.
        simulation_noise_fraction: Noise band of the flat model (0 = none).
        twin: Digital twin behavior, used only in DIGITAL_TWIN mode.
    """

    mode: DriverMode = DriverMode.DIGITAL_TWIN

    # Connection settings
    host: str = DEFAULT_SKYX_HOST
    port: int = DEFAULT_SKYX_PORT

    # Flat frame simulation
    simulate_flat_capture: bool = False
    simulation_noise_fraction: float = DEFAULT_SIMULATION_NOISE_FRACTION

    # Digital twin settings
    twin: DigitalTwinConfig = field(default_factory=DigitalTwinConfig)


class DriverFactory:
    """Factory for creating command channels and services from configuration.

    Thread Safety:
        Not thread-safe. The global factory singleton should be configured
        once at startup before tool handlers start running.
    """

    def __init__(self, config: DriverConfig | None = None):
        """Initialize factory with hardware/simulation configuration.

        Business context: Single place deciding whether the server talks to
        a real TheSkyX or the digital twin. The rest of the code only sees
        a CommandChannel and a TheSkyService.

        Args:
            config: DriverConfig. None uses DriverConfig() defaults
                (digital twin, localhost:3040, simulation off).

        Example:
            >>> factory = DriverFactory()
            >>> service = factory.create_service()
        """
        self.config = config or DriverConfig()

    def create_driver(self) -> CommandChannel:
        """Create the command channel for the configured mode.

        Returns:
            TheSkyXDriver in HARDWARE mode, DigitalTwinDriver otherwise.
            Neither is connected yet.

        Example:
            >>> factory = DriverFactory(DriverConfig(mode=DriverMode.HARDWARE))
            >>> driver = factory.create_driver()  # TheSkyXDriver
        """
        if self.config.mode == DriverMode.HARDWARE:
            return TheSkyXDriver()
        return DigitalTwinDriver(self.config.twin)

    def create_service(self, stats: CaptureStats | None = None) -> TheSkyService:
        """Create a TheSkyService wired to a fresh driver.

        Simulation settings are copied onto the service instance; later
        changes to this config do not affect services already created.
        In digital twin mode capture waits use an InstantDelay, which also
        serves as the clock, so no call sleeps on the wall clock.

        Args:
            stats: Optional collector receiving one record per capture.

        Returns:
            Unconnected TheSkyService. Call connect(host, port) to use it.
        """
        from theskyx_mcp.devices.delay import InstantDelay
        from theskyx_mcp.devices.service import TheSkyService

        delay = clock = None
        if self.config.mode == DriverMode.DIGITAL_TWIN:
            delay = clock = InstantDelay()

        return TheSkyService(
            self.create_driver(),
            delay,
            simulate_flat_capture=self.config.simulate_flat_capture,
            simulation_noise_fraction=self.config.simulation_noise_fraction,
            stats=stats,
            clock=clock,
        )


# =============================================================================
# Global Singleton
# =============================================================================
# Not thread-safe. Configure once at startup.

_factory: DriverFactory | None = None


def get_factory() -> DriverFactory:
    """Get the global driver factory, creating a digital twin one on first use."""
    global _factory
    if _factory is None:
        _factory = DriverFactory()
    return _factory


def configure(config: DriverConfig) -> None:
    """Replace the global factory with one using the given configuration."""
    global _factory
    _factory = DriverFactory(config)


def use_hardware(
    host: str = DEFAULT_SKYX_HOST, port: int = DEFAULT_SKYX_PORT
) -> None:
    """Switch the global factory to a real TheSkyX at host:port.

    Simulation settings of the current configuration are kept.
    """
    current = get_factory().config
    configure(
        DriverConfig(
            mode=DriverMode.HARDWARE,
            host=host,
            port=port,
            simulate_flat_capture=current.simulate_flat_capture,
            simulation_noise_fraction=current.simulation_noise_fraction,
        )
    )


def use_digital_twin(twin: DigitalTwinConfig | None = None) -> None:
    """Switch the global factory to the digital twin."""
    current = get_factory().config
    configure(
        DriverConfig(
            mode=DriverMode.DIGITAL_TWIN,
            host=current.host,
            port=current.port,
            simulate_flat_capture=current.simulate_flat_capture,
            simulation_noise_fraction=current.simulation_noise_fraction,
            twin=twin or DigitalTwinConfig(),
        )
    )


def reset_factory() -> None:
    """Drop the global factory. Used by tests for a clean state."""
    global _factory
    _factory = None


__all__ = [
    "DEFAULT_SIMULATION_NOISE_FRACTION",
    "DEFAULT_SKYX_HOST",
    "DriverConfig",
    "DriverFactory",
    "DriverMode",
    "configure",
    "get_factory",
    "reset_factory",
    "use_digital_twin",
    "use_hardware",
]
