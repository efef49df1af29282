"""Filter wheel presence detection and filter name handling.

TheSkyX cannot be asked whether a filter wheel exists. Presence is
inferred by probing: if the wheel is not connected, try to connect it.
A refused connect is the normal answer for "no wheel" and is not an error.
"""

from __future__ import annotations

from theskyx_mcp.drivers.types import CommandChannel
from theskyx_mcp.observability import get_logger

logger = get_logger(__name__)


class FilterWheelProbe:
    """Infers filter wheel presence and reads its filter names.

    Nothing is cached; every call talks to the channel.
    """

    def __init__(self, channel: CommandChannel) -> None:
        self._channel = channel

    @property
    def channel(self) -> CommandChannel:
        return self._channel

    @channel.setter
    def channel(self, channel: CommandChannel) -> None:
        self._channel = channel

    def has_filter_wheel(self) -> bool:
        """Report whether a filter wheel is available.

        Already connected means present. Otherwise a connect is attempted:
        success means present (and the wheel is disconnected again to
        restore the previous state), failure means absent.

        Returns:
            True if a filter wheel exists.

        Raises:
            Exception: Whatever the initial connected-state query raises.
                Only the probe connect's failure is absorbed.
        """
        if self._channel.filter_wheel_is_connected():
            return True

        try:
            self._channel.filter_wheel_connect()
        except Exception as e:
            logger.debug(
                "Filter wheel connect failed, treating as absent", error=str(e)
            )
            return False

        try:
            self._channel.filter_wheel_disconnect()
        except Exception as e:
            logger.debug("Ignoring filter wheel disconnect failure", error=str(e))
        return True

    def filter_names(self) -> list[str]:
        """Filter names in slot order, trimmed and lower-cased.

        The list ends before the first blank name. TheSkyX's simulated
        wheel pads its list with blank slots, so the vendor's filter count
        is not used.
        """
        return clean_filter_names(self._channel.filter_names())

    def number_of_filters(self) -> int:
        return len(self.filter_names())


def clean_filter_names(raw_names: list[str]) -> list[str]:
    """Trim and lower-case names, stopping at the first blank one.

    Example:
        >>> clean_filter_names([" Red", "GREEN ", "", "Blue"])
        ['red', 'green']
    """
    names: list[str] = []
    for raw in raw_names:
        name = raw.strip().lower()
        if not name:
            break
        names.append(name)
    return names


__all__ = ["FilterWheelProbe", "clean_filter_names"]
