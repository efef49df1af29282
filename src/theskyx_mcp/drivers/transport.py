"""TCP transport for TheSkyX's scripting server.

TheSkyX answers exactly one script per TCP connection: the client connects,
writes the whole packet, reads the reply and disconnects. This module hides
that behind a one-method protocol so the driver can be tested with a mock
transport.

Protocols:
    Transport: send a packet, get the raw reply text back

Implementations:
    TcpTransport: real sockets, one connection per round trip

Example:
    # For testing - queue replies and inspect what was sent
    class MockTransport:
        def __init__(self):
            self.sent = []
            self.replies = ["1|No error. Error = 0."]

        def round_trip(self, host, port, packet):
            self.sent.append(packet)
            return self.replies.pop(0)

    driver = TheSkyXDriver(transport=MockTransport())
"""

from __future__ import annotations

import socket
import threading
from typing import Protocol, runtime_checkable

from theskyx_mcp.observability import get_logger

logger = get_logger(__name__)

#: Largest reply TheSkyX sends for the scripts this package issues.
MAX_REPLY_BYTES = 4096

#: Seconds to wait for connect and for the reply. Synchronous scripts such
#: as the download-time probe block until the camera has read out.
DEFAULT_SOCKET_TIMEOUT = 60.0


@runtime_checkable
class Transport(Protocol):  # pragma: no cover
    """Protocol for one request/reply exchange with TheSkyX.

    Business context: Abstracts the socket so driver tests can assert on
    the exact script text and feed canned replies, and so a future
    transport (SSH tunnel, serial bridge) needs no driver changes.
    """

    def round_trip(self, host: str, port: int, packet: str) -> str:
        """Send one packet and return the decoded reply.

        Args:
            host: TheSkyX host name or address.
            port: TheSkyX scripting port (normally 3040).
            packet: Complete script packet including header comments.

        Returns:
            Raw reply text, '<data>|<error line>'.

        Raises:
            OSError: On connect, send or receive failure.
        """
        ...


class TcpTransport:
    """Transport opening a fresh TCP connection per packet.

    Thread-safe: a lock serializes round trips so that packets from
    several services sharing one transport never interleave on the
    server side.
    """

    def __init__(self, timeout: float = DEFAULT_SOCKET_TIMEOUT) -> None:
        self._timeout = timeout
        self._lock = threading.Lock()

    def round_trip(self, host: str, port: int, packet: str) -> str:
        """Connect, write the whole packet, read one reply, disconnect.

        Raises:
            OSError: If the connection cannot be opened or the exchange
                fails. ``socket.timeout`` is a subclass.
        """
        payload = packet.encode()
        with self._lock:
            logger.debug("Opening socket", host=host, port=port)
            with socket.create_connection((host, port), timeout=self._timeout) as conn:
                conn.sendall(payload)
                data = conn.recv(MAX_REPLY_BYTES)
            logger.debug("Socket closed", host=host, port=port, reply_bytes=len(data))
        return data.decode(errors="replace")
