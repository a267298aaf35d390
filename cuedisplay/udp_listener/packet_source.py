"""
UDP packet source for the cue listener.

Owns the bound UDP socket. The socket carries a short receive timeout so a
blocked receive() can notice a cancellation request within one poll interval.
"""

import errno
import socket
import logging
import threading
from dataclasses import dataclass
from typing import Optional, Tuple

from ..constants import ListenerDefaults


logger = logging.getLogger(__name__)

_DATAGRAM_TOO_LARGE = frozenset(
    code for code in (errno.EMSGSIZE, getattr(errno, "WSAEMSGSIZE", None)) if code is not None
)


class StartupError(Exception):
    """The listener socket could not be bound. Fatal, never retried."""

    def __init__(self, host: str, port: int, reason: str):
        super().__init__(f"Cannot listen on {host}:{port}: {reason}")
        self.host = host
        self.port = port
        self.reason = reason


class PacketSourceClosed(Exception):
    """The socket was closed or failed while receiving."""


@dataclass(frozen=True)
class RawPacket:
    """A received datagram and the address it came from."""
    data: bytes
    sender: Tuple[str, int]


class PacketSource:
    """
    Blocking UDP receiver with cooperative cancellation.

    Usage:
        with PacketSource(port=9000) as source:
            packet = source.receive(cancel_event)
    """

    def __init__(
        self,
        host: str = ListenerDefaults.HOST,
        port: int = ListenerDefaults.PORT,
        buffer_size: int = ListenerDefaults.BUFFER_SIZE,
        poll_interval: float = ListenerDefaults.POLL_INTERVAL_SECONDS,
    ):
        """
        Args:
            host: Interface to bind to (default: 0.0.0.0 for all interfaces)
            port: UDP port, 0 lets the OS pick a free one
            buffer_size: Largest datagram accepted in one read
            poll_interval: Receive timeout between cancellation checks
        """
        self.host = host
        self.requested_port = port
        self.buffer_size = buffer_size
        self.poll_interval = poll_interval
        self.socket: Optional[socket.socket] = None
        self._bound_port: Optional[int] = None

    @property
    def port(self) -> Optional[int]:
        """Port actually bound, None before open()."""
        return self._bound_port

    @property
    def is_open(self) -> bool:
        return self.socket is not None

    def open(self) -> None:
        """
        Bind the UDP socket.

        Raises:
            StartupError: If the port is invalid, in use, or not permitted
        """
        if self.socket is not None:
            return

        if not 0 <= self.requested_port <= 65535:
            raise StartupError(self.host, self.requested_port, "port must be in range 0-65535")

        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        try:
            # No SO_REUSEADDR: a second bind on the same UDP port must fail
            sock.bind((self.host, self.requested_port))
            sock.settimeout(self.poll_interval)
        except OSError as e:
            sock.close()
            raise StartupError(self.host, self.requested_port, e.strerror or str(e)) from e

        self.socket = sock
        self._bound_port = sock.getsockname()[1]
        logger.info(f"UDP socket bound on {self.host}:{self._bound_port}")

    def receive(self, cancel: threading.Event) -> Optional[RawPacket]:
        """
        Block until a datagram arrives or cancel is set.

        Returns:
            RawPacket, or None once cancellation was requested

        Raises:
            PacketSourceClosed: If the socket is closed or fails
        """
        while not cancel.is_set():
            sock = self.socket
            if sock is None:
                raise PacketSourceClosed("Socket is not open")
            try:
                data, addr = sock.recvfrom(self.buffer_size)
            except socket.timeout:
                continue
            except OSError as e:
                if cancel.is_set():
                    return None
                if e.errno in _DATAGRAM_TOO_LARGE:
                    # Windows reports oversized datagrams instead of truncating them
                    logger.warning(f"Dropping datagram larger than {self.buffer_size} bytes")
                    continue
                raise PacketSourceClosed(f"Socket error: {e}") from e
            return RawPacket(data=data, sender=(addr[0], addr[1]))
        return None

    def close(self) -> None:
        """Release the socket. Safe to call more than once."""
        sock, self.socket = self.socket, None
        if sock is not None:
            sock.close()
            logger.info(f"UDP socket on port {self._bound_port} closed")

    def __enter__(self) -> 'PacketSource':
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
