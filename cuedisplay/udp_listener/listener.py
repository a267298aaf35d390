"""
UDP listener service for receiving cue updates over OSC.

Runs a dedicated background thread that receives UDP packets, parses them as
OSC, maps /cue, /description and /color onto display fields, and applies the
result to the shared display state. The thread is the only writer of that
state.

Bad packets never stop the loop: decode failures are counted and logged,
unrecognized messages are dropped quietly. Only a failure to bind the socket
is reported to the caller.
"""

import time
import logging
import threading
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from .osc_parser import parse_osc_message, MalformedPacketError, UnsupportedPacketError
from .packet_source import PacketSource, PacketSourceClosed, StartupError
from ..config import ListenerConfig
from ..constants import ListenerDefaults
from ..state.display_state import FieldUpdate, SharedDisplayState
from ..state.field_mapper import map_message
from ..utils.metrics import MetricsCollector


logger = logging.getLogger(__name__)


class ListenerState(Enum):
    """Lifecycle of a CueListener. STOPPED is terminal."""
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"


class CueListener:
    """
    Background OSC listener feeding a SharedDisplayState.

    The listener object doubles as the lifecycle handle: start() binds the
    socket and spawns the thread, stop() cancels it and releases the socket.
    A stopped listener cannot be started again.
    """

    def __init__(
        self,
        display: Optional[SharedDisplayState] = None,
        config: Optional[ListenerConfig] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        """
        Args:
            display: State to publish into (a fresh one is created if omitted)
            config: Network settings (defaults: 0.0.0.0:9000)
            metrics: Shared metrics collector
        """
        self.display = display or SharedDisplayState()
        self.config = config or ListenerConfig()
        self.metrics = metrics or MetricsCollector()
        self.error: Optional[Exception] = None

        self._source = PacketSource(
            host=self.config.host,
            port=self.config.port,
            buffer_size=self.config.buffer_size,
            poll_interval=self.config.poll_interval,
        )
        self._cancel = threading.Event()
        self._lifecycle_lock = threading.Lock()
        self._state = ListenerState.STARTING
        self._thread: Optional[threading.Thread] = None

        self._stats_lock = threading.Lock()
        self.stats = {
            "packets_received": 0,
            "packets_applied": 0,
            "malformed": 0,
            "unsupported": 0,
            "mapping_misses": 0,
            "processing_errors": 0,
            "last_packet_at": None,
        }

    @property
    def state(self) -> ListenerState:
        return self._state

    @property
    def port(self) -> Optional[int]:
        """Bound UDP port (resolves port 0 to the ephemeral port)."""
        return self._source.port

    @property
    def is_running(self) -> bool:
        return self._state is ListenerState.RUNNING

    def start(self) -> 'CueListener':
        """
        Bind the socket and start the receive thread.

        Raises:
            StartupError: If the socket cannot be bound
            RuntimeError: If the listener was already started
        """
        with self._lifecycle_lock:
            if self._state is not ListenerState.STARTING or self._thread is not None:
                raise RuntimeError(f"Listener cannot be started from state {self._state.value}")

            try:
                self._source.open()
            except StartupError as e:
                self._state = ListenerState.STOPPED
                self.error = e
                logger.error(f"UDP listener failed to start: {e}")
                raise

            self._thread = threading.Thread(
                target=self._receive_loop,
                name=f"cue-listener-{self.port}",
                daemon=True,
            )
            self._state = ListenerState.RUNNING
            self._thread.start()

        logger.info(f"UDP listener started on {self.config.host}:{self.port}")
        return self

    def stop(self, timeout: Optional[float] = None) -> None:
        """
        Cancel the receive thread and release the socket.

        Returns within one poll interval under normal conditions. Calling stop()
        on an already stopped listener does nothing.

        Args:
            timeout: Maximum time to wait for the thread (default: poll interval + grace)
        """
        with self._lifecycle_lock:
            if self._state is ListenerState.STOPPED:
                return
            if self._thread is None:
                # Never started
                self._state = ListenerState.STOPPED
                return
            self._state = ListenerState.STOPPING

        self._cancel.set()

        if timeout is None:
            timeout = self.config.poll_interval + ListenerDefaults.JOIN_GRACE_SECONDS
        if self._thread is not threading.current_thread():
            self._thread.join(timeout)
            if self._thread.is_alive():
                logger.warning(f"Listener thread did not exit within {timeout:.2f}s")

        self._source.close()

        with self._lifecycle_lock:
            self._state = ListenerState.STOPPED

        stats = self.get_stats()
        logger.info(
            f"UDP listener stopped (received={stats['packets_received']}, "
            f"applied={stats['packets_applied']}, malformed={stats['malformed']}, "
            f"unsupported={stats['unsupported']})"
        )

    def wait(self, timeout: Optional[float] = None) -> bool:
        """
        Block until the receive thread has exited.

        Returns:
            True if the thread is gone, False on timeout
        """
        if self._thread is None:
            return True
        self._thread.join(timeout)
        return not self._thread.is_alive()

    def _receive_loop(self) -> None:
        """Main receive loop, runs on the listener thread."""
        try:
            while not self._cancel.is_set():
                try:
                    packet = self._source.receive(self._cancel)
                except PacketSourceClosed as e:
                    self.error = e
                    logger.error(f"UDP listener socket failed, stopping: {e}")
                    break

                if packet is None:
                    break

                try:
                    self.handle_packet(packet.data, packet.sender)
                except Exception:
                    logger.exception(f"Unexpected error processing packet from {packet.sender}")
                    self._count("processing_errors")
                    self.metrics.increment('udp.packet.error')
        finally:
            with self._lifecycle_lock:
                if self._state is ListenerState.RUNNING:
                    # Socket died on its own, nobody is going to call stop()
                    self._source.close()
                    self._state = ListenerState.STOPPED

    def handle_packet(self, data: bytes, sender: Tuple[str, int] = ("", 0)) -> Optional[FieldUpdate]:
        """
        Decode, map and apply a single datagram.

        Args:
            data: Raw packet bytes
            sender: Source address, used for diagnostics only

        Returns:
            The applied FieldUpdate, or None if the packet was dropped
        """
        self._count("packets_received")
        with self._stats_lock:
            self.stats["last_packet_at"] = time.time()
        self.metrics.increment('udp.packet.received')

        with self.metrics.timer('packet.processing'):
            try:
                msg = parse_osc_message(data)
            except MalformedPacketError as e:
                self._count("malformed")
                self.metrics.increment('udp.decode.malformed')
                logger.warning(f"Dropping malformed packet from {sender[0]}:{sender[1]}: {e}")
                return None
            except UnsupportedPacketError as e:
                self._count("unsupported")
                self.metrics.increment('udp.decode.unsupported')
                logger.warning(f"Dropping unsupported packet from {sender[0]}:{sender[1]}: {e}")
                return None

            update = map_message(msg)
            if update is None:
                self._count("mapping_misses")
                self.metrics.increment('mapping.miss')
                return None

            self.display.apply(update)

        self._count("packets_applied")
        self.metrics.increment('state.update.applied', tags={'field': update.field})
        logger.debug(f"{msg.address} -> {update.value!r}")
        return update

    def _count(self, key: str) -> None:
        with self._stats_lock:
            self.stats[key] += 1

    def get_stats(self) -> Dict[str, Any]:
        """
        Get listener statistics.

        Returns:
            dict: Packet counters plus lifecycle state and bound port
        """
        with self._stats_lock:
            stats = dict(self.stats)
        stats["state"] = self._state.value
        stats["port"] = self.port
        return stats


ListenerHandle = CueListener


def start(
    port: int,
    display: Optional[SharedDisplayState] = None,
    host: str = ListenerDefaults.HOST,
    metrics: Optional[MetricsCollector] = None,
    poll_interval: float = ListenerDefaults.POLL_INTERVAL_SECONDS,
) -> ListenerHandle:
    """
    Start listening for cue updates on a UDP port.

    Args:
        port: UDP port (0 picks a free port, see handle.port)
        display: State to publish into
        host: Interface to bind to
        metrics: Shared metrics collector
        poll_interval: Shutdown responsiveness bound in seconds

    Returns:
        ListenerHandle for stop() and diagnostics

    Raises:
        StartupError: If the socket cannot be bound
    """
    try:
        config = ListenerConfig(host=host, port=port, poll_interval=poll_interval)
    except ValueError as e:
        raise StartupError(host, port, str(e)) from e
    return CueListener(display=display, config=config, metrics=metrics).start()


def stop(handle: ListenerHandle) -> None:
    """Stop a listener started with start()."""
    handle.stop()
