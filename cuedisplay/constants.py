"""
Constants for the cue display.

This module centralizes OSC addresses, network defaults and protocol
message types used by the listener and the snapshot publisher.
"""

from enum import Enum


class OSCAddress:
    """OSC addresses the display reacts to. Matching is exact and case-sensitive."""

    CUE = "/cue"
    DESCRIPTION = "/description"
    COLOR = "/color"


class ListenerDefaults:
    """Defaults for the UDP listener."""

    HOST = "0.0.0.0"
    PORT = 9000
    # Largest UDP payload
    BUFFER_SIZE = 65535

    # Receive timeout between cancellation checks; bounds shutdown latency
    POLL_INTERVAL_SECONDS = 0.2
    MAX_POLL_INTERVAL_SECONDS = 0.25

    # Extra time stop() waits for the thread beyond one poll interval
    JOIN_GRACE_SECONDS = 1.0


class WebSocketDefaults:
    """Defaults for the snapshot WebSocket server."""

    HOST = "localhost"
    PORT = 8765

    # Snapshot poll period (the display repaints every 100ms)
    POLL_INTERVAL_SECONDS = 0.1

    CLIENT_QUEUE_SIZE = 100


class MessageType(str, Enum):
    """WebSocket message types."""

    STATE = "STATE"
    STATS = "STATS"
    ERROR = "ERROR"
    ACK = "ACK"
