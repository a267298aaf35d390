"""WebSocket server module for streaming display snapshots to clients."""

from .server import SnapshotWebSocketServer
from .broadcaster import MessageBroadcaster

__all__ = [
    'SnapshotWebSocketServer',
    'MessageBroadcaster',
]
