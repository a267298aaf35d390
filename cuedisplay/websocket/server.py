"""WebSocket server streaming display snapshots to display clients."""

import asyncio
import json
import logging
from typing import Optional

from websockets.asyncio.server import Server, ServerConnection, serve
from websockets.exceptions import ConnectionClosed

from .broadcaster import MessageBroadcaster
from .serializers import (
    create_state_message,
    create_stats_message,
    create_error_message,
    create_ack_message,
)
from ..constants import WebSocketDefaults
from ..state.display_state import SharedDisplayState
from ..udp_listener.listener import CueListener
from ..utils.metrics import MetricsCollector, MetricsExporter


logger = logging.getLogger(__name__)


class SnapshotWebSocketServer:
    """
    Publishes the shared display state to WebSocket clients.

    This is a reader of SharedDisplayState: it polls snapshot() on a timer and
    broadcasts a STATE message whenever the snapshot version changes. New
    clients get the current state right after connecting.
    """

    def __init__(
        self,
        display: SharedDisplayState,
        listener: Optional[CueListener] = None,
        metrics: Optional[MetricsCollector] = None,
        host: str = WebSocketDefaults.HOST,
        port: int = WebSocketDefaults.PORT,
        poll_interval: float = WebSocketDefaults.POLL_INTERVAL_SECONDS,
    ):
        """
        Args:
            display: State to publish
            listener: Listener whose stats are reported on get_stats requests
            metrics: Metrics collector (defaults to the listener's)
            host: Host address to bind to
            port: Port to listen on (0 picks a free port)
            poll_interval: Seconds between snapshot checks
        """
        self.display = display
        self.listener = listener
        self.metrics = metrics or (listener.metrics if listener else MetricsCollector())
        self.host = host
        self.port = port
        self.poll_interval = poll_interval
        self.broadcaster = MessageBroadcaster(queue_size=WebSocketDefaults.CLIENT_QUEUE_SIZE)
        self.server: Optional[Server] = None
        self._watch_task: Optional[asyncio.Task] = None
        self._last_version = -1
        self._running = False

    async def start(self) -> None:
        """Start serving and watching the display state."""
        if self._running:
            logger.warning("Server is already running")
            return

        self.server = await serve(self._handle_client, self.host, self.port)
        # Resolve port 0 to the port actually bound
        self.port = self.server.sockets[0].getsockname()[1]
        self._running = True
        self._watch_task = asyncio.create_task(self._watch_state())
        logger.info(f"WebSocket server started on ws://{self.host}:{self.port}")

    async def stop(self) -> None:
        """Stop the WebSocket server."""
        if not self._running:
            return

        logger.info("Stopping WebSocket server")
        self._running = False

        if self._watch_task:
            self._watch_task.cancel()
            try:
                await self._watch_task
            except asyncio.CancelledError:
                pass
            self._watch_task = None

        await self.broadcaster.close_all()

        if self.server:
            self.server.close()
            await self.server.wait_closed()
            self.server = None

        logger.info("WebSocket server stopped")

    async def _watch_state(self) -> None:
        """Broadcast the snapshot whenever its version changes."""
        while True:
            await self.publish_if_changed()
            await asyncio.sleep(self.poll_interval)

    async def publish_if_changed(self) -> bool:
        """
        Broadcast the current snapshot if it differs from the last one sent.

        Returns:
            True if a STATE message was broadcast
        """
        snapshot = self.display.snapshot()
        if snapshot.version == self._last_version:
            return False
        self._last_version = snapshot.version
        await self.broadcaster.broadcast(create_state_message(snapshot))
        return True

    async def _handle_client(self, websocket: ServerConnection) -> None:
        """Handle a client connection."""
        await self.broadcaster.register(websocket)
        self.metrics.gauge('websocket.clients', self.broadcaster.get_client_count())

        try:
            await self.broadcaster.send_to_client(
                websocket, create_state_message(self.display.snapshot())
            )

            async for message_str in websocket:
                try:
                    message = json.loads(message_str)
                except json.JSONDecodeError as e:
                    logger.error(f"Invalid JSON from client: {e}")
                    await self.broadcaster.send_to_client(
                        websocket, create_error_message("Invalid JSON", str(e))
                    )
                    continue

                if not isinstance(message, dict):
                    await self.broadcaster.send_to_client(
                        websocket, create_error_message("Invalid message", "Expected a JSON object")
                    )
                    continue

                await self._handle_message(message, websocket)

        except ConnectionClosed:
            logger.info("Client connection closed")
        finally:
            await self.broadcaster.unregister(websocket)
            self.metrics.gauge('websocket.clients', self.broadcaster.get_client_count())

    async def _handle_message(self, message: dict, websocket: ServerConnection) -> None:
        msg_type = message.get('type')
        logger.debug(f"Received message from client: {msg_type}")

        if msg_type == 'get_state':
            reply = create_state_message(self.display.snapshot())
        elif msg_type == 'get_stats':
            listener_stats = self.listener.get_stats() if self.listener else None
            summary = MetricsExporter.to_summary(self.metrics.get_all_metrics())
            reply = create_stats_message(listener_stats, summary)
        else:
            reply = create_ack_message(message.get('request_id'))

        await self.broadcaster.send_to_client(websocket, reply)

    def get_client_count(self) -> int:
        return self.broadcaster.get_client_count()

    def is_running(self) -> bool:
        return self._running
