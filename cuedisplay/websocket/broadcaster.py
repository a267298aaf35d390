"""Per-client message queues for snapshot clients."""

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from websockets.asyncio.server import ServerConnection
from websockets.exceptions import ConnectionClosed


logger = logging.getLogger(__name__)


@dataclass
class _Client:
    queue: asyncio.Queue
    sender: asyncio.Task


class MessageBroadcaster:
    """
    Fans messages out to connected WebSocket clients.

    Each client gets a bounded queue drained by its own sender task. A
    broadcast only enqueues, so a slow client never delays the others; when a
    client's queue is full, that client misses the message. Messages to one
    client are delivered in the order they were queued.
    """

    def __init__(self, queue_size: int = 100):
        self.queue_size = queue_size
        self.clients: Dict[ServerConnection, _Client] = {}
        self._lock = asyncio.Lock()

    async def register(self, websocket: ServerConnection) -> None:
        async with self._lock:
            if websocket in self.clients:
                return
            queue: asyncio.Queue = asyncio.Queue(maxsize=self.queue_size)
            sender = asyncio.create_task(self._drain(websocket, queue))
            self.clients[websocket] = _Client(queue, sender)
            logger.info(f"Display client connected ({len(self.clients)} total)")

    async def unregister(self, websocket: ServerConnection) -> None:
        async with self._lock:
            client = self.clients.pop(websocket, None)
        if client is None:
            return

        # The sender task unregisters its own client after a failed send
        if client.sender is not asyncio.current_task():
            client.sender.cancel()
            try:
                await client.sender
            except asyncio.CancelledError:
                pass

        logger.info(f"Display client disconnected ({len(self.clients)} total)")

    async def broadcast(self, message: Dict[str, Any]) -> None:
        """Queue a message for every connected client."""
        payload = _encode(message)
        if payload is None:
            return
        async with self._lock:
            targets = list(self.clients.values())
        for client in targets:
            _enqueue(client, payload)

    async def send_to_client(self, websocket: ServerConnection, message: Dict[str, Any]) -> None:
        """Queue a message for one client; unknown clients are ignored."""
        payload = _encode(message)
        if payload is None:
            return
        async with self._lock:
            client = self.clients.get(websocket)
        if client is not None:
            _enqueue(client, payload)

    async def _drain(self, websocket: ServerConnection, queue: asyncio.Queue) -> None:
        while True:
            payload = await queue.get()
            try:
                await websocket.send(payload)
            except ConnectionClosed as e:
                logger.warning(f"Dropping display client: {e}")
                await self.unregister(websocket)
                return
            queue.task_done()

    def get_client_count(self) -> int:
        return len(self.clients)

    async def close_all(self) -> None:
        async with self._lock:
            connections = list(self.clients)
        for websocket in connections:
            await self.unregister(websocket)
            await websocket.close()
        logger.info("All display clients closed")


def _encode(message: Dict[str, Any]) -> Optional[str]:
    try:
        return json.dumps(message)
    except (TypeError, ValueError) as e:
        logger.error(f"Cannot serialize {message.get('type')} message: {e}")
        return None


def _enqueue(client: _Client, payload: str) -> None:
    try:
        client.queue.put_nowait(payload)
    except asyncio.QueueFull:
        logger.warning("Display client is not keeping up, dropping message")
