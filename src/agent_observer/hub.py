"""Broadcast hub fanning registry events out to connected observers."""

import asyncio
import contextlib
import logging

from fastapi import WebSocket, status

from .protocol import ObserverEvent, focus_request_message, parse_focus_request, snapshot_message
from .registry import AgentRegistry

logger = logging.getLogger(__name__)


class ObserverConnection:
    """One connected observer with its own ordered outbound queue.

    A writer task drains the queue onto the WebSocket, so a slow observer only
    delays its own messages. When the queue is full new messages for this
    observer are dropped.
    """

    def __init__(self, websocket: WebSocket, hub: "BroadcastHub", queue_size: int) -> None:
        self.websocket = websocket
        self.hub = hub
        self.queue: asyncio.Queue[str] = asyncio.Queue(maxsize=queue_size)
        self.dropped = 0
        self._writer: asyncio.Task[None] | None = None

    def start(self) -> None:
        self._writer = asyncio.create_task(self._drain())

    def enqueue(self, payload: str) -> bool:
        """Queue a serialized message for this observer.

        Returns:
            False if the message was dropped
        """
        try:
            self.queue.put_nowait(payload)
            return True
        except asyncio.QueueFull:
            self.dropped += 1
            logger.warning(f"Observer queue full, dropped message ({self.dropped} dropped so far)")
            return False

    async def _drain(self) -> None:
        while True:
            payload = await self.queue.get()
            try:
                await self.websocket.send_text(payload)
            except Exception as e:
                logger.debug(f"Send to observer failed, dropping connection: {e}")
                self.hub.unregister(self)
                return

    def stop(self) -> None:
        """Cancel the writer task unless called from inside it."""
        if self._writer is not None and self._writer is not asyncio.current_task():
            self._writer.cancel()

    async def close(self) -> None:
        self.stop()
        if self._writer is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await self._writer
        try:
            await self.websocket.close(code=status.WS_1001_GOING_AWAY)
        except Exception as e:
            logger.debug(f"Error closing observer connection: {e}")


class BroadcastHub:
    """Set of connected observers plus the announce operation."""

    def __init__(self, registry: AgentRegistry, queue_size: int = 256) -> None:
        """Initialize the hub.

        Args:
            registry: Registry used for snapshots and focus enrichment
            queue_size: Per-observer outbound queue bound
        """
        self.registry = registry
        self.queue_size = queue_size
        self.closed = False
        self._connections: set[ObserverConnection] = set()

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    def register(self, websocket: WebSocket) -> ObserverConnection:
        """Register an accepted WebSocket as an observer.

        The snapshot is queued in the same step the connection joins the set,
        so it precedes every later announcement on this connection.
        """
        connection = ObserverConnection(websocket, self, self.queue_size)
        connection.enqueue(snapshot_message(self.registry.list_all()).to_json())
        self._connections.add(connection)
        connection.start()
        logger.info(f"Observer connected ({len(self._connections)} total)")
        return connection

    def unregister(self, connection: ObserverConnection) -> None:
        if connection not in self._connections:
            return
        self._connections.discard(connection)
        connection.stop()
        logger.info(f"Observer disconnected ({len(self._connections)} total)")

    def announce(self, event: ObserverEvent) -> None:
        """Queue an event for every connected observer."""
        payload = event.to_json()
        logger.debug(f"Announcing {event.event_type.value} to {len(self._connections)} observers")
        for connection in list(self._connections):
            connection.enqueue(payload)

    def handle_inbound(self, raw: str | bytes) -> None:
        """Handle a frame sent by an observer.

        Focus requests are enriched from the registry and announced to all
        observers, the sender included. Everything else is dropped.
        """
        agent_id = parse_focus_request(raw)
        if agent_id is None:
            return
        self.announce(focus_request_message(agent_id, self.registry.get(agent_id)))

    async def close_all(self) -> None:
        """Close every observer connection and refuse new ones."""
        self.closed = True
        connections = list(self._connections)
        self._connections.clear()
        for connection in connections:
            await connection.close()
        if connections:
            logger.info(f"Closed {len(connections)} observer connections")
