"""
Reload broadcaster for the live-reload development server

Tracks the browsers connected to ``/__livereload`` and pushes them:
- Full page reloads
- Stylesheet injection for CSS-only changes
- In-page notifications (build failures)
"""

import asyncio
import json
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any

from fastapi import WebSocket, WebSocketDisconnect

HEARTBEAT_TIMEOUT = 5.0


class EventType(Enum):
    """Types of events sent to browsers."""

    RELOAD = "reload"
    INJECT_CSS = "inject_css"
    NOTIFY = "notify"

    SYSTEM_STATUS = "system_status"
    CONNECTION_ESTABLISHED = "connection_established"


@dataclass
class WebSocketEvent:
    """Represents a WebSocket event."""

    event_type: EventType
    data: dict[str, Any]
    timestamp: float | None = None

    def __post_init__(self) -> None:
        """Set timestamp if not provided."""
        if self.timestamp is None:
            self.timestamp = time.time()

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "event_type": self.event_type.value,
            "data": self.data,
            "timestamp": self.timestamp,
        }


class ReloadManager:
    """
    Keeps the set of connected browsers and broadcasts reload events to them.

    A browser whose socket fails during a send is dropped; the client script
    reconnects on its own.
    """

    def __init__(self) -> None:
        self.logger = logging.getLogger(__name__)

        self._connections: set[WebSocket] = set()
        self._next_connection_id = 1

        self.stats = {
            "total_connections": 0,
            "current_connections": 0,
            "events_sent": 0,
            "reloads": 0,
            "broadcast_errors": 0,
        }

    async def connect(self, websocket: WebSocket) -> None:
        """Accept a browser connection and greet it."""
        try:
            await websocket.accept()
        except Exception as e:
            self.logger.error(f"Error accepting WebSocket connection: {e}")
            return

        connection_id = self._next_connection_id
        self._next_connection_id += 1
        self._connections.add(websocket)
        self.stats["total_connections"] += 1
        self.stats["current_connections"] = len(self._connections)
        self.logger.info(f"Browser #{connection_id} connected ({len(self._connections)} active)")

        greeting = WebSocketEvent(
            event_type=EventType.CONNECTION_ESTABLISHED,
            data={
                "message": "Connected to live-reload server",
                "connection_id": connection_id,
                "active_connections": len(self._connections),
            },
        )
        try:
            await self._send_to_client(websocket, greeting)
        except Exception:
            await self.disconnect(websocket)

    async def disconnect(self, websocket: WebSocket) -> None:
        """Forget a browser connection."""
        if websocket in self._connections:
            self._connections.discard(websocket)
            self.logger.info(f"Browser disconnected ({len(self._connections)} active)")
        self.stats["current_connections"] = len(self._connections)

    async def cleanup_stale_connections(self) -> None:
        """Send a heartbeat to every browser and drop those that do not take it."""
        heartbeat = WebSocketEvent(event_type=EventType.SYSTEM_STATUS, data={"message": "heartbeat"})
        stale = []
        for websocket in list(self._connections):
            try:
                await asyncio.wait_for(self._send_to_client(websocket, heartbeat), timeout=HEARTBEAT_TIMEOUT)
            except Exception:
                stale.append(websocket)

        for websocket in stale:
            await self.disconnect(websocket)
        if stale:
            self.logger.info(f"Dropped {len(stale)} stale browser connections")

    async def handle_client_message(self, websocket: WebSocket, message: str) -> None:
        """
        Answer a message from a browser.

        ``ping`` gets a ``pong``; anything else gets an error event.
        """
        try:
            data = json.loads(message)
        except json.JSONDecodeError:
            data = None

        if not isinstance(data, dict):
            reply = {"error": "Invalid JSON message"}
        elif data.get("type") == "ping":
            reply = {"message": "pong", "server_time": data.get("timestamp")}
        else:
            reply = {"error": f"Unknown message type: {data.get('type', 'unknown')}"}

        self.logger.debug(f"Browser message answered with {reply}")
        await self._send_to_client(websocket, WebSocketEvent(event_type=EventType.SYSTEM_STATUS, data=reply))

    async def broadcast(self, event: WebSocketEvent) -> int:
        """
        Send an event to every connected browser.

        Returns:
            Number of browsers that received the event
        """
        delivered = 0
        for websocket in list(self._connections):
            try:
                await self._send_to_client(websocket, event)
            except Exception as e:
                self.logger.warning(f"Dropping browser after failed {event.event_type.value} send: {e}")
                self.stats["broadcast_errors"] += 1
                await self.disconnect(websocket)
            else:
                delivered += 1

        self.stats["events_sent"] += delivered
        self.logger.debug(f"Sent {event.event_type.value} to {delivered} browsers")
        return delivered

    async def _send_to_client(self, websocket: WebSocket, event: WebSocketEvent) -> None:
        try:
            await websocket.send_text(json.dumps(event.to_dict()))
        except WebSocketDisconnect:
            await self.disconnect(websocket)
            raise

    async def broadcast_reload(self, path: str | None = None) -> int:
        """
        Ask browsers to reload.

        A stylesheet path is injected in place; anything else reloads the page.

        Returns:
            Number of clients notified
        """
        self.stats["reloads"] += 1
        if path is not None and path.endswith(".css"):
            event = WebSocketEvent(event_type=EventType.INJECT_CSS, data={"path": path})
        else:
            event = WebSocketEvent(event_type=EventType.RELOAD, data={"path": path})
        return await self.broadcast(event)

    async def broadcast_notify(self, message: str, level: str = "info") -> int:
        """Send an in-page notification."""
        event = WebSocketEvent(event_type=EventType.NOTIFY, data={"message": message, "level": level})
        return await self.broadcast(event)

    def get_connection_count(self) -> int:
        return len(self._connections)

    def get_stats(self) -> dict[str, Any]:
        self.stats["current_connections"] = len(self._connections)
        return self.stats.copy()

    async def periodic_cleanup_loop(self, interval: float = 300) -> None:
        """Drop stale connections every ``interval`` seconds until cancelled."""
        while True:
            await asyncio.sleep(interval)
            try:
                await self.cleanup_stale_connections()
            except Exception as e:
                self.logger.error(f"Error during periodic cleanup: {e}")
