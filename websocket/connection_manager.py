"""WebSocket connection management with named delivery channels"""
import json
import logging
import uuid
from typing import Iterable
from fastapi import WebSocket

logger = logging.getLogger(__name__)


class Connection:
    """One client socket plus the channels it is subscribed to"""

    def __init__(self, websocket: WebSocket) -> None:
        self.websocket = websocket
        self.sid: str = uuid.uuid4().hex
        self.channels: set[str] = set()

    async def emit(self, event: str, data) -> None:
        """Send one outbound event frame to this connection only"""
        await self.websocket.send_text(json.dumps({"event": event, "data": data}))

    def __repr__(self) -> str:
        return f"Connection(sid={self.sid!r})"


class ConnectionManager:
    """Tracks live connections and the channels they joined

    A channel is a name (a user identity or a group id). Emitting to a set of
    channels reaches every subscribed connection exactly once.
    """

    def __init__(self) -> None:
        """Initialize connection manager with no connections or channels"""
        self.active_connections: list[Connection] = []
        self.channels: dict[str, set[Connection]] = {}

    async def connect(self, websocket: WebSocket) -> Connection:
        """Accept and track a new WebSocket connection"""
        await websocket.accept()
        connection = Connection(websocket)
        self.active_connections.append(connection)
        return connection

    def disconnect(self, connection: Connection) -> None:
        """Forget a connection and drop it from every channel"""
        if connection in self.active_connections:
            self.active_connections.remove(connection)
        for channel in connection.channels:
            subscribers = self.channels.get(channel)
            if subscribers is None:
                continue
            subscribers.discard(connection)
            if not subscribers:
                del self.channels[channel]
        connection.channels.clear()

    def join(self, connection: Connection, channel: str) -> None:
        """Subscribe a connection to a channel (no-op if already subscribed)"""
        self.channels.setdefault(channel, set()).add(connection)
        connection.channels.add(channel)

    def subscribers(self, channel: str) -> set[Connection]:
        """Snapshot of the connections subscribed to a channel"""
        return set(self.channels.get(channel, ()))

    async def emit(self, event: str, data, channels: str | Iterable[str], exclude: Connection | None = None) -> int:
        """Send an event to every connection subscribed to any of the channels

        Args:
            event: Outbound event name
            data: JSON-serializable payload
            channels: One channel name or several; a connection in several of them gets one copy
            exclude: Connection to skip (e.g. the sender of a join)

        Returns: Number of connections the event was delivered to
        """
        if isinstance(channels, str):
            channels = [channels]
        targets: list[Connection] = []
        for channel in channels:
            for connection in self.subscribers(channel):
                if connection is not exclude and connection not in targets:
                    targets.append(connection)

        delivered = 0
        disconnected: list[Connection] = []

        for connection in targets:
            try:
                await connection.emit(event, data)
                delivered += 1
            except Exception as e:
                logger.warning("Error sending %s to %r: %s", event, connection, e)
                disconnected.append(connection)

        # Clean up disconnected clients
        for connection in disconnected:
            self.disconnect(connection)
        return delivered

    def get_connection_count(self) -> int:
        """Get the number of active connections"""
        return len(self.active_connections)
