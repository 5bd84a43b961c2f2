# FILE: codeplanner/gateway/connections.py
"""
Client connection tracking for the gateway.

A Connection wraps anything with an async send_text(str), normally a
FastAPI WebSocket. Sends are serialized per connection because several
job relays may target the same socket concurrently.
"""

import asyncio
import logging
import time
from typing import Dict, List, Optional, Protocol
from uuid import uuid4

from codeplanner.errors import GatewayConnectionError
from codeplanner.jobs.schemas import ClientMessage

logger = logging.getLogger(__name__)


class TextSender(Protocol):
    async def send_text(self, data: str) -> None:
        ...


class Connection:
    def __init__(self, sender: TextSender, owner_id: str, connection_id: Optional[str] = None):
        self.connection_id = connection_id or str(uuid4())
        self.owner_id = owner_id
        self.connected_at = time.time()
        self.open = True
        self._sender = sender
        self._send_lock = asyncio.Lock()

    async def send(self, message: ClientMessage) -> None:
        """Send one client message. Raises GatewayConnectionError if the transport is gone."""
        if not self.open:
            raise GatewayConnectionError(f"Connection {self.connection_id} is closed")
        async with self._send_lock:
            try:
                await self._sender.send_text(message.to_json())
            except Exception as e:
                # Starlette raises several types once the socket is gone
                self.open = False
                raise GatewayConnectionError(
                    f"Send to connection {self.connection_id} failed: {e}"
                ) from e

    def close(self) -> None:
        self.open = False


class ConnectionTable:
    def __init__(self):
        self._connections: Dict[str, Connection] = {}

    def register(self, sender: TextSender, owner_id: str) -> Connection:
        conn = Connection(sender, owner_id)
        self._connections[conn.connection_id] = conn
        logger.info(
            "[gateway] client connected: %s (owner %s), %d open",
            conn.connection_id, owner_id, len(self._connections),
        )
        return conn

    def remove(self, connection_id: str) -> Optional[Connection]:
        conn = self._connections.pop(connection_id, None)
        if conn is not None:
            conn.close()
            logger.info(
                "[gateway] client disconnected: %s, %d open",
                connection_id, len(self._connections),
            )
        return conn

    def get(self, connection_id: str) -> Optional[Connection]:
        return self._connections.get(connection_id)

    def all(self) -> List[Connection]:
        return list(self._connections.values())

    def __len__(self) -> int:
        return len(self._connections)

    def __contains__(self, connection_id: str) -> bool:
        return connection_id in self._connections
