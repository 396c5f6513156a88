"""WebSocket fan-out for live auction events.

Every connection receives global events; connections opened with a user id
also receive events addressed to that user's channel. Delivery is best
effort: a socket that fails to accept a message is dropped.
"""

import asyncio
import logging
from collections import defaultdict
from typing import Any, Dict, Optional, Set

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class ConnectionHub:
    def __init__(self) -> None:
        self._connections: Set[WebSocket] = set()
        self._by_user: Dict[str, Set[WebSocket]] = defaultdict(set)
        self._owners: Dict[WebSocket, str] = {}

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    async def connect(self, ws: WebSocket, user_id: Optional[str] = None) -> None:
        """Accept and register a WebSocket connection."""
        await ws.accept()
        self._connections.add(ws)
        if user_id:
            self._by_user[user_id].add(ws)
            self._owners[ws] = user_id

    def disconnect(self, ws: WebSocket) -> None:
        """Remove a WebSocket connection from every channel."""
        self._connections.discard(ws)
        user_id = self._owners.pop(ws, None)
        if user_id:
            channel = self._by_user.get(user_id)
            if channel is not None:
                channel.discard(ws)
                if not channel:
                    del self._by_user[user_id]

    async def emit_to_all(self, event: str, payload: Dict[str, Any]) -> None:
        await self._send(list(self._connections), event, payload)

    async def emit_to_user(self, user_id: str, event: str, payload: Dict[str, Any]) -> None:
        await self._send(list(self._by_user.get(user_id, ())), event, payload)

    async def _send(self, sockets, event: str, payload: Dict[str, Any]) -> None:
        if not sockets:
            return
        message = {"event": event, "data": payload}
        results = await asyncio.gather(
            *(ws.send_json(message) for ws in sockets), return_exceptions=True
        )
        for ws, result in zip(sockets, results):
            if isinstance(result, Exception):
                logger.debug(f"Dropping live connection after send failure: {result}")
                self.disconnect(ws)
