"""Fan-out of change events to dashboard WebSocket clients."""
import asyncio
import json
import logging
from typing import Set

from fastapi import WebSocket

from .events import ChangeEvent

logger = logging.getLogger(__name__)


class ConnectionManager:
    """Tracks connected clients; a client whose send fails is dropped."""

    def __init__(self):
        self.clients: Set[WebSocket] = set()

    async def connect(self, websocket: WebSocket):
        await websocket.accept()
        self.clients.add(websocket)
        logger.info(f"Live client connected ({len(self.clients)} total)")

    async def disconnect(self, websocket: WebSocket):
        self.clients.discard(websocket)
        logger.info(f"Live client disconnected ({len(self.clients)} total)")

    async def handle_event(self, event: ChangeEvent):
        """EventBus listener: send the event to every client as one JSON text frame."""
        if not self.clients:
            return

        text = json.dumps(event.to_message(), default=str)
        clients = list(self.clients)
        results = await asyncio.gather(
            *(client.send_text(text) for client in clients),
            return_exceptions=True,
        )
        for client, result in zip(clients, results):
            if isinstance(result, Exception):
                logger.debug(f"Dropping live client after send failure: {result}")
                self.clients.discard(client)

    @property
    def connection_count(self) -> int:
        return len(self.clients)
