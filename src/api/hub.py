"""
Connection hub.

Maps each connection handle to an outbound queue. Sending only enqueues, so the session service can hand out events while
holding a session lock; one writer task per websocket drains the queue.
"""

import asyncio
import logging
from typing import Any

from fastapi import WebSocket
from starlette.websockets import WebSocketDisconnect

from src.services.sync import Event

logger = logging.getLogger(__name__)

Message = dict[str, Any]


class ConnectionHub:
    """Implements the Broadcaster protocol on top of asyncio queues."""

    def __init__(self) -> None:
        self._queues: dict[str, asyncio.Queue[Message]] = {}

    def register(self, handle: str) -> asyncio.Queue[Message]:
        queue: asyncio.Queue[Message] = asyncio.Queue()
        self._queues[handle] = queue
        return queue

    def unregister(self, handle: str) -> None:
        self._queues.pop(handle, None)

    def is_connected(self, handle: str) -> bool:
        return handle in self._queues

    def send(self, handle: str, event: Event) -> None:
        self.post(handle, event.to_message())

    def post(self, handle: str, message: Message) -> None:
        queue = self._queues.get(handle)
        if queue is None:
            logger.debug("Dropping %s for gone connection %s", message.get("type"), handle)
            return
        queue.put_nowait(message)


async def pump(websocket: WebSocket, queue: asyncio.Queue[Message]) -> None:
    """Writer task: forward everything queued for one connection, in order."""
    while True:
        message = await queue.get()
        try:
            await websocket.send_json(message)
        except (WebSocketDisconnect, RuntimeError):
            logger.debug("Connection closed while sending %s", message.get("type"))
            return
