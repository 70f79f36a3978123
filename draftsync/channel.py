from __future__ import annotations

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from typing import AsyncIterator, Dict, List

import websockets

from .protocol import PROTOCOL_VERSION, decode

LOGGER = logging.getLogger("draft_channel")


class Channel(ABC):
    @abstractmethod
    async def publish(self, message: Dict[str, object]) -> None:
        """Send one event message. Raises ConnectionError on transport failure."""

    @abstractmethod
    def messages(self) -> AsyncIterator[Dict[str, object]]:
        """Incoming event messages, in relay order."""

    async def close(self) -> None:
        return None


class LocalHub:
    """In-process relay used by tests and simulations."""

    def __init__(self) -> None:
        self.subscribers: Dict[str, List[LocalChannel]] = {}
        self.history: Dict[str, List[Dict[str, object]]] = {}

    def channel(self, session_id: str) -> LocalChannel:
        channel = LocalChannel(self, session_id)
        for message in self.history.get(session_id, []):
            channel.queue.put_nowait(message)
        self.subscribers.setdefault(session_id, []).append(channel)
        return channel

    def deliver(self, session_id: str, message: Dict[str, object]) -> None:
        history = self.history.setdefault(session_id, [])
        body = {"type": "event", "v": PROTOCOL_VERSION, "seq": len(history) + 1}
        body.update(message)
        history.append(body)
        for channel in self.subscribers.get(session_id, []):
            if not channel.closed:
                channel.queue.put_nowait(body)


class LocalChannel(Channel):
    def __init__(self, hub: LocalHub, session_id: str) -> None:
        self.hub = hub
        self.session_id = session_id
        self.queue: asyncio.Queue = asyncio.Queue()
        self.closed = False

    async def publish(self, message: Dict[str, object]) -> None:
        if self.closed:
            raise ConnectionError("Channel closed")
        self.hub.deliver(self.session_id, message)

    async def messages(self) -> AsyncIterator[Dict[str, object]]:
        while not self.closed:
            message = await self.queue.get()
            if message is None:
                break
            yield message

    async def close(self) -> None:
        self.closed = True
        self.queue.put_nowait(None)


class WebSocketChannel(Channel):
    """Client side of the relay server."""

    def __init__(self, url: str, session_id: str, player_id: str) -> None:
        self.url = url
        self.session_id = session_id
        self.player_id = player_id
        self.websocket = None
        self.history: List[Dict[str, object]] = []

    async def connect(self) -> None:
        self.websocket = await websockets.connect(self.url)
        hello = {
            "type": "hello",
            "v": PROTOCOL_VERSION,
            "session_id": self.session_id,
            "player_id": self.player_id,
        }
        await self.websocket.send(json.dumps(hello))
        welcome = decode(await self.websocket.recv())
        if welcome.get("type") != "welcome":
            await self.websocket.close()
            raise ConnectionError(f"Relay refused connection: {welcome.get('msg', welcome)}")
        self.history = [decode(raw) for raw in welcome.get("history", [])]
        LOGGER.info("Joined session %s as %s (%s past events)", self.session_id, self.player_id, len(self.history))

    async def publish(self, message: Dict[str, object]) -> None:
        if self.websocket is None:
            raise ConnectionError("Channel not connected")
        try:
            await self.websocket.send(json.dumps({"type": "publish", "v": PROTOCOL_VERSION, "message": message}))
        except websockets.ConnectionClosed as exc:
            raise ConnectionError("Relay connection closed") from exc

    async def messages(self) -> AsyncIterator[Dict[str, object]]:
        for message in self.history:
            yield message
        if self.websocket is None:
            return
        try:
            async for raw in self.websocket:
                message = decode(raw)
                msg_type = message.get("type")
                if msg_type == "event":
                    yield message
                elif msg_type == "error":
                    LOGGER.warning("Relay error %s: %s", message.get("code"), message.get("msg"))
        except websockets.ConnectionClosed:
            LOGGER.info("Relay connection closed")

    async def close(self) -> None:
        if self.websocket is not None:
            await self.websocket.close()
