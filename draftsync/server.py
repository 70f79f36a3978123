from __future__ import annotations

import asyncio
import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Deque, Dict, Optional

import websockets

from .protocol import decode, envelope, validate_event

LOGGER = logging.getLogger("draft_relay")

# RelayServer is the broadcast channel clients share. It keeps no draft rules:
# it orders, records and fans out whatever a session's members publish.


@dataclass
class SessionChannel:
    session_id: str
    history: Deque[str]
    subscribers: Dict[str, Any] = field(default_factory=dict)
    seq: int = 0


class RelayServer:
    def __init__(self, history_limit: int = 500) -> None:
        self.history_limit = history_limit
        self.sessions: Dict[str, SessionChannel] = {}
        self.lock = asyncio.Lock()

    async def start(self, host: str = "0.0.0.0", port: int = 8765) -> None:
        async with websockets.serve(self._handle_connection, host, port):
            LOGGER.info("Draft relay listening on %s:%s", host, port)
            await asyncio.Future()

    async def _handle_connection(self, websocket) -> None:
        # First message must be "hello" so we know which session to join.
        hello = await self._read_message(websocket)
        if hello is None or hello.get("type") != "hello":
            await self._send_error(websocket, code="BAD_HELLO", msg="Expected hello")
            await websocket.close()
            return
        session_id = hello.get("session_id")
        player_id = hello.get("player_id")
        if not isinstance(session_id, str) or not session_id.strip():
            await self._send_error(websocket, code="BAD_SCHEMA", msg="session_id required")
            await websocket.close()
            return
        if not isinstance(player_id, str) or not player_id.strip():
            await self._send_error(websocket, code="BAD_SCHEMA", msg="player_id required")
            await websocket.close()
            return

        channel = await self._subscribe(session_id, player_id, websocket)
        try:
            async for raw in websocket:
                message = decode(raw)
                if message.get("type") == "publish":
                    await self._handle_publish(channel, websocket, message)
                else:
                    await self._send_error(websocket, code="UNKNOWN_TYPE", msg="Unsupported message type")
        except websockets.ConnectionClosed:
            pass
        finally:
            async with self.lock:
                if channel.subscribers.get(player_id) is websocket:
                    channel.subscribers.pop(player_id, None)
            LOGGER.info("Player %s left session %s", player_id, session_id)

    async def _subscribe(self, session_id: str, player_id: str, websocket) -> SessionChannel:
        async with self.lock:
            channel = self.sessions.get(session_id)
            if channel is None:
                channel = SessionChannel(session_id, deque(maxlen=self.history_limit))
                self.sessions[session_id] = channel
            previous = channel.subscribers.get(player_id)
            channel.subscribers[player_id] = websocket
            history = list(channel.history)
        # Replace existing connection if any.
        if previous is not None and previous is not websocket:
            await previous.close(code=4000, reason="Replaced by new connection")
        LOGGER.info("Player %s joined session %s", player_id, session_id)
        await self._send_json(websocket, "welcome", {"session_id": session_id, "history": history})
        return channel

    async def _handle_publish(self, channel: SessionChannel, websocket, message: Dict[str, object]) -> None:
        body = message.get("message")
        if not isinstance(body, dict):
            await self._send_error(websocket, code="BAD_SCHEMA", msg="message object required")
            return
        if body.get("session_id") != channel.session_id:
            await self._send_error(websocket, code="BAD_SCHEMA", msg="session_id mismatch")
            return
        problem = validate_event(body.get("event"))
        if problem:
            await self._send_error(websocket, code="BAD_SCHEMA", msg=problem)
            return

        # Sequence, record and send under one lock so every subscriber sees one order.
        async with self.lock:
            channel.seq += 1
            payload = {
                "seq": channel.seq,
                "session_id": channel.session_id,
                "origin": body.get("origin"),
                "event_id": body.get("event_id"),
                "event": body["event"],
            }
            frame = envelope("event", payload)
            channel.history.append(frame)
            targets = list(channel.subscribers.values())
            await asyncio.gather(*(socket.send(frame) for socket in targets), return_exceptions=True)
        LOGGER.debug("Session %s seq=%s event=%s", channel.session_id, channel.seq, body["event"].get("ev"))

    async def _send_json(self, websocket, msg_type: str, payload: Dict[str, object]) -> None:
        try:
            await websocket.send(envelope(msg_type, payload))
        except websockets.ConnectionClosed:
            LOGGER.debug("Dropped %s for closed connection", msg_type)

    async def _send_error(self, websocket, code: str, msg: str) -> None:
        await self._send_json(websocket, "error", {"code": code, "msg": msg})

    async def _read_message(self, websocket) -> Optional[Dict[str, object]]:
        try:
            raw = await asyncio.wait_for(websocket.recv(), timeout=5)
        except (asyncio.TimeoutError, websockets.ConnectionClosed):
            return None
        return decode(raw)
