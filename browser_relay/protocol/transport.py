"""Transports the router can write frames to."""

from __future__ import annotations

import json
from typing import Any, Protocol

from fastapi import WebSocket, WebSocketDisconnect
from fastapi.encoders import jsonable_encoder


class Transport(Protocol):
    """What the router needs from a connection."""

    async def send_json(self, payload: dict[str, Any]) -> None: ...

    async def close(self, code: int = 1000, reason: str = "") -> None: ...


class WebSocketTransport:
    """Thin wrapper around a FastAPI ``WebSocket``."""

    def __init__(self, websocket: WebSocket) -> None:
        self._websocket = websocket

    @property
    def client(self) -> Any:
        return self._websocket.client

    async def accept(self) -> None:
        await self._websocket.accept()

    async def receive_frame(self) -> str | bytes:
        """Next text or binary frame; raises ``WebSocketDisconnect`` on close."""
        message = await self._websocket.receive()
        if message["type"] == "websocket.disconnect":
            raise WebSocketDisconnect(message.get("code", 1000), message.get("reason"))
        if message.get("text") is not None:
            return message["text"]
        return message.get("bytes") or b""

    async def send_json(self, payload: dict[str, Any]) -> None:
        await self._websocket.send_text(json.dumps(jsonable_encoder(payload)))

    async def close(self, code: int = 1000, reason: str = "") -> None:
        await self._websocket.close(code=code, reason=reason)
