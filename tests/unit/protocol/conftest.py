"""Shared fixtures for router tests: an in-memory transport and helpers."""

from __future__ import annotations

import asyncio
import json
from typing import Any

import pytest

from browser_relay.core.config import Settings
from browser_relay.protocol.router import Connection, ProtocolRouter


class FakeTransport:
    """Records outbound frames; ``next_frame`` waits for the next one."""

    def __init__(self) -> None:
        self.sent: list[dict[str, Any]] = []
        self.outbox: asyncio.Queue[dict[str, Any]] = asyncio.Queue()
        self.closed_with: tuple[int, str] | None = None

    async def send_json(self, payload: dict[str, Any]) -> None:
        if self.closed_with is not None:
            raise RuntimeError("transport closed")
        self.sent.append(payload)
        await self.outbox.put(payload)

    async def close(self, code: int = 1000, reason: str = "") -> None:
        self.closed_with = (code, reason)

    async def next_frame(self, timeout: float = 1.0) -> dict[str, Any]:
        return await asyncio.wait_for(self.outbox.get(), timeout)


@pytest.fixture
def settings():
    return Settings(COMMAND_TIMEOUT_SECONDS=5.0, RATE_LIMIT_MAX_REQUESTS=100)


@pytest.fixture
def router(settings):
    return ProtocolRouter(settings)


async def _open_session(router: ProtocolRouter, role: str = "agent") -> tuple[Connection, FakeTransport]:
    """Connect and authenticate; the auth_success frame is consumed and forgotten."""
    transport = FakeTransport()
    conn = router.connect(transport)
    await router.handle_frame(conn, json.dumps({"type": "auth", "role": role}))
    frame = await transport.next_frame()
    assert frame["type"] == "auth_success"
    transport.sent.clear()
    return conn, transport


@pytest.fixture
def make_transport():
    return FakeTransport


@pytest.fixture
def open_session():
    """Open an authenticated session on any router."""
    return _open_session


@pytest.fixture
def session_factory(router):
    async def factory(role: str = "agent"):
        return await _open_session(router, role)

    return factory
