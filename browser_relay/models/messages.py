"""WebSocket wire messages.

Every frame is a JSON object with a ``type`` discriminator.  Inbound frames
are decoded once through ``parse_inbound``; outbound frames are built with
the ``*_frame`` helpers so field names and timestamps stay consistent.
"""

from __future__ import annotations

import time
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


def _now_ms() -> int:
    return int(time.time() * 1000)


class _Frame(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")


# ── Inbound ─────────────────────────────────────────────────────────────


class AuthMessage(_Frame):
    """Handshake.  Always accepted; ``role`` defaults to ``agent``."""

    type: Literal["auth"]
    role: Literal["agent", "client"] = "agent"


class CommandRequest(_Frame):
    """A client asking the relay to forward a command to the agent."""

    type: Literal["command"]
    id: str | None = Field(default=None, max_length=200)
    command: str | None = None
    params: Any = None
    timeout: int | None = Field(default=None, ge=1, le=300_000)  # milliseconds


class ResponseError(_Frame):
    code: str = "UNKNOWN"
    message: str = "Command failed"
    recoverable: bool = False


class ResponseMessage(_Frame):
    """The agent's reply to a relayed command, correlated by ``id``."""

    type: Literal["response"]
    id: str
    success: bool
    data: Any = None
    error: ResponseError | None = None


class HeartbeatMessage(_Frame):
    type: Literal["heartbeat"]
    client_id: str = Field(alias="clientId")
    status: Literal["connected", "busy", "idle"]
    active_commands: int = Field(alias="activeCommands", ge=0)
    memory_usage: float | None = Field(default=None, alias="memoryUsage")


InboundMessage = Annotated[
    Union[AuthMessage, CommandRequest, ResponseMessage, HeartbeatMessage],
    Field(discriminator="type"),
]

INBOUND_TYPES = frozenset({"auth", "command", "response", "heartbeat"})

_INBOUND_ADAPTER: TypeAdapter[InboundMessage] = TypeAdapter(InboundMessage)


def parse_inbound(raw: str | bytes | dict[str, Any]) -> InboundMessage:
    """Decode a raw frame.

    Raises:
        pydantic.ValidationError: If the frame is not valid JSON, has an
            unknown ``type``, or misses required fields.
    """
    if isinstance(raw, dict):
        return _INBOUND_ADAPTER.validate_python(raw)
    return _INBOUND_ADAPTER.validate_json(raw)


# ── Outbound ────────────────────────────────────────────────────────────


def auth_success_frame(client_id: str) -> dict[str, Any]:
    return {"type": "auth_success", "clientId": client_id, "timestamp": _now_ms()}


def command_frame(correlation_id: str, kind: str, params: dict[str, Any]) -> dict[str, Any]:
    return {
        "type": "command",
        "id": correlation_id,
        "params": {"type": kind, "params": params},
    }


def error_frame(code: str, message: str, **extra: Any) -> dict[str, Any]:
    frame = {"type": "error", "code": code, "message": message, "timestamp": _now_ms()}
    frame.update(extra)
    return frame


def response_frame(
    request_id: str,
    *,
    data: Any = None,
    error: dict[str, Any] | None = None,
    duration_ms: float = 0.0,
    retries: int = 0,
) -> dict[str, Any]:
    """Reply to a client-issued ``command`` frame."""
    frame: dict[str, Any] = {
        "type": "response",
        "id": request_id,
        "success": error is None,
        "metadata": {
            "duration": round(duration_ms, 2),
            "retries": retries,
            "timestamp": _now_ms(),
        },
    }
    if error is None:
        frame["data"] = data
    else:
        frame["error"] = error
    return frame
