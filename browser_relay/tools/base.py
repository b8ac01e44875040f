"""Shared plumbing for the browser_* tool handlers.

Every handler builds a parameter dict from its typed arguments and hands it
to a ``ToolInvoker``, which resolves the tool's command and timeout from the
registry and relays it through the router.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

from fastmcp.exceptions import ToolError

from browser_relay.core.errors import RelayError, StructuredErrorResponse

if TYPE_CHECKING:
    from browser_relay.protocol.router import ProtocolRouter
    from browser_relay.tool_registry import ToolRegistry

logger = logging.getLogger(__name__)

Handler = Callable[..., Awaitable[dict]]


class ToolInvoker:
    """Relays a tool call as its registered browser command.

    Relay errors become a ``ToolError`` whose message is the JSON form of a
    ``StructuredErrorResponse`` (code, category, recoverable, fallbacks).
    """

    def __init__(self, registry: ToolRegistry, router: ProtocolRouter) -> None:
        self._registry = registry
        self._router = router

    async def __call__(self, tool_name: str, arguments: dict[str, Any]) -> dict:
        tool_def = self._registry.get(tool_name)
        if tool_def is None:
            raise ToolError(f"Unknown tool '{tool_name}'")

        params = {key: value for key, value in arguments.items() if value is not None}
        try:
            data = await self._router.invoke(tool_def.command, params, timeout=tool_def.timeout)
        except RelayError as exc:
            logger.warning("Tool %s failed: %s", tool_name, exc.code.value)
            body = StructuredErrorResponse.from_exception(exc, request_id=str(uuid.uuid4()))
            raise ToolError(body.model_dump_json()) from exc
        return {"success": True, "data": data}


def create_simple_handler(tool_name: str, invoke: ToolInvoker) -> Handler:
    """Return a handler for a tool that takes no arguments."""

    async def handler() -> dict:
        return await invoke(tool_name, {})

    handler.__name__ = tool_name
    return handler
