"""FastMCP server: browser_* tools relayed to the connected agent.

Creates a FastMCP server with every tool listed in the ``ToolRegistry``.
Each handler maps its typed arguments onto the tool's browser command and
relays it through the ``ProtocolRouter`` (validate → retry/breaker → agent).
"""

from collections.abc import Callable

from fastmcp import FastMCP

from browser_relay.protocol.router import ProtocolRouter
from browser_relay.tool_registry import ToolRegistry
from browser_relay.tools import extraction, interaction, navigation, storage, waiting
from browser_relay.tools.base import Handler, ToolInvoker

# ── Handler factory mapping ────────────────────────────────────────────

_HANDLER_GROUPS: tuple[Callable[[ToolInvoker], dict[str, Handler]], ...] = (
    navigation.create_handlers,
    interaction.create_handlers,
    extraction.create_handlers,
    waiting.create_handlers,
    storage.create_handlers,
)


# ── Server factory ─────────────────────────────────────────────────────


def create_mcp_server(registry: ToolRegistry, router: ProtocolRouter) -> FastMCP:
    """Create a FastMCP server with all tools from the registry.

    Args:
        registry: Loaded ``ToolRegistry`` (from YAML config).
        router:   ``ProtocolRouter`` that relays commands to the agent.

    Returns:
        A configured ``FastMCP`` instance ready for HTTP/SSE transport.

    Raises:
        ValueError: If a registered tool has no handler.
    """
    mcp = FastMCP(
        name="browser-relay",
    )

    invoke = ToolInvoker(registry, router)
    handlers: dict[str, Handler] = {}
    for create_handlers in _HANDLER_GROUPS:
        handlers.update(create_handlers(invoke))

    for tool_def in registry.list_all():
        handler = handlers.get(tool_def.name)
        if handler is None:
            raise ValueError(f"No handler for tool '{tool_def.name}'. Available: {sorted(handlers.keys())}")
        mcp.tool(
            name=tool_def.name,
            description=tool_def.description,
        )(handler)

    return mcp
