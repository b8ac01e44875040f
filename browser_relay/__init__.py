"""browser-relay: WebSocket command relay between MCP clients and browser agents."""

__version__ = "0.1.0"
