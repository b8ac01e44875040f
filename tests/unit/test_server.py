"""Tests for the MCP server: tools/list and tools/call through the router."""

import json
from pathlib import Path
from unittest.mock import AsyncMock

import pytest
from fastmcp import Client, FastMCP

from browser_relay.core.config import Settings
from browser_relay.core.errors import (
    CircuitOpenError,
    CommandFailedError,
    ErrorCode,
    NoTargetAvailableError,
)
from browser_relay.models.commands import CommandKind
from browser_relay.server import create_mcp_server
from browser_relay.tool_registry import ToolRegistry

# ── Fixtures ────────────────────────────────────────────────────────────


@pytest.fixture()
def registry() -> ToolRegistry:
    return ToolRegistry(Settings().TOOLS_CONFIG_PATH)


@pytest.fixture()
def mock_router() -> AsyncMock:
    router = AsyncMock()
    router.invoke = AsyncMock(return_value={"ok": True})
    return router


@pytest.fixture()
def mcp_server(registry, mock_router) -> FastMCP:
    return create_mcp_server(registry, mock_router)


# ── Server Creation ─────────────────────────────────────────────────────


class TestCreateMCPServer:
    def test_returns_fastmcp(self, mcp_server):
        assert isinstance(mcp_server, FastMCP)

    def test_server_name(self, mcp_server):
        assert mcp_server.name == "browser-relay"

    def test_tool_without_handler_rejected(self, tmp_path: Path, mock_router):
        p = tmp_path / "tools.yaml"
        p.write_text("tools:\n  - {name: browser_teleport, description: x, command: navigate}\n")
        with pytest.raises(ValueError, match="No handler for tool 'browser_teleport'"):
            create_mcp_server(ToolRegistry(p), mock_router)


# ── tools/list ──────────────────────────────────────────────────────────


class TestToolsList:
    async def test_lists_every_registered_tool(self, mcp_server, registry):
        async with Client(mcp_server) as client:
            tools = await client.list_tools()
        assert {t.name for t in tools} == registry.tool_names()

    async def test_descriptions_come_from_yaml(self, mcp_server, registry):
        async with Client(mcp_server) as client:
            tools = await client.list_tools()
        for tool in tools:
            assert tool.description == registry.get(tool.name).description

    async def test_navigate_schema(self, mcp_server):
        async with Client(mcp_server) as client:
            tools = await client.list_tools()
        navigate = next(t for t in tools if t.name == "browser_navigate")
        assert navigate.inputSchema["required"] == ["url"]
        assert "wait_until" in navigate.inputSchema["properties"]


# ── tools/call ──────────────────────────────────────────────────────────


class TestToolsCall:
    async def test_navigate_maps_to_command(self, mcp_server, mock_router):
        async with Client(mcp_server) as client:
            result = await client.call_tool("browser_navigate", {"url": "https://example.com"})
        assert not result.is_error
        args, kwargs = mock_router.invoke.call_args
        assert args[0] is CommandKind.NAVIGATE
        assert args[1] == {"url": "https://example.com", "wait_until": "load", "bypass_cloudflare": True}
        assert kwargs["timeout"] == 60.0

    async def test_returns_agent_data(self, mcp_server, mock_router):
        mock_router.invoke.return_value = [{"href": "https://a.test"}]
        async with Client(mcp_server) as client:
            result = await client.call_tool("browser_extract_links", {"selector": "a"})
        body = json.loads(result.content[0].text)
        assert body == {"success": True, "data": [{"href": "https://a.test"}]}

    async def test_none_arguments_dropped(self, mcp_server, mock_router):
        async with Client(mcp_server) as client:
            await client.call_tool("browser_switch_tab", {"index": 2})
        assert mock_router.invoke.call_args[0][1] == {"index": 2}

    async def test_default_timeout_is_none(self, mcp_server, mock_router):
        async with Client(mcp_server) as client:
            await client.call_tool("browser_click", {"selector": "#buy"})
        assert mock_router.invoke.call_args.kwargs["timeout"] is None

    @pytest.mark.parametrize(
        "tool, arguments, command",
        [
            ("browser_go_back", {}, CommandKind.GO_BACK),
            ("browser_drag_drop", {"source_selector": "#a", "target_selector": "#b"}, CommandKind.DRAG_DROP),
            ("browser_wait", {"condition": "selector", "value": "#ready"}, CommandKind.WAIT),
            ("browser_set_local_storage", {"key": "k", "value": "v"}, CommandKind.SET_LOCAL_STORAGE),
            ("browser_get_session_storage", {}, CommandKind.GET_SESSION_STORAGE),
            ("browser_analyze_page", {}, CommandKind.ANALYZE),
            ("browser_extract_table", {"selector": "table"}, CommandKind.EXTRACT_TABLE),
        ],
    )
    async def test_tool_to_command_mapping(self, mcp_server, mock_router, tool, arguments, command):
        async with Client(mcp_server) as client:
            result = await client.call_tool(tool, arguments)
        assert not result.is_error
        assert mock_router.invoke.call_args[0][0] is command


class TestToolsCallErrors:
    async def test_missing_required_argument(self, mcp_server, mock_router):
        async with Client(mcp_server) as client:
            result = await client.call_tool("browser_click", {}, raise_on_error=False)
        assert result.is_error
        mock_router.invoke.assert_not_called()

    async def test_relay_error_carries_structured_code(self, mcp_server, mock_router):
        mock_router.invoke.side_effect = CommandFailedError("Element not found", code=ErrorCode.SELECTOR_NOT_FOUND)
        async with Client(mcp_server) as client:
            result = await client.call_tool("browser_click", {"selector": "#x"}, raise_on_error=False)
        assert result.is_error
        text = result.content[0].text
        assert "SELECTOR_NOT_FOUND" in text
        assert "try_alternative_selectors" in text

    async def test_circuit_open_is_target_unavailable(self, mcp_server, mock_router):
        mock_router.invoke.side_effect = CircuitOpenError("click", "click:abc", 30.0)
        async with Client(mcp_server) as client:
            result = await client.call_tool("browser_click", {"selector": "#x"}, raise_on_error=False)
        assert result.is_error
        assert "TARGET_UNAVAILABLE" in result.content[0].text

    async def test_no_agent(self, mcp_server, mock_router):
        mock_router.invoke.side_effect = NoTargetAvailableError()
        async with Client(mcp_server) as client:
            result = await client.call_tool("browser_get_tabs", {}, raise_on_error=False)
        assert result.is_error
        assert "NO_TARGET" in result.content[0].text
