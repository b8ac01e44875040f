"""Tests for ToolRegistry: tools loaded from YAML config."""

from pathlib import Path

import pytest

from browser_relay.core.config import Settings
from browser_relay.models.commands import CommandKind
from browser_relay.tool_registry import ToolDefinition, ToolRegistry

# ── YAML Fixture ────────────────────────────────────────────────────────

VALID_TOOLS_YAML = """\
tools:
  - name: browser_navigate
    description: "Navigate to a URL"
    command: navigate
    timeout: 60
  - name: browser_click
    description: "Click an element"
    command: click
  - name: browser_drag_drop
    description: "Drag and drop"
    command: dragDrop
"""


def _write(tmp_path: Path, content: str) -> Path:
    p = tmp_path / "tools.yaml"
    p.write_text(content)
    return p


@pytest.fixture()
def registry(tmp_path: Path) -> ToolRegistry:
    return ToolRegistry(_write(tmp_path, VALID_TOOLS_YAML))


# ── Loading ─────────────────────────────────────────────────────────────


class TestLoading:
    def test_tool_count(self, registry):
        assert registry.tool_count == 3

    def test_tool_names(self, registry):
        assert registry.tool_names() == {"browser_navigate", "browser_click", "browser_drag_drop"}

    def test_definition_fields(self, registry):
        tool = registry.get("browser_navigate")
        assert isinstance(tool, ToolDefinition)
        assert tool.command is CommandKind.NAVIGATE
        assert tool.timeout == 60.0
        assert tool.description == "Navigate to a URL"

    def test_timeout_optional(self, registry):
        assert registry.get("browser_click").timeout is None

    def test_camel_case_command(self, registry):
        assert registry.get("browser_drag_drop").command is CommandKind.DRAG_DROP

    def test_unknown_tool(self, registry):
        assert registry.get("browser_teleport") is None

    def test_definitions_are_frozen(self, registry):
        with pytest.raises(AttributeError):
            registry.get("browser_click").timeout = 1.0

    def test_for_command(self, registry):
        assert [t.name for t in registry.for_command(CommandKind.CLICK)] == ["browser_click"]
        assert registry.for_command(CommandKind.SCREENSHOT) == []

    def test_list_all_preserves_order(self, registry):
        assert [t.name for t in registry.list_all()] == ["browser_navigate", "browser_click", "browser_drag_drop"]


class TestBundledConfig:
    def test_bundled_yaml_covers_every_command(self):
        registry = ToolRegistry(Settings().TOOLS_CONFIG_PATH)
        assert registry.tool_count == 40
        assert {t.command for t in registry.list_all()} == set(CommandKind)
        assert all(name.startswith("browser_") for name in registry.tool_names())


# ── Validation ──────────────────────────────────────────────────────────


class TestValidation:
    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            ToolRegistry(tmp_path / "missing.yaml")

    def test_invalid_yaml(self, tmp_path):
        with pytest.raises(ValueError, match="Invalid YAML"):
            ToolRegistry(_write(tmp_path, "tools: [unclosed"))

    def test_missing_tools_key(self, tmp_path):
        with pytest.raises(ValueError, match="top-level 'tools'"):
            ToolRegistry(_write(tmp_path, "other: []\n"))

    def test_empty_tools(self, tmp_path):
        with pytest.raises(ValueError, match="No tools"):
            ToolRegistry(_write(tmp_path, "tools: []\n"))

    def test_missing_name(self, tmp_path):
        with pytest.raises(ValueError, match="missing 'name'"):
            ToolRegistry(_write(tmp_path, "tools:\n  - description: x\n    command: click\n"))

    def test_duplicate_name(self, tmp_path):
        yaml_text = (
            "tools:\n"
            "  - {name: browser_click, description: a, command: click}\n"
            "  - {name: browser_click, description: b, command: click}\n"
        )
        with pytest.raises(ValueError, match="Duplicate"):
            ToolRegistry(_write(tmp_path, yaml_text))

    def test_missing_description(self, tmp_path):
        with pytest.raises(ValueError, match="missing 'description'"):
            ToolRegistry(_write(tmp_path, "tools:\n  - {name: browser_click, command: click}\n"))

    def test_unknown_command(self, tmp_path):
        with pytest.raises(ValueError, match="unknown command 'teleport'"):
            ToolRegistry(_write(tmp_path, "tools:\n  - {name: browser_x, description: x, command: teleport}\n"))

    @pytest.mark.parametrize("timeout", ["0", "-5", "soon", "true"])
    def test_invalid_timeout(self, tmp_path, timeout):
        yaml_text = f"tools:\n  - {{name: browser_click, description: x, command: click, timeout: {timeout}}}\n"
        with pytest.raises(ValueError, match="invalid timeout"):
            ToolRegistry(_write(tmp_path, yaml_text))
