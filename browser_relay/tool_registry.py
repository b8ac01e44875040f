"""Tool registry: MCP tools loaded from YAML.

Each entry in ``config/tools.yaml`` names an MCP tool, its description,
the browser command it relays, and an optional per-attempt timeout in
seconds that overrides the service default.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from browser_relay.models.commands import CommandKind

_COMMANDS: dict[str, CommandKind] = {kind.value: kind for kind in CommandKind}

# ── Data class ──────────────────────────────────────────────────────────


@dataclass(frozen=True)
class ToolDefinition:
    """Immutable definition of a single MCP tool.

    Attributes:
        name:        Tool identifier (e.g. ``browser_navigate``).
        description: Human-readable description shown in ``tools/list``.
        command:     Browser command the tool relays.
        timeout:     Per-attempt reply timeout in seconds, or ``None``
                     for the service default.
    """

    name: str
    description: str
    command: CommandKind
    timeout: float | None = None


# ── Registry ────────────────────────────────────────────────────────────


class ToolRegistry:
    """Loads tool definitions from a YAML config file.

    Args:
        config_path: Path to ``tools.yaml`` with the ``tools:`` list.

    Raises:
        FileNotFoundError: If the YAML file does not exist.
        ValueError: If the YAML is invalid, missing required keys, names an
                    unknown command, or has duplicate tool names.
    """

    def __init__(self, config_path: str | Path) -> None:
        self._tools: dict[str, ToolDefinition] = {}
        self._path = Path(config_path)
        for entry in self._read_entries():
            tool = self._parse_entry(entry)
            if tool.name in self._tools:
                raise ValueError(f"Duplicate tool name '{tool.name}' in {self._path}")
            self._tools[tool.name] = tool

    # ── Loading ─────────────────────────────────────────────────────

    def _read_entries(self) -> list[dict[str, Any]]:
        if not self._path.is_file():
            raise FileNotFoundError(f"Tool config not found: {self._path}")
        try:
            document = yaml.safe_load(self._path.read_text(encoding="utf-8"))
        except yaml.YAMLError as exc:
            raise ValueError(f"Invalid YAML in {self._path}: {exc}") from exc

        entries = document.get("tools") if isinstance(document, dict) else None
        if entries is None:
            raise ValueError(f"YAML must contain a top-level 'tools' key in {self._path}")
        if not entries:
            raise ValueError(f"No tools defined in {self._path}")
        return entries

    def _parse_entry(self, entry: dict[str, Any]) -> ToolDefinition:
        name = entry.get("name")
        if not name:
            raise ValueError(f"Tool entry missing 'name' in {self._path}")
        if not entry.get("description"):
            raise ValueError(f"Tool '{name}' missing 'description' in {self._path}")

        command = entry.get("command")
        if command not in _COMMANDS:
            raise ValueError(
                f"Tool '{name}' has unknown command '{command}' in {self._path}. "
                f"Valid commands: {sorted(_COMMANDS)}"
            )

        timeout = entry.get("timeout")
        if timeout is not None:
            # bool is an int subclass; YAML ``true`` must not pass as 1 second.
            if isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout <= 0:
                raise ValueError(f"Tool '{name}' has invalid timeout {timeout!r} in {self._path}")
            timeout = float(timeout)

        return ToolDefinition(
            name=name,
            description=entry["description"],
            command=_COMMANDS[command],
            timeout=timeout,
        )

    # ── Access ──────────────────────────────────────────────────────

    def get(self, name: str) -> ToolDefinition | None:
        return self._tools.get(name)

    def for_command(self, command: CommandKind) -> list[ToolDefinition]:
        """Tools that relay *command*, in config order."""
        return [tool for tool in self._tools.values() if tool.command is command]

    def list_all(self) -> list[ToolDefinition]:
        return list(self._tools.values())

    @property
    def tool_count(self) -> int:
        return len(self._tools)

    def tool_names(self) -> set[str]:
        return set(self._tools)
