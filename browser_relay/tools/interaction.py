"""Page interaction tool handlers (click, type, forms, scrolling, scripts)."""

from typing import Any, Literal

from browser_relay.tools.base import Handler, ToolInvoker

_Align = Literal["start", "center", "end", "nearest"]


def create_handlers(invoke: ToolInvoker) -> dict[str, Handler]:
    """Return handlers with typed signatures for FastMCP schema generation."""

    async def browser_click(
        selector: str,
        human_like: bool = True,
        wait_for_navigation: bool = False,
        timeout: int | None = None,
    ) -> dict:
        """Click an element with human-like behavior."""
        return await invoke(
            "browser_click",
            {
                "selector": selector,
                "human_like": human_like,
                "wait_for_navigation": wait_for_navigation,
                "timeout": timeout,
            },
        )

    async def browser_type(
        selector: str,
        text: str,
        human_like: bool = True,
        clear: bool = False,
        timeout: int | None = None,
    ) -> dict:
        """Type text into an input or textarea."""
        return await invoke(
            "browser_type",
            {"selector": selector, "text": text, "human_like": human_like, "clear": clear, "timeout": timeout},
        )

    async def browser_select(
        selector: str,
        value: str | None = None,
        text: str | None = None,
        index: int | None = None,
    ) -> dict:
        """Select a dropdown option by value, visible text or index."""
        return await invoke("browser_select", {"selector": selector, "value": value, "text": text, "index": index})

    async def browser_check(selector: str, checked: bool | None = None) -> dict:
        """Check or uncheck a checkbox or radio button (toggles when *checked* is omitted)."""
        return await invoke("browser_check", {"selector": selector, "checked": checked})

    async def browser_hover(selector: str) -> dict:
        """Hover over an element."""
        return await invoke("browser_hover", {"selector": selector})

    async def browser_scroll(
        selector: str | None = None,
        x: float | None = None,
        y: float | None = None,
        behavior: Literal["auto", "smooth"] = "smooth",
        block: _Align = "center",
        inline: _Align = "nearest",
    ) -> dict:
        """Scroll an element into view, or the window to (x, y)."""
        return await invoke(
            "browser_scroll",
            {"selector": selector, "x": x, "y": y, "behavior": behavior, "block": block, "inline": inline},
        )

    async def browser_drag_drop(source_selector: str, target_selector: str) -> dict:
        """Drag one element onto another."""
        return await invoke(
            "browser_drag_drop",
            {"source_selector": source_selector, "target_selector": target_selector},
        )

    async def browser_upload_file(selector: str, files: list[dict[str, Any]]) -> dict:
        """Attach files (``name``, optional ``type`` and base64 ``content``) to a file input."""
        return await invoke("browser_upload_file", {"selector": selector, "files": files})

    async def browser_evaluate_js(code: str, timeout: int | None = None) -> dict:
        """Execute custom JavaScript in the page and return its result."""
        return await invoke("browser_evaluate_js", {"code": code, "timeout": timeout})

    return {
        "browser_click": browser_click,
        "browser_type": browser_type,
        "browser_select": browser_select,
        "browser_check": browser_check,
        "browser_hover": browser_hover,
        "browser_scroll": browser_scroll,
        "browser_drag_drop": browser_drag_drop,
        "browser_upload_file": browser_upload_file,
        "browser_evaluate_js": browser_evaluate_js,
    }
