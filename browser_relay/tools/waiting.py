"""Wait-for-condition tool handlers.

Timeouts here are the browser-side wait in milliseconds; the relay's own
reply timeout comes from the tool's ``timeout`` in ``tools.yaml``.
"""

from typing import Literal

from browser_relay.tools.base import Handler, ToolInvoker


def create_handlers(invoke: ToolInvoker) -> dict[str, Handler]:
    """Return handlers with typed signatures for FastMCP schema generation."""

    async def browser_wait(
        condition: Literal["selector", "timeout", "navigation", "cloudflare"],
        value: str | None = None,
        timeout: int | None = None,
    ) -> dict:
        """Wait for a selector, a fixed delay, navigation or a Cloudflare check to clear."""
        return await invoke("browser_wait", {"condition": condition, "value": value, "timeout": timeout})

    async def browser_wait_for_selector(
        selector: str,
        timeout: int | None = None,
        visible: bool = True,
        hidden: bool = False,
    ) -> dict:
        """Wait for an element to appear (or disappear with ``hidden``)."""
        return await invoke(
            "browser_wait_for_selector",
            {"selector": selector, "timeout": timeout, "visible": visible, "hidden": hidden},
        )

    async def browser_wait_for_text(
        text: str,
        selector: str | None = None,
        timeout: int | None = None,
        exact: bool = False,
    ) -> dict:
        """Wait for text to appear in the page or inside *selector*."""
        return await invoke(
            "browser_wait_for_text",
            {"text": text, "selector": selector, "timeout": timeout, "exact": exact},
        )

    async def browser_wait_for_navigation(
        timeout: int | None = None,
        wait_until: Literal["load", "domcontentloaded", "networkidle"] = "load",
    ) -> dict:
        """Wait for the page to finish loading."""
        return await invoke("browser_wait_for_navigation", {"timeout": timeout, "wait_until": wait_until})

    async def browser_wait_for_network_idle(timeout: int | None = None, idle_time: int = 500) -> dict:
        """Wait until no requests have been in flight for *idle_time* ms."""
        return await invoke("browser_wait_for_network_idle", {"timeout": timeout, "idle_time": idle_time})

    return {
        "browser_wait": browser_wait,
        "browser_wait_for_selector": browser_wait_for_selector,
        "browser_wait_for_text": browser_wait_for_text,
        "browser_wait_for_navigation": browser_wait_for_navigation,
        "browser_wait_for_network_idle": browser_wait_for_network_idle,
    }
