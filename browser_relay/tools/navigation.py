"""Navigation and tab tool handlers."""

from typing import Literal

from browser_relay.tools.base import Handler, ToolInvoker, create_simple_handler


def create_handlers(invoke: ToolInvoker) -> dict[str, Handler]:
    """Return handlers with typed signatures for FastMCP schema generation."""

    async def browser_navigate(
        url: str,
        wait_until: Literal["load", "domcontentloaded", "networkidle"] = "load",
        timeout: int | None = None,
        bypass_cloudflare: bool = True,
    ) -> dict:
        """Navigate to a URL, waiting through Cloudflare challenges."""
        return await invoke(
            "browser_navigate",
            {"url": url, "wait_until": wait_until, "timeout": timeout, "bypass_cloudflare": bypass_cloudflare},
        )

    async def browser_reload(bypass_cache: bool = False) -> dict:
        """Reload the current page."""
        return await invoke("browser_reload", {"bypass_cache": bypass_cache})

    async def browser_new_tab(url: str, active: bool = True) -> dict:
        """Open a new tab with a URL."""
        return await invoke("browser_new_tab", {"url": url, "active": active})

    async def browser_close_tab(tab_id: int | None = None) -> dict:
        """Close the current tab, or the tab with *tab_id*."""
        return await invoke("browser_close_tab", {"tab_id": tab_id})

    async def browser_switch_tab(
        tab_id: int | None = None,
        index: int | None = None,
        title: str | None = None,
    ) -> dict:
        """Switch to a tab by id, index or title."""
        return await invoke("browser_switch_tab", {"tab_id": tab_id, "index": index, "title": title})

    return {
        "browser_navigate": browser_navigate,
        "browser_reload": browser_reload,
        "browser_go_back": create_simple_handler("browser_go_back", invoke),
        "browser_go_forward": create_simple_handler("browser_go_forward", invoke),
        "browser_new_tab": browser_new_tab,
        "browser_close_tab": browser_close_tab,
        "browser_switch_tab": browser_switch_tab,
        "browser_get_tabs": create_simple_handler("browser_get_tabs", invoke),
    }
