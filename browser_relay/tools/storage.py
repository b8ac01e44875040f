"""Cookie and Web Storage tool handlers."""

from typing import Literal

from browser_relay.tools.base import Handler, ToolInvoker


def _create_get_storage_handler(tool_name: str, invoke: ToolInvoker) -> Handler:
    async def handler(key: str | None = None) -> dict:
        return await invoke(tool_name, {"key": key})

    handler.__name__ = tool_name
    return handler


def _create_set_storage_handler(tool_name: str, invoke: ToolInvoker) -> Handler:
    async def handler(key: str, value: str) -> dict:
        return await invoke(tool_name, {"key": key, "value": value})

    handler.__name__ = tool_name
    return handler


def create_handlers(invoke: ToolInvoker) -> dict[str, Handler]:
    """Return handlers with typed signatures for FastMCP schema generation."""

    async def browser_get_cookies(domain: str | None = None, name: str | None = None) -> dict:
        """Get cookies, optionally filtered by domain or name."""
        return await invoke("browser_get_cookies", {"domain": domain, "name": name})

    async def browser_set_cookie(
        name: str,
        value: str,
        domain: str | None = None,
        path: str = "/",
        secure: bool = False,
        http_only: bool = False,
        expiration_date: float | None = None,
    ) -> dict:
        """Set a cookie; *expiration_date* is seconds since the epoch."""
        return await invoke(
            "browser_set_cookie",
            {
                "name": name,
                "value": value,
                "domain": domain,
                "path": path,
                "secure": secure,
                "http_only": http_only,
                "expiration_date": expiration_date,
            },
        )

    async def browser_delete_cookie(name: str, domain: str | None = None, path: str = "/") -> dict:
        """Delete a cookie."""
        return await invoke("browser_delete_cookie", {"name": name, "domain": domain, "path": path})

    async def browser_clear_cookies(domain: str | None = None) -> dict:
        """Clear all cookies, or only those for *domain*."""
        return await invoke("browser_clear_cookies", {"domain": domain})

    async def browser_clear_storage(
        storage_type: Literal["localStorage", "sessionStorage", "both"] = "both",
    ) -> dict:
        """Clear localStorage, sessionStorage or both."""
        return await invoke("browser_clear_storage", {"storage_type": storage_type})

    return {
        "browser_get_cookies": browser_get_cookies,
        "browser_set_cookie": browser_set_cookie,
        "browser_delete_cookie": browser_delete_cookie,
        "browser_clear_cookies": browser_clear_cookies,
        "browser_get_local_storage": _create_get_storage_handler("browser_get_local_storage", invoke),
        "browser_set_local_storage": _create_set_storage_handler("browser_set_local_storage", invoke),
        "browser_get_session_storage": _create_get_storage_handler("browser_get_session_storage", invoke),
        "browser_set_session_storage": _create_set_storage_handler("browser_set_session_storage", invoke),
        "browser_clear_storage": browser_clear_storage,
    }
