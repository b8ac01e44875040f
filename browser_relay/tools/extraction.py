"""Content extraction, page analysis and screenshot tool handlers."""

from typing import Literal

from browser_relay.tools.base import Handler, ToolInvoker, create_simple_handler


def _create_elements_handler(tool_name: str, invoke: ToolInvoker, default_max: int) -> Handler:
    async def handler(selector: str, max_elements: int = default_max) -> dict:
        return await invoke(tool_name, {"selector": selector, "max_elements": max_elements})

    handler.__name__ = tool_name
    return handler


def create_handlers(invoke: ToolInvoker) -> dict[str, Handler]:
    """Return handlers with typed signatures for FastMCP schema generation."""

    async def browser_extract(
        selector: str | None = None,
        category: str | None = None,
        include_hidden: bool = False,
        depth: int = 1,
    ) -> dict:
        """Extract content by CSS selector or by semantic category (e.g. ``prices``)."""
        return await invoke(
            "browser_extract",
            {"selector": selector, "category": category, "include_hidden": include_hidden, "depth": depth},
        )

    async def browser_extract_data(
        selector: str,
        include_text: bool = True,
        include_attributes: bool = False,
        max_elements: int = 100,
        extract_type: Literal["generic", "table", "links", "images", "text", "attributes"] = "generic",
    ) -> dict:
        """Extract structured data from the elements matching *selector*."""
        return await invoke(
            "browser_extract_data",
            {
                "selector": selector,
                "include_text": include_text,
                "include_attributes": include_attributes,
                "max_elements": max_elements,
                "extract_type": extract_type,
            },
        )

    async def browser_extract_attribute(selector: str, attribute: str | None = None, max_elements: int = 100) -> dict:
        """Get attribute values of the elements matching *selector*."""
        return await invoke(
            "browser_extract_attribute",
            {"selector": selector, "attribute": attribute, "max_elements": max_elements},
        )

    async def browser_screenshot(full_page: bool = False, image_format: Literal["png", "jpeg"] = "png") -> dict:
        """Take a screenshot of the current page."""
        return await invoke("browser_screenshot", {"full_page": full_page, "image_format": image_format})

    return {
        "browser_extract": browser_extract,
        "browser_extract_data": browser_extract_data,
        "browser_extract_table": _create_elements_handler("browser_extract_table", invoke, 10),
        "browser_extract_links": _create_elements_handler("browser_extract_links", invoke, 100),
        "browser_extract_images": _create_elements_handler("browser_extract_images", invoke, 100),
        "browser_extract_text": _create_elements_handler("browser_extract_text", invoke, 100),
        "browser_extract_attribute": browser_extract_attribute,
        "browser_analyze_page": create_simple_handler("browser_analyze_page", invoke),
        "browser_screenshot": browser_screenshot,
    }
