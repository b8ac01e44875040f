"""Command kinds and their parameter models.

The command vocabulary is closed: every kind the browser agent understands
has a Pydantic model with field-level constraints.  ``parse_command`` is the
single decode point, used at the router boundary before a command enters
the retry path.  Wire names are camelCase; Python fields are snake_case.
"""

from __future__ import annotations

import enum
import unicodedata
from dataclasses import dataclass
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
from pydantic.alias_generators import to_camel

from browser_relay.core.errors import InvalidCommandError


class CommandKind(str, enum.Enum):
    """Every command the browser agent accepts."""

    NAVIGATE = "navigate"
    CLICK = "click"
    EXTRACT = "extract"
    EXTRACT_DATA = "extract_data"
    EXTRACT_TABLE = "extract_table"
    EXTRACT_LINKS = "extract_links"
    EXTRACT_IMAGES = "extract_images"
    EXTRACT_TEXT = "extract_text"
    EXTRACT_ATTRIBUTE = "extract_attribute"
    TYPE = "type"
    SELECT = "select"
    CHECK = "check"
    HOVER = "hover"
    SCROLL = "scroll"
    DRAG_DROP = "dragDrop"
    UPLOAD = "upload"
    EVALUATE = "evaluate"
    RELOAD = "reload"
    GO_BACK = "goBack"
    GO_FORWARD = "goForward"
    NEW_TAB = "newTab"
    CLOSE_TAB = "closeTab"
    SWITCH_TAB = "switchTab"
    GET_TABS = "getTabs"
    GET_COOKIES = "getCookies"
    SET_COOKIE = "setCookie"
    DELETE_COOKIE = "deleteCookie"
    CLEAR_COOKIES = "clearCookies"
    GET_LOCAL_STORAGE = "getLocalStorage"
    SET_LOCAL_STORAGE = "setLocalStorage"
    GET_SESSION_STORAGE = "getSessionStorage"
    SET_SESSION_STORAGE = "setSessionStorage"
    CLEAR_STORAGE = "clearStorage"
    WAIT = "wait"
    WAIT_FOR_SELECTOR = "waitForSelector"
    WAIT_FOR_TEXT = "waitForText"
    WAIT_FOR_NAVIGATION = "waitForNavigation"
    WAIT_FOR_NETWORK_IDLE = "waitForNetworkIdle"
    ANALYZE = "analyze"
    SCREENSHOT = "screenshot"


# ── Shared sanitization ─────────────────────────────────────────────────


def sanitize_string(value: str) -> str:
    """Strip null bytes and normalize to Unicode NFC."""
    value = value.replace("\x00", "")
    return unicodedata.normalize("NFC", value)


def format_validation_errors(exc: ValidationError) -> list[dict[str, str]]:
    """Convert a Pydantic ``ValidationError`` into ``{"field", "message"}`` dicts.

    Never includes the rejected input values.
    """
    errors: list[dict[str, str]] = []
    for err in exc.errors():
        loc = err.get("loc", ())
        field = ".".join(str(part) for part in loc) if loc else "unknown"
        errors.append({"field": field, "message": err.get("msg", "Validation error")})
    return errors


# Agent-side timeouts are milliseconds on the wire.
_TimeoutMs = Annotated[int, Field(ge=0, le=300_000)]
_Selector = Annotated[str, Field(min_length=1, max_length=2000)]
_WaitUntil = Literal["load", "domcontentloaded", "networkidle"]
_ScrollAlign = Literal["start", "center", "end", "nearest"]


class CommandParams(BaseModel):
    """Base for all parameter models.

    Unknown keys are passed through to the agent untouched.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    @field_validator("*", mode="before")
    @classmethod
    def _sanitize_strings(cls, v: Any) -> Any:
        if isinstance(v, str):
            return sanitize_string(v)
        return v

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class EmptyParams(CommandParams):
    """Kinds that take no parameters."""


# ── Navigation ──────────────────────────────────────────────────────────


def _check_url(v: str) -> str:
    if not v.startswith(("http://", "https://", "about:", "file://", "data:")):
        raise ValueError("url must be absolute (http, https, about, file or data scheme)")
    return v


class NavigateParams(CommandParams):
    url: str = Field(..., min_length=1, max_length=8192)
    wait_until: _WaitUntil = "load"
    timeout: _TimeoutMs | None = None
    bypass_cloudflare: bool = True

    @field_validator("url")
    @classmethod
    def _validate_url(cls, v: str) -> str:
        return _check_url(v)


class ReloadParams(CommandParams):
    bypass_cache: bool = False


class NewTabParams(CommandParams):
    url: str = Field(..., min_length=1, max_length=8192)
    active: bool = True

    @field_validator("url")
    @classmethod
    def _validate_url(cls, v: str) -> str:
        return _check_url(v)


class CloseTabParams(CommandParams):
    tab_id: int | None = Field(default=None, ge=0)


class SwitchTabParams(CommandParams):
    tab_id: int | None = Field(default=None, ge=0)
    index: int | None = Field(default=None, ge=0)
    title: str | None = Field(default=None, max_length=1000)

    @model_validator(mode="after")
    def _needs_locator(self) -> SwitchTabParams:
        if self.tab_id is None and self.index is None and self.title is None:
            raise ValueError("one of tabId, index or title is required")
        return self


# ── Interaction ─────────────────────────────────────────────────────────


class ClickParams(CommandParams):
    selector: _Selector
    human_like: bool = True
    wait_for_navigation: bool = False
    timeout: _TimeoutMs | None = None


class TypeParams(CommandParams):
    selector: _Selector
    text: str = Field(..., max_length=100_000)
    human_like: bool = True
    clear: bool = False
    timeout: _TimeoutMs | None = None


class SelectParams(CommandParams):
    selector: _Selector
    value: str | None = None
    text: str | None = None
    index: int | None = Field(default=None, ge=0)
    timeout: _TimeoutMs | None = None


class CheckParams(CommandParams):
    selector: _Selector
    checked: bool | None = None
    timeout: _TimeoutMs | None = None


class HoverParams(CommandParams):
    selector: _Selector
    timeout: _TimeoutMs | None = None


class ScrollParams(CommandParams):
    selector: _Selector | None = None
    x: float | None = None
    y: float | None = None
    behavior: Literal["auto", "smooth"] = "smooth"
    block: _ScrollAlign = "center"
    inline: _ScrollAlign = "nearest"
    timeout: _TimeoutMs | None = None


class DragDropParams(CommandParams):
    source_selector: _Selector
    target_selector: _Selector
    timeout: _TimeoutMs | None = None


class UploadFile(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., min_length=1, max_length=255)
    type: str | None = None
    content: str | None = None


class UploadParams(CommandParams):
    selector: _Selector
    files: list[UploadFile] = Field(..., min_length=1)
    timeout: _TimeoutMs | None = None


class EvaluateParams(CommandParams):
    code: str = Field(..., min_length=1, max_length=100_000)
    timeout: _TimeoutMs | None = None


# ── Extraction ──────────────────────────────────────────────────────────


class ExtractParams(CommandParams):
    selector: _Selector | None = None
    category: str | None = Field(default=None, min_length=1, max_length=200)
    include_hidden: bool = False
    depth: int = Field(default=1, ge=1, le=20)

    @model_validator(mode="after")
    def _needs_target(self) -> ExtractParams:
        if self.selector is None and self.category is None:
            raise ValueError("selector or category is required")
        return self


class ExtractDataParams(CommandParams):
    selector: _Selector
    include_text: bool = True
    include_attributes: bool = False
    max_elements: int = Field(default=100, ge=1, le=10_000)
    extract_type: Literal["generic", "table", "links", "images", "text", "attributes"] = "generic"


class ExtractElementsParams(CommandParams):
    selector: _Selector
    max_elements: int = Field(default=100, ge=1, le=10_000)


class ExtractTableParams(ExtractElementsParams):
    max_elements: int = Field(default=10, ge=1, le=10_000)


class ExtractAttributeParams(ExtractElementsParams):
    attribute: str | None = Field(default=None, min_length=1, max_length=200)


class ScreenshotParams(CommandParams):
    full_page: bool = False
    image_format: Literal["png", "jpeg"] = Field(default="png", alias="format")


# ── Cookies & storage ───────────────────────────────────────────────────


class GetCookiesParams(CommandParams):
    domain: str | None = None
    name: str | None = None


class SetCookieParams(CommandParams):
    name: str = Field(..., min_length=1, max_length=4096)
    value: str = Field(..., max_length=4096)
    domain: str | None = None
    path: str = "/"
    secure: bool = False
    http_only: bool = False
    expiration_date: float | None = Field(default=None, ge=0)


class DeleteCookieParams(CommandParams):
    name: str = Field(..., min_length=1, max_length=4096)
    domain: str | None = None
    path: str = "/"


class ClearCookiesParams(CommandParams):
    domain: str | None = None


class GetStorageParams(CommandParams):
    key: str | None = None


class SetStorageParams(CommandParams):
    key: str = Field(..., min_length=1, max_length=4096)
    value: str = Field(..., max_length=5_000_000)


class ClearStorageParams(CommandParams):
    storage_type: Literal["localStorage", "sessionStorage", "both"] = "both"


# ── Waiting ─────────────────────────────────────────────────────────────


class WaitParams(CommandParams):
    condition: Literal["selector", "timeout", "navigation", "cloudflare"] = Field(..., alias="type")
    value: str | None = None
    timeout: _TimeoutMs | None = None


class WaitForSelectorParams(CommandParams):
    selector: _Selector
    timeout: _TimeoutMs | None = None
    visible: bool = True
    hidden: bool = False


class WaitForTextParams(CommandParams):
    text: str = Field(..., min_length=1, max_length=10_000)
    selector: _Selector | None = None
    timeout: _TimeoutMs | None = None
    exact: bool = False


class WaitForNavigationParams(CommandParams):
    timeout: _TimeoutMs | None = None
    wait_until: _WaitUntil = "load"


class WaitForNetworkIdleParams(CommandParams):
    timeout: _TimeoutMs | None = None
    idle_time: int = Field(default=500, ge=0, le=60_000)


COMMAND_MODELS: dict[CommandKind, type[CommandParams]] = {
    CommandKind.NAVIGATE: NavigateParams,
    CommandKind.CLICK: ClickParams,
    CommandKind.EXTRACT: ExtractParams,
    CommandKind.EXTRACT_DATA: ExtractDataParams,
    CommandKind.EXTRACT_TABLE: ExtractTableParams,
    CommandKind.EXTRACT_LINKS: ExtractElementsParams,
    CommandKind.EXTRACT_IMAGES: ExtractElementsParams,
    CommandKind.EXTRACT_TEXT: ExtractElementsParams,
    CommandKind.EXTRACT_ATTRIBUTE: ExtractAttributeParams,
    CommandKind.TYPE: TypeParams,
    CommandKind.SELECT: SelectParams,
    CommandKind.CHECK: CheckParams,
    CommandKind.HOVER: HoverParams,
    CommandKind.SCROLL: ScrollParams,
    CommandKind.DRAG_DROP: DragDropParams,
    CommandKind.UPLOAD: UploadParams,
    CommandKind.EVALUATE: EvaluateParams,
    CommandKind.RELOAD: ReloadParams,
    CommandKind.GO_BACK: EmptyParams,
    CommandKind.GO_FORWARD: EmptyParams,
    CommandKind.NEW_TAB: NewTabParams,
    CommandKind.CLOSE_TAB: CloseTabParams,
    CommandKind.SWITCH_TAB: SwitchTabParams,
    CommandKind.GET_TABS: EmptyParams,
    CommandKind.GET_COOKIES: GetCookiesParams,
    CommandKind.SET_COOKIE: SetCookieParams,
    CommandKind.DELETE_COOKIE: DeleteCookieParams,
    CommandKind.CLEAR_COOKIES: ClearCookiesParams,
    CommandKind.GET_LOCAL_STORAGE: GetStorageParams,
    CommandKind.SET_LOCAL_STORAGE: SetStorageParams,
    CommandKind.GET_SESSION_STORAGE: GetStorageParams,
    CommandKind.SET_SESSION_STORAGE: SetStorageParams,
    CommandKind.CLEAR_STORAGE: ClearStorageParams,
    CommandKind.WAIT: WaitParams,
    CommandKind.WAIT_FOR_SELECTOR: WaitForSelectorParams,
    CommandKind.WAIT_FOR_TEXT: WaitForTextParams,
    CommandKind.WAIT_FOR_NAVIGATION: WaitForNavigationParams,
    CommandKind.WAIT_FOR_NETWORK_IDLE: WaitForNetworkIdleParams,
    CommandKind.ANALYZE: EmptyParams,
    CommandKind.SCREENSHOT: ScreenshotParams,
}


@dataclass(frozen=True)
class Command:
    """A decoded, validated command ready for dispatch."""

    kind: CommandKind
    params: CommandParams

    def wire_params(self) -> dict[str, Any]:
        return self.params.to_wire()


def parse_command(kind: str | CommandKind, params: Any) -> Command:
    """Decode *kind* and *params* into a ``Command``.

    Raises:
        InvalidCommandError: If the kind is not in the closed vocabulary or
            the parameters fail validation.
    """
    try:
        command_kind = CommandKind(kind)
    except ValueError:
        raise InvalidCommandError(f"Unknown command type: {kind}") from None

    if params is None:
        params = {}
    if not isinstance(params, dict):
        raise InvalidCommandError(f"Parameters for '{command_kind.value}' must be an object")

    model = COMMAND_MODELS[command_kind]
    try:
        validated = model.model_validate(params)
    except ValidationError as exc:
        errors = format_validation_errors(exc)
        raise InvalidCommandError(
            f"Invalid parameters for '{command_kind.value}'",
            errors=errors,
        ) from None
    return Command(kind=command_kind, params=validated)
