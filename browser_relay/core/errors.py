"""Error codes, categories and the exception hierarchy for browser-relay.

Every error raised inside the relay carries an explicit ``ErrorCode``.
Message matching (``ErrorCode.from_message``) is only used for foreign
exceptions and for agent error payloads without a recognised code.
"""

from __future__ import annotations

import enum
import time
from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel


class ErrorCategory(str, enum.Enum):
    """Coarse error classes that drive the retry decision."""

    NETWORK = "NETWORK"
    SELECTOR = "SELECTOR"
    PERMISSION = "PERMISSION"
    TIMEOUT = "TIMEOUT"
    VALIDATION = "VALIDATION"
    SYSTEM = "SYSTEM"


class ErrorCode(str, enum.Enum):
    """Machine-readable error codes shared with the browser agent."""

    TIMEOUT = "TIMEOUT"
    NETWORK_ERROR = "NETWORK_ERROR"
    CLOUDFLARE_BLOCK = "CLOUDFLARE_BLOCK"
    SELECTOR_NOT_FOUND = "SELECTOR_NOT_FOUND"
    INVALID_PARAMS = "INVALID_PARAMS"
    AUTHENTICATION_FAILED = "AUTHENTICATION_FAILED"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    COMMAND_FAILED = "COMMAND_FAILED"
    ELEMENT_NOT_FOUND = "ELEMENT_NOT_FOUND"
    ELEMENT_NOT_VISIBLE = "ELEMENT_NOT_VISIBLE"
    ELEMENT_NOT_INTERACTABLE = "ELEMENT_NOT_INTERACTABLE"
    NAVIGATION_FAILED = "NAVIGATION_FAILED"
    PERMISSION_DENIED = "PERMISSION_DENIED"
    INVALID_URL = "INVALID_URL"
    TAB_NOT_FOUND = "TAB_NOT_FOUND"
    STORAGE_ERROR = "STORAGE_ERROR"
    COOKIE_ERROR = "COOKIE_ERROR"
    SCRIPT_ERROR = "SCRIPT_ERROR"
    TARGET_DISCONNECTED = "TARGET_DISCONNECTED"
    NO_TARGET = "NO_TARGET"
    TARGET_UNAVAILABLE = "TARGET_UNAVAILABLE"
    UNKNOWN = "UNKNOWN"

    @property
    def category(self) -> ErrorCategory:
        return _CATEGORIES.get(self, ErrorCategory.SYSTEM)

    @property
    def recoverable(self) -> bool:
        return self in _RECOVERABLE

    @property
    def fallback_strategies(self) -> list[str]:
        return list(_FALLBACK_STRATEGIES.get(self, ()))

    @classmethod
    def parse(cls, value: Any) -> ErrorCode | None:
        """Return the member named by *value*, or ``None`` if unrecognised."""
        try:
            return cls(value)
        except ValueError:
            return None

    @classmethod
    def from_message(cls, message: str) -> ErrorCode:
        """Last-resort classification of a free-form error message."""
        lowered = message.lower()
        for needle, code in _MESSAGE_PATTERNS:
            if needle in lowered:
                return code
        return cls.UNKNOWN


_CATEGORIES: dict[ErrorCode, ErrorCategory] = {
    ErrorCode.NETWORK_ERROR: ErrorCategory.NETWORK,
    ErrorCode.CLOUDFLARE_BLOCK: ErrorCategory.NETWORK,
    ErrorCode.NAVIGATION_FAILED: ErrorCategory.NETWORK,
    ErrorCode.TARGET_DISCONNECTED: ErrorCategory.NETWORK,
    ErrorCode.NO_TARGET: ErrorCategory.NETWORK,
    ErrorCode.TARGET_UNAVAILABLE: ErrorCategory.NETWORK,
    ErrorCode.SELECTOR_NOT_FOUND: ErrorCategory.SELECTOR,
    ErrorCode.ELEMENT_NOT_FOUND: ErrorCategory.SELECTOR,
    ErrorCode.ELEMENT_NOT_VISIBLE: ErrorCategory.SELECTOR,
    ErrorCode.ELEMENT_NOT_INTERACTABLE: ErrorCategory.SELECTOR,
    ErrorCode.PERMISSION_DENIED: ErrorCategory.PERMISSION,
    ErrorCode.TAB_NOT_FOUND: ErrorCategory.PERMISSION,
    ErrorCode.TIMEOUT: ErrorCategory.TIMEOUT,
    ErrorCode.INVALID_PARAMS: ErrorCategory.VALIDATION,
    ErrorCode.INVALID_URL: ErrorCategory.VALIDATION,
}

_RECOVERABLE: frozenset[ErrorCode] = frozenset({
    ErrorCode.TIMEOUT,
    ErrorCode.NETWORK_ERROR,
    ErrorCode.SELECTOR_NOT_FOUND,
    ErrorCode.ELEMENT_NOT_FOUND,
    ErrorCode.ELEMENT_NOT_VISIBLE,
    ErrorCode.ELEMENT_NOT_INTERACTABLE,
    ErrorCode.NAVIGATION_FAILED,
    ErrorCode.CLOUDFLARE_BLOCK,
    ErrorCode.TARGET_DISCONNECTED,
})

_FALLBACK_STRATEGIES: dict[ErrorCode, tuple[str, ...]] = {
    ErrorCode.SELECTOR_NOT_FOUND: ("try_alternative_selectors", "wait_for_element", "scroll_to_element"),
    ErrorCode.ELEMENT_NOT_VISIBLE: ("scroll_to_element", "wait_for_visibility", "try_alternative_selectors"),
    ErrorCode.ELEMENT_NOT_INTERACTABLE: ("wait_for_interactable", "scroll_to_element", "try_alternative_selectors"),
    ErrorCode.CLOUDFLARE_BLOCK: ("wait_for_cloudflare", "retry_with_delay", "try_alternative_approach"),
    ErrorCode.NAVIGATION_FAILED: ("retry_navigation", "check_url_validity", "try_alternative_url"),
    ErrorCode.TIMEOUT: ("increase_timeout", "retry_with_delay", "check_network_connection"),
}

# Ordered most-specific first.
_MESSAGE_PATTERNS: tuple[tuple[str, ErrorCode], ...] = (
    ("timeout", ErrorCode.TIMEOUT),
    ("timed out", ErrorCode.TIMEOUT),
    ("cloudflare", ErrorCode.CLOUDFLARE_BLOCK),
    ("network", ErrorCode.NETWORK_ERROR),
    ("tab not found", ErrorCode.TAB_NOT_FOUND),
    ("element not visible", ErrorCode.ELEMENT_NOT_VISIBLE),
    ("element not interactable", ErrorCode.ELEMENT_NOT_INTERACTABLE),
    ("element not found", ErrorCode.ELEMENT_NOT_FOUND),
    ("selector", ErrorCode.SELECTOR_NOT_FOUND),
    ("not found", ErrorCode.SELECTOR_NOT_FOUND),
    ("navigation", ErrorCode.NAVIGATION_FAILED),
    ("permission", ErrorCode.PERMISSION_DENIED),
    ("invalid url", ErrorCode.INVALID_URL),
    ("invalid param", ErrorCode.INVALID_PARAMS),
    ("storage", ErrorCode.STORAGE_ERROR),
    ("cookie", ErrorCode.COOKIE_ERROR),
    ("script", ErrorCode.SCRIPT_ERROR),
)


# ── ErrorContext ────────────────────────────────────────────────────────


@dataclass
class ErrorContext:
    """Per-failure classification attached to the error surfaced to callers."""

    command: str
    params: dict[str, Any]
    code: ErrorCode
    retry_count: int = 0
    timestamp: float = field(default_factory=time.time)

    @property
    def category(self) -> ErrorCategory:
        return self.code.category

    @property
    def recoverable(self) -> bool:
        return self.code.recoverable

    @property
    def fallback_strategies(self) -> list[str]:
        return self.code.fallback_strategies

    def to_dict(self) -> dict[str, Any]:
        return {
            "command": self.command,
            "code": self.code.value,
            "category": self.category.value,
            "recoverable": self.recoverable,
            "retry_count": self.retry_count,
            "fallback_strategies": self.fallback_strategies,
            "timestamp": self.timestamp,
        }


# ── Exception hierarchy ─────────────────────────────────────────────────


class RelayError(Exception):
    """Base exception for all browser-relay errors."""

    code: ErrorCode = ErrorCode.UNKNOWN

    def __init__(self, message: str, *, code: ErrorCode | None = None) -> None:
        if code is not None:
            self.code = code
        self.context: ErrorContext | None = None
        super().__init__(message)

    @property
    def category(self) -> ErrorCategory:
        return self.code.category

    @property
    def recoverable(self) -> bool:
        return self.code.recoverable


class CommandTimeoutError(RelayError):
    """Raised when no reply arrives before the command's deadline."""

    code = ErrorCode.TIMEOUT

    def __init__(self, correlation_id: str, timeout_seconds: float, command: str = "") -> None:
        self.correlation_id = correlation_id
        self.timeout_seconds = timeout_seconds
        self.command = command
        label = f"'{command}' ({correlation_id})" if command else correlation_id
        super().__init__(f"Command timeout: {label} got no reply after {timeout_seconds}s")


class TargetDisconnectedError(RelayError):
    """Raised for commands whose target session went away."""

    code = ErrorCode.TARGET_DISCONNECTED

    def __init__(self, target_id: str) -> None:
        self.target_id = target_id
        super().__init__(f"Target disconnected: {target_id}")


class NoTargetAvailableError(RelayError):
    """Raised when no agent session is connected."""

    code = ErrorCode.NO_TARGET

    def __init__(self) -> None:
        super().__init__("No connected clients")


class CircuitOpenError(RelayError):
    """Raised when the circuit for a command signature is open.

    This is a short-circuit: no attempt was made.  Callers see it as
    "target unavailable", distinct from a command that failed after retries.
    """

    code = ErrorCode.TARGET_UNAVAILABLE

    def __init__(self, command: str, signature: str, retry_after: float) -> None:
        self.command = command
        self.signature = signature
        self.retry_after = max(0.0, retry_after)
        super().__init__(
            f"Target unavailable: circuit open for '{command}', retry after {self.retry_after:.1f}s"
        )


class InvalidCommandError(RelayError):
    """Raised when a command kind is unknown or its parameters are malformed."""

    code = ErrorCode.INVALID_PARAMS

    def __init__(self, message: str, errors: list[dict[str, str]] | None = None) -> None:
        self.errors = errors or []
        super().__init__(message)


class RateLimitExceededError(RelayError):
    """Raised when a session exceeds its request window."""

    code = ErrorCode.RATE_LIMIT_EXCEEDED

    def __init__(self, session_id: str) -> None:
        self.session_id = session_id
        super().__init__(f"Rate limit exceeded for {session_id}")


class CommandFailedError(RelayError):
    """A command failure reported by the agent or raised outside the relay."""

    code = ErrorCode.COMMAND_FAILED

    @classmethod
    def from_payload(cls, payload: dict[str, Any] | None) -> CommandFailedError:
        """Build from an agent ``response.error`` payload.

        Uses the payload's ``code`` when recognised, otherwise falls back to
        matching on the message text.
        """
        payload = payload or {}
        message = str(payload.get("message") or "Command failed")
        code = ErrorCode.parse(payload.get("code"))
        if code is None or code in (ErrorCode.UNKNOWN, ErrorCode.COMMAND_FAILED):
            code = ErrorCode.from_message(message)
        return cls(message, code=code)


def classify_error(exc: BaseException) -> ErrorCode:
    """Map any exception to exactly one ``ErrorCode``."""
    if isinstance(exc, RelayError):
        return exc.code
    if isinstance(exc, TimeoutError):
        return ErrorCode.TIMEOUT
    if isinstance(exc, ConnectionError):
        return ErrorCode.NETWORK_ERROR
    return ErrorCode.from_message(str(exc))


# ── Structured responses ────────────────────────────────────────────────


class StructuredErrorResponse(BaseModel):
    """Structured error response returned to MCP and WebSocket callers.

    Never carries stack traces.
    """

    error: str
    code: str
    request_id: str
    category: str | None = None
    recoverable: bool | None = None
    fallback_strategies: list[str] = []

    @classmethod
    def from_exception(cls, exc: Exception, request_id: str) -> "StructuredErrorResponse":
        """Create from an exception, mapping to machine-readable codes.

        Never leaks internal details for unhandled exceptions.
        """
        if isinstance(exc, RelayError):
            return cls(
                error=str(exc),
                code=exc.code.value,
                request_id=request_id,
                category=exc.category.value,
                recoverable=exc.recoverable,
                fallback_strategies=exc.code.fallback_strategies,
            )
        # Unhandled: never expose internal details
        return cls(
            error="An internal error occurred",
            code="INTERNAL_ERROR",
            request_id=request_id,
        )
