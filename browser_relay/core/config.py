"""Settings for the browser-relay service.

All settings are loaded from environment variables with the
``BROWSER_RELAY_`` prefix.
"""

from __future__ import annotations

from pathlib import Path

from pydantic_settings import BaseSettings

_DEFAULT_TOOLS_CONFIG = Path(__file__).resolve().parent.parent.parent / "config" / "tools.yaml"


class Settings(BaseSettings):
    """browser-relay configuration.

    All fields can be overridden by environment variables prefixed with
    ``BROWSER_RELAY_``.  For example, ``BROWSER_RELAY_PORT=9999`` overrides
    the default port.
    """

    # ── Service identity ────────────────────────────────────────────
    SERVICE_NAME: str = "browser-relay"
    SERVICE_VERSION: str = "0.1.0"
    HOST: str = "0.0.0.0"
    PORT: int = 8765
    WS_PATH: str = "/ws"
    LOG_LEVEL: str = "INFO"

    # ── Command correlation ─────────────────────────────────────────
    COMMAND_TIMEOUT_SECONDS: float = 30.0  # Hard deadline per dispatched command

    # ── Session liveness ────────────────────────────────────────────
    HEARTBEAT_SWEEP_INTERVAL_SECONDS: float = 30.0
    STALE_SESSION_SECONDS: float = 120.0  # Heartbeat age before a session is dropped

    # ── Rate limiting (per session) ─────────────────────────────────
    RATE_LIMIT_MAX_REQUESTS: int = 100
    RATE_LIMIT_WINDOW_SECONDS: float = 60.0

    # ── Resilience ──────────────────────────────────────────────────
    CIRCUIT_BREAKER_THRESHOLD: int = 5  # Failed invocations before OPEN
    CIRCUIT_BREAKER_COOLDOWN_SECONDS: float = 60.0  # Seconds before HALF_OPEN probe
    CIRCUIT_BREAKER_MAX_SIGNATURES: int = 1024  # LRU bound on tracked signatures

    # ── MCP front end ───────────────────────────────────────────────
    TOOLS_CONFIG_PATH: str = str(_DEFAULT_TOOLS_CONFIG)

    model_config = {
        "env_prefix": "BROWSER_RELAY_",
    }
