"""FastAPI application entrypoint.

Provides the relay's HTTP surface:

- ``GET  /health``                            service status and live counters
- ``GET  /circuit-breakers``                  per-signature breaker snapshots
- ``POST /circuit-breakers/reset``            force every breaker CLOSED
- ``POST /circuit-breakers/{signature}/reset`` force one breaker CLOSED
- ``WS   /ws``                                agent and client connections
- ``/mcp``                                    FastMCP server (browser_* tools)

Every HTTP response carries an ``X-Request-ID`` header.
"""

import logging
import time
import uuid
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, HTTPException, Request, Response, WebSocket

from browser_relay.core.config import Settings
from browser_relay.core.logging_config import configure_logging
from browser_relay.models.schemas import CircuitBreakerStatus, CircuitResetResponse, HealthResponse
from browser_relay.protocol.router import ProtocolRouter
from browser_relay.protocol.transport import WebSocketTransport

logger = logging.getLogger(__name__)

settings = Settings()

router = ProtocolRouter(settings)

_start_time = time.monotonic()


@asynccontextmanager
async def lifespan(_app: FastAPI):
    configure_logging(settings.LOG_LEVEL)
    router.start()
    logger.info("%s %s ready (ws path %s)", settings.SERVICE_NAME, settings.SERVICE_VERSION, settings.WS_PATH)
    try:
        yield
    finally:
        await router.stop()
        logger.info("%s stopped", settings.SERVICE_NAME)


app = FastAPI(
    title=settings.SERVICE_NAME,
    version=settings.SERVICE_VERSION,
    lifespan=lifespan,
)


@app.middleware("http")
async def request_id_middleware(request: Request, call_next) -> Response:
    """Assign or preserve a unique request ID on every request."""
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


@app.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    """Return service health with name, version, status, uptime and live counters."""
    stats = router.stats()
    return HealthResponse(
        service=settings.SERVICE_NAME,
        version=settings.SERVICE_VERSION,
        status="healthy",
        uptime_seconds=round(time.monotonic() - _start_time, 2),
        connected_sessions=stats["connected_sessions"],
        pending_commands=stats["pending_commands"],
    )


# ── Circuit breakers ────────────────────────────────────────────────────


@app.get("/circuit-breakers", response_model=list[CircuitBreakerStatus])
async def list_circuit_breakers() -> list[CircuitBreakerStatus]:
    return [CircuitBreakerStatus(**snapshot) for snapshot in router.breakers.all_snapshots()]


@app.post("/circuit-breakers/reset", response_model=CircuitResetResponse)
async def reset_circuit_breakers() -> CircuitResetResponse:
    return CircuitResetResponse(reset=await router.breakers.reset_all())


@app.post("/circuit-breakers/{signature}/reset", response_model=CircuitResetResponse)
async def reset_circuit_breaker(signature: str) -> CircuitResetResponse:
    if not await router.breakers.reset(signature):
        raise HTTPException(status_code=404, detail=f"Unknown circuit signature: {signature}")
    return CircuitResetResponse(reset=1)


# ── WebSocket relay ─────────────────────────────────────────────────────


@app.websocket(settings.WS_PATH)
async def relay_socket(websocket: WebSocket) -> None:
    await router.serve(WebSocketTransport(websocket))


# ── MCP Protocol Server ────────────────────────────────────────────────

_config_path = Path(settings.TOOLS_CONFIG_PATH)

if _config_path.exists():
    from browser_relay.server import create_mcp_server
    from browser_relay.tool_registry import ToolRegistry

    _registry = ToolRegistry(_config_path)
    mcp_server = create_mcp_server(_registry, router)
    app.mount("/mcp", mcp_server.http_app(transport="sse"))
    logger.info("MCP server mounted at /mcp with %d tools", _registry.tool_count)
else:
    logger.warning("%s not found; MCP server not mounted", _config_path)
