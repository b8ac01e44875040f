"""Protocol router: the per-connection state machine.

Connections move ``CONNECTING → AUTHENTICATED → CLOSED``.  Inbound frames
are decoded once and dispatched by ``type``:

- ``auth``       always succeeds; registers the session, replies ``auth_success``
- ``heartbeat``  refreshes liveness and the agent's reported load
- ``response``   settles the matching pending command in the correlator
- ``command``    validated and rate limited, then relayed to the agent as
                 its own task; the outcome returns as a ``response`` frame

Disconnects (transport close or heartbeat sweep) fail every command pending
on that session immediately and abort retries waiting on it.
"""

from __future__ import annotations

import asyncio
import json
import logging
import secrets
import time
from dataclasses import dataclass, field
from typing import Any

from pydantic import ValidationError
from starlette.websockets import WebSocketDisconnect

from browser_relay.core.config import Settings
from browser_relay.core.errors import (
    CommandFailedError,
    ErrorCode,
    InvalidCommandError,
    NoTargetAvailableError,
    RelayError,
    TargetDisconnectedError,
)
from browser_relay.models.commands import Command, CommandKind, parse_command
from browser_relay.models.messages import (
    INBOUND_TYPES,
    AuthMessage,
    CommandRequest,
    HeartbeatMessage,
    ResponseMessage,
    auth_success_frame,
    command_frame,
    error_frame,
    parse_inbound,
    response_frame,
)
from browser_relay.protocol.transport import Transport, WebSocketTransport
from browser_relay.resilience.backoff import BackoffPolicyResolver
from browser_relay.resilience.circuit_breaker import CircuitBreakerTable
from browser_relay.resilience.retry import RetryOrchestrator
from browser_relay.state.correlator import CommandCorrelator
from browser_relay.state.session_registry import Session, SessionRegistry, SessionRole, SessionState

logger = logging.getLogger(__name__)
_wire_logger = logging.getLogger("browser_relay.protocol.wire")


@dataclass(eq=False)
class Connection:
    """One open transport and the relay tasks it started."""

    id: str
    transport: Transport
    state: SessionState = SessionState.CONNECTING
    tasks: set[asyncio.Task] = field(default_factory=set, repr=False)


def _new_session_id() -> str:
    return f"client_{int(time.time() * 1000)}_{secrets.token_hex(5)}"


def _peek_type(raw: Any) -> Any:
    """Best-effort read of a frame's ``type`` for error reporting."""
    if isinstance(raw, dict):
        return raw.get("type")
    try:
        data = json.loads(raw)
    except (TypeError, ValueError):
        return None
    return data.get("type") if isinstance(data, dict) else None


def _error_payload(exc: RelayError) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "code": exc.code.value,
        "message": str(exc),
        "recoverable": exc.recoverable,
        "category": exc.category.value,
    }
    if exc.context is not None:
        payload["retryCount"] = exc.context.retry_count
        payload["fallbackStrategies"] = exc.context.fallback_strategies
    return payload


class ProtocolRouter:
    """Drives sessions and relays commands between clients and the agent.

    Args:
        settings:     Service settings (timeouts, rate limits, breaker tuning).
        registry:     Session registry; a fresh one by default.
        correlator:   Command correlator; a fresh one by default.
        orchestrator: Retry orchestrator; built from *settings* by default.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        registry: SessionRegistry | None = None,
        correlator: CommandCorrelator | None = None,
        orchestrator: RetryOrchestrator | None = None,
    ) -> None:
        self.settings = settings
        self.registry = registry or SessionRegistry()
        self.correlator = correlator or CommandCorrelator()
        self.orchestrator = orchestrator or RetryOrchestrator(
            BackoffPolicyResolver(),
            CircuitBreakerTable(
                failure_threshold=settings.CIRCUIT_BREAKER_THRESHOLD,
                cooldown=settings.CIRCUIT_BREAKER_COOLDOWN_SECONDS,
                max_signatures=settings.CIRCUIT_BREAKER_MAX_SIGNATURES,
            ),
        )
        self._connections: dict[str, Connection] = {}
        self._sweeper: asyncio.Task | None = None

    @property
    def breakers(self) -> CircuitBreakerTable:
        return self.orchestrator.breakers

    def connection(self, connection_id: str) -> Connection | None:
        return self._connections.get(connection_id)

    # ── Connection lifecycle ─────────────────────────────────────────

    def connect(self, transport: Transport) -> Connection:
        """Track a freshly opened transport in the CONNECTING state."""
        conn = Connection(id=_new_session_id(), transport=transport)
        self._connections[conn.id] = conn
        logger.info("New connection %s", conn.id)
        return conn

    def disconnect(self, connection_id: str, reason: str = "") -> bool:
        """Close a connection and clean up everything bound to it.

        Idempotent: only the first call for a given id does any work.
        """
        session = self.registry.remove(connection_id)
        return self._teardown(connection_id, session, reason) is not None or session is not None

    def _teardown(self, connection_id: str, session: Session | None, reason: str) -> Connection | None:
        conn = self._connections.pop(connection_id, None)
        if conn is None and session is None:
            return None
        if conn is not None:
            conn.state = SessionState.CLOSED
            for task in list(conn.tasks):
                task.cancel()
        if session is not None:
            session.state = SessionState.CLOSED
            session.closed.set()
        rejected = self.correlator.reject_target(connection_id)
        logger.info("Session %s closed (%s); %d pending command(s) failed", connection_id, reason or "closed", rejected)
        return conn

    async def serve(self, transport: WebSocketTransport) -> None:
        """Accept *transport* and pump its frames until it closes."""
        await transport.accept()
        conn = self.connect(transport)
        reason = "transport closed"
        try:
            while True:
                raw = await transport.receive_frame()
                await self.handle_frame(conn, raw)
        except WebSocketDisconnect as exc:
            reason = f"transport closed ({exc.code})"
        finally:
            self.disconnect(conn.id, reason)

    # ── Inbound frames ───────────────────────────────────────────────

    async def handle_frame(self, conn: Connection, raw: str | bytes | dict[str, Any]) -> None:
        """Decode and dispatch one inbound frame.  Never blocks on a reply."""
        if conn.state == SessionState.CLOSED:
            return
        try:
            message = parse_inbound(raw)
        except ValidationError:
            frame_type = _peek_type(raw)
            if isinstance(frame_type, str) and frame_type not in INBOUND_TYPES:
                logger.warning("Unknown message type %r from %s", frame_type, conn.id)
                await self._send(conn, error_frame("UNKNOWN_MESSAGE_TYPE", f"Unknown message type: {frame_type}"))
            else:
                logger.warning("Malformed frame from %s", conn.id)
                await self._send(conn, error_frame("INVALID_MESSAGE", "Invalid message format"))
            return

        _wire_logger.debug("Received %s from %s", message.type, conn.id)

        if isinstance(message, AuthMessage):
            await self._handle_auth(conn, message)
            return
        if conn.state != SessionState.AUTHENTICATED:
            await self._send(conn, error_frame("NOT_AUTHENTICATED", "Send an auth message first"))
            return

        self.registry.touch(conn.id, heartbeat=isinstance(message, HeartbeatMessage))
        if isinstance(message, ResponseMessage):
            self._handle_response(conn, message)
        elif isinstance(message, HeartbeatMessage):
            self._handle_heartbeat(conn, message)
        elif isinstance(message, CommandRequest):
            await self._handle_command(conn, message)

    async def _handle_auth(self, conn: Connection, message: AuthMessage) -> None:
        if conn.state == SessionState.AUTHENTICATED:
            self.registry.touch(conn.id, heartbeat=True)
        else:
            session = Session(id=conn.id, role=SessionRole(message.role), state=SessionState.AUTHENTICATED)
            self.registry.register(session)
            conn.state = SessionState.AUTHENTICATED
            logger.info("Session %s authenticated as %s", conn.id, session.role.value)
        await self._send(conn, auth_success_frame(conn.id))

    def _handle_response(self, conn: Connection, message: ResponseMessage) -> None:
        if message.success:
            settled = self.correlator.resolve(message.id, message.data)
        else:
            payload = message.error.model_dump() if message.error is not None else None
            settled = self.correlator.reject(message.id, CommandFailedError.from_payload(payload))
        if not settled:
            # Late reply after timeout/disconnect, or an id we never issued.
            logger.debug("Ignoring response %s from %s: nothing pending", message.id, conn.id)

    def _handle_heartbeat(self, conn: Connection, message: HeartbeatMessage) -> None:
        session = self.registry.get(conn.id)
        if session is None:
            return
        session.status = message.status
        session.active_commands = message.active_commands
        logger.debug("Heartbeat from %s: status=%s active=%d", conn.id, message.status, message.active_commands)

    async def _handle_command(self, conn: Connection, message: CommandRequest) -> None:
        request_id = message.id or self.correlator.new_correlation_id()
        try:
            command = parse_command(message.command, message.params)
        except InvalidCommandError as exc:
            await self._send(conn, error_frame(exc.code.value, str(exc), id=request_id, errors=exc.errors))
            return

        if not self.registry.check_and_consume_rate_limit(
            conn.id,
            self.settings.RATE_LIMIT_MAX_REQUESTS,
            self.settings.RATE_LIMIT_WINDOW_SECONDS,
        ):
            logger.warning("Rate limit exceeded for %s", conn.id)
            await self._send(conn, error_frame(ErrorCode.RATE_LIMIT_EXCEEDED.value, "Rate limit exceeded", id=request_id))
            return

        timeout = message.timeout / 1000 if message.timeout else None
        task = asyncio.create_task(self._relay(conn, request_id, command, timeout))
        conn.tasks.add(task)
        task.add_done_callback(conn.tasks.discard)
        logger.info("Command %s (%s) queued for relay from %s", request_id, command.kind.value, conn.id)

    async def _relay(self, conn: Connection, request_id: str, command: Command, timeout: float | None) -> None:
        started = time.monotonic()
        try:
            data = await self.invoke(command, timeout=timeout, exclude=conn.id)
        except RelayError as exc:
            frame = response_frame(
                request_id,
                error=_error_payload(exc),
                duration_ms=(time.monotonic() - started) * 1000,
                retries=exc.context.retry_count if exc.context else 0,
            )
        except Exception:
            logger.exception("Relay of %s (%s) from %s crashed", request_id, command.kind.value, conn.id)
            frame = response_frame(
                request_id,
                error={"code": "INTERNAL_ERROR", "message": "An internal error occurred", "recoverable": False},
                duration_ms=(time.monotonic() - started) * 1000,
            )
        else:
            frame = response_frame(request_id, data=data, duration_ms=(time.monotonic() - started) * 1000)
        await self._send(conn, frame)

    # ── Outbound commands ────────────────────────────────────────────

    async def invoke(
        self,
        command: Command | CommandKind | str,
        params: dict[str, Any] | None = None,
        *,
        timeout: float | None = None,
        exclude: str | None = None,
        deadline: float | None = None,
    ) -> Any:
        """Relay one command to the agent and return its reply data.

        Args:
            command:  A decoded ``Command``, or a kind to decode with *params*.
            params:   Raw parameters when *command* is a kind.
            timeout:  Per-attempt reply deadline in seconds.
            exclude:  Session id that must not be picked as the target.
            deadline: Absolute ``time.monotonic()`` after which no retry starts.

        Raises:
            InvalidCommandError: Unknown kind or malformed parameters.
            NoTargetAvailableError: No agent is connected.
            CircuitOpenError: The command's signature is isolated.
            RelayError: The agent's (or transport's) last error after retries.
        """
        if not isinstance(command, Command):
            command = parse_command(command, params)
        target = self.registry.pick_target(exclude=exclude)
        if target is None:
            raise NoTargetAvailableError()

        kind = command.kind.value
        wire_params = command.wire_params()
        attempt_timeout = timeout or self.settings.COMMAND_TIMEOUT_SECONDS

        async def attempt() -> Any:
            conn = self._connections.get(target.id)
            if conn is None or conn.state == SessionState.CLOSED:
                raise TargetDisconnectedError(target.id)
            correlation_id, reply = self.correlator.register(target.id, attempt_timeout, kind)
            try:
                try:
                    await conn.transport.send_json(command_frame(correlation_id, kind, wire_params))
                except Exception as exc:
                    raise CommandFailedError(
                        f"Network error sending to {target.id}: {exc}",
                        code=ErrorCode.NETWORK_ERROR,
                    ) from exc
                _wire_logger.debug("Sent %s (%s) to %s", correlation_id, kind, target.id)
                return await reply
            finally:
                self.correlator.discard(correlation_id)

        return await self.orchestrator.execute(
            kind,
            wire_params,
            attempt,
            abort=target.closed,
            abort_target=target.id,
            deadline=deadline,
        )

    async def _send(self, conn: Connection, payload: dict[str, Any]) -> None:
        if conn.state == SessionState.CLOSED:
            return
        try:
            await conn.transport.send_json(payload)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Failed to send %s to %s: %s", payload.get("type"), conn.id, exc)

    # ── Heartbeat sweep ──────────────────────────────────────────────

    async def sweep_stale(self) -> list[str]:
        """Drop sessions whose heartbeat is older than the stale timeout."""
        stale = self.registry.sweep_stale(self.settings.STALE_SESSION_SECONDS)
        for session in stale:
            conn = self._teardown(session.id, session, "heartbeat timeout")
            if conn is not None:
                try:
                    await conn.transport.close(code=1001, reason="heartbeat timeout")
                except Exception as exc:  # noqa: BLE001
                    logger.debug("Closing stale transport %s failed: %s", session.id, exc)
        return [session.id for session in stale]

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.settings.HEARTBEAT_SWEEP_INTERVAL_SECONDS)
            try:
                await self.sweep_stale()
            except Exception:
                logger.exception("Heartbeat sweep failed")

    def start(self) -> None:
        """Start the periodic heartbeat sweep (idempotent)."""
        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.create_task(self._sweep_loop())

    async def stop(self) -> None:
        """Stop sweeping, fail outstanding commands and drop all sessions."""
        if self._sweeper is not None:
            self._sweeper.cancel()
            await asyncio.gather(self._sweeper, return_exceptions=True)
            self._sweeper = None
        for connection_id in list(self._connections):
            self.disconnect(connection_id, "relay shutting down")
        self.correlator.close(RelayError("Relay shutting down", code=ErrorCode.TARGET_DISCONNECTED))

    def stats(self) -> dict[str, int]:
        return {
            "connected_sessions": len(self.registry),
            "pending_commands": self.correlator.pending_count,
        }
