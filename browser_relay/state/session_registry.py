"""Session registry: connected agents and clients.

Tracks liveness (heartbeat and activity timestamps) and a per-session
fixed rate-limit window.  Map membership is guarded by a short registry
lock; each session's rate window has its own lock, so sessions never
contend with each other on the hot path.
"""

from __future__ import annotations

import asyncio
import enum
import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


class SessionRole(str, enum.Enum):
    AGENT = "agent"
    CLIENT = "client"


class SessionState(str, enum.Enum):
    """Lifecycle of one connection."""

    CONNECTING = "connecting"
    AUTHENTICATED = "authenticated"
    CLOSED = "closed"


@dataclass
class RateLimitWindow:
    requests: int = 0
    window_start: float = 0.0


@dataclass(eq=False)
class Session:
    """One connected party.

    Attributes:
        id:              Opaque session id (sent back as ``clientId``).
        role:            ``agent`` executes commands, ``client`` issues them.
        state:           Connection lifecycle state.
        last_heartbeat:  Clock reading of the last heartbeat.
        last_activity:   Clock reading of the last inbound frame.
        status:          Load status last reported by the agent.
        active_commands: Command count last reported by the agent.
        closed:          Set once the session is torn down; aborts retries
                         bound to this session.
    """

    id: str
    role: SessionRole = SessionRole.AGENT
    state: SessionState = SessionState.CONNECTING
    connected: bool = False
    connected_at: float = 0.0
    last_heartbeat: float = 0.0
    last_activity: float = 0.0
    status: str = "connected"
    active_commands: int = 0
    rate_limit: RateLimitWindow = field(default_factory=RateLimitWindow)
    closed: asyncio.Event = field(default_factory=asyncio.Event, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)


class SessionRegistry:
    """Owns every ``Session``; other components read through it by id.

    Args:
        clock: Monotonic time source in seconds (injectable for tests).
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._sessions: dict[str, Session] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    # ── Membership ──────────────────────────────────────────────────

    def register(self, session: Session) -> Session:
        """Add *session*, stamping its liveness and rate window with now."""
        now = self._clock()
        session.connected = True
        session.connected_at = now
        session.last_heartbeat = now
        session.last_activity = now
        session.rate_limit = RateLimitWindow(requests=0, window_start=now)
        with self._lock:
            self._sessions[session.id] = session
        logger.debug("Session %s registered as %s", session.id, session.role.value)
        return session

    def get(self, session_id: str) -> Session | None:
        return self._sessions.get(session_id)

    def remove(self, session_id: str) -> Session | None:
        """Remove and return the session, or ``None`` if already gone."""
        with self._lock:
            session = self._sessions.pop(session_id, None)
        if session is not None:
            session.connected = False
        return session

    def all(self) -> list[Session]:
        with self._lock:
            return list(self._sessions.values())

    def connected(self, role: SessionRole | None = None) -> list[Session]:
        """Connected sessions in registration order, optionally by role."""
        return [s for s in self.all() if s.connected and (role is None or s.role == role)]

    def pick_target(self, exclude: str | None = None) -> Session | None:
        """Return the oldest connected agent session other than *exclude*."""
        for session in self.connected(SessionRole.AGENT):
            if session.id != exclude:
                return session
        return None

    # ── Liveness ────────────────────────────────────────────────────

    def touch(self, session_id: str, *, heartbeat: bool = False) -> bool:
        """Record activity (and optionally a heartbeat) for *session_id*."""
        session = self._sessions.get(session_id)
        if session is None:
            return False
        now = self._clock()
        session.last_activity = now
        if heartbeat:
            session.last_heartbeat = now
        return True

    def sweep_stale(self, max_idle: float) -> list[Session]:
        """Remove and return sessions whose heartbeat is older than *max_idle*.

        Each stale session is returned by exactly one call, even when sweeps
        and removals race.
        """
        now = self._clock()
        with self._lock:
            stale = [s for s in self._sessions.values() if now - s.last_heartbeat > max_idle]
            for session in stale:
                del self._sessions[session.id]
        for session in stale:
            session.connected = False
            logger.warning("Removing stale session %s (no heartbeat for %.1fs)", session.id, now - session.last_heartbeat)
        return stale

    # ── Rate limiting ───────────────────────────────────────────────

    def check_and_consume_rate_limit(self, session_id: str, max_requests: int, window: float) -> bool:
        """Consume one request from the session's window.

        Resets the window when more than *window* seconds have elapsed.
        Returns ``False`` without side effects once *max_requests* have been
        consumed in the current window, or if the session is unknown.
        """
        session = self._sessions.get(session_id)
        if session is None:
            return False
        now = self._clock()
        with session._lock:
            bucket = session.rate_limit
            if now - bucket.window_start > window:
                bucket.requests = 0
                bucket.window_start = now
            if bucket.requests >= max_requests:
                return False
            bucket.requests += 1
            return True
