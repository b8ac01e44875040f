"""Command correlator: request/response matching over a one-way transport.

Each dispatched command gets a correlation id and a pending entry holding a
future and an expiry timer.  Exactly one of reply, timeout or disconnect
settles an entry: settling starts with an atomic claim (``dict.pop`` under
a lock), so whoever claims first wins and every later attempt is a no-op
returning ``False``.  ``resolve``/``reject`` may be called from any thread;
the future is always completed on the loop that owns it.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import secrets
import threading
import time
from collections.abc import Awaitable
from dataclasses import dataclass, field
from typing import Any

from browser_relay.core.errors import CommandTimeoutError, TargetDisconnectedError

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class PendingCommand:
    correlation_id: str
    target_id: str
    command: str
    timeout: float
    future: asyncio.Future = field(repr=False)
    loop: asyncio.AbstractEventLoop = field(repr=False)
    issued_at: float = field(default_factory=time.monotonic)
    timer: asyncio.TimerHandle | None = field(default=None, repr=False)

    def settle(self, value: Any = None, error: BaseException | None = None) -> None:
        """Complete the future on its own loop, whatever thread we are on."""
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is self.loop:
            self._complete(value, error)
        else:
            self.loop.call_soon_threadsafe(self._complete, value, error)

    def _complete(self, value: Any, error: BaseException | None) -> None:
        if self.timer is not None:
            self.timer.cancel()
        # The awaiting caller may have been cancelled already.
        if self.future.done():
            return
        if isinstance(error, asyncio.CancelledError):
            self.future.cancel()
        elif error is not None:
            self.future.set_exception(error)
        else:
            self.future.set_result(value)


class CommandCorrelator:
    """Holds outstanding commands until their reply, timeout or disconnect."""

    def __init__(self) -> None:
        self._pending: dict[str, PendingCommand] = {}
        self._lock = threading.Lock()
        self._counter = itertools.count(1)

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def pending_for(self, target_id: str) -> list[str]:
        with self._lock:
            return [cid for cid, entry in self._pending.items() if entry.target_id == target_id]

    def new_correlation_id(self) -> str:
        return f"cmd_{next(self._counter)}_{secrets.token_hex(4)}"

    def register(self, target_id: str, timeout: float, command: str = "") -> tuple[str, Awaitable[Any]]:
        """Open a pending entry bound to *target_id*.

        Must be called from a running event loop.  Returns the correlation
        id and an awaitable that yields the reply data, or raises the
        rejection error (``CommandTimeoutError`` after *timeout* seconds).
        """
        loop = asyncio.get_running_loop()
        correlation_id = self.new_correlation_id()
        entry = PendingCommand(
            correlation_id=correlation_id,
            target_id=target_id,
            command=command,
            timeout=timeout,
            future=loop.create_future(),
            loop=loop,
        )
        with self._lock:
            self._pending[correlation_id] = entry
        entry.timer = loop.call_later(timeout, self._expire, correlation_id)
        return correlation_id, entry.future

    def _claim(self, correlation_id: str) -> PendingCommand | None:
        with self._lock:
            return self._pending.pop(correlation_id, None)

    def resolve(self, correlation_id: str, value: Any = None) -> bool:
        """Complete *correlation_id* with *value*; ``False`` if already settled."""
        entry = self._claim(correlation_id)
        if entry is None:
            return False
        entry.settle(value=value)
        return True

    def reject(self, correlation_id: str, error: BaseException) -> bool:
        """Fail *correlation_id* with *error*; ``False`` if already settled."""
        entry = self._claim(correlation_id)
        if entry is None:
            return False
        entry.settle(error=error)
        return True

    def discard(self, correlation_id: str) -> bool:
        """Drop an entry whose caller stopped waiting (e.g. cancelled)."""
        entry = self._claim(correlation_id)
        if entry is None:
            return False
        entry.settle(error=asyncio.CancelledError())
        return True

    def _expire(self, correlation_id: str) -> None:
        entry = self._pending.get(correlation_id)
        if entry is None:
            return
        error = CommandTimeoutError(correlation_id, entry.timeout, entry.command)
        if self.reject(correlation_id, error):
            logger.warning("Command %s (%s) timed out after %.1fs", correlation_id, entry.command, entry.timeout)

    def reject_target(self, target_id: str, error: BaseException | None = None) -> int:
        """Fail every entry bound to *target_id* immediately.

        Returns the number of entries this call settled.
        """
        rejected = 0
        for correlation_id in self.pending_for(target_id):
            if self.reject(correlation_id, error or TargetDisconnectedError(target_id)):
                rejected += 1
        return rejected

    def close(self, error: BaseException) -> int:
        """Fail everything still pending (shutdown)."""
        with self._lock:
            ids = list(self._pending)
        return sum(1 for correlation_id in ids if self.reject(correlation_id, error))
