"""Async circuit breakers keyed by command signature.

Implements the standard three-state circuit breaker:

    CLOSED    →  (failure_threshold reached)  →  OPEN
    OPEN      →  (cooldown elapsed, on check) →  HALF_OPEN
    HALF_OPEN →  (probe succeeds)             →  CLOSED
    HALF_OPEN →  (probe fails)                →  OPEN

A signature is the command kind plus a stable hash of its parameters, so
repeated identical calls accumulate against the same breaker while a
different selector or URL gets its own.  Each breaker has its own lock;
unrelated signatures never contend.
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
import time
from collections import OrderedDict
from collections.abc import Callable, Mapping
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)


class CircuitState(str, Enum):
    """Circuit breaker states."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


def command_signature(command: str, params: Mapping[str, Any] | None) -> str:
    """Deterministic breaker key for *command* with *params*.

    Key order does not matter: ``{"a": 1, "b": 2}`` and ``{"b": 2, "a": 1}``
    share a signature.
    """
    canonical = json.dumps(params or {}, sort_keys=True, separators=(",", ":"), default=str)
    digest = hashlib.sha256(canonical.encode()).hexdigest()[:32]
    return f"{command}:{digest}"


class CircuitBreaker:
    """Async-safe circuit breaker for a single signature.

    Args:
        signature:          Breaker key (see ``command_signature``).
        command:            Command kind, for logging and snapshots.
        failure_threshold:  Failed invocations before opening the circuit.
        cooldown:           Seconds after the last failure before a probe.
        clock:              Monotonic time source.
    """

    def __init__(
        self,
        signature: str,
        command: str = "",
        failure_threshold: int = 5,
        cooldown: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.signature = signature
        self.command = command
        self.failure_threshold = failure_threshold
        self.cooldown = cooldown
        self._clock = clock

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._last_failure_time: float = 0.0
        self._lock = asyncio.Lock()

        # Metrics
        self.total_calls = 0
        self.total_failures = 0
        self.total_rejections = 0
        self.total_successes = 0

    # ── Public properties ────────────────────────────────────────────

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def failure_count(self) -> int:
        return self._failure_count

    @property
    def last_failure_time(self) -> float:
        return self._last_failure_time

    def retry_after(self) -> float:
        """Seconds until an OPEN circuit admits a probe (0 when not OPEN)."""
        if self._state != CircuitState.OPEN:
            return 0.0
        return max(0.0, self.cooldown - (self._clock() - self._last_failure_time))

    # ── State machine ────────────────────────────────────────────────

    async def is_open(self) -> bool:
        """Return ``True`` if calls must be rejected.

        An OPEN circuit whose cooldown has elapsed moves to HALF_OPEN here
        and lets the call through as a probe.
        """
        async with self._lock:
            if self._state == CircuitState.OPEN:
                if self._clock() - self._last_failure_time > self.cooldown:
                    self._state = CircuitState.HALF_OPEN
                    logger.info("Circuit %s moved to HALF_OPEN", self.signature)
                else:
                    self.total_rejections += 1
                    return True
            self.total_calls += 1
            return False

    async def record_success(self) -> None:
        """Record a successful invocation; closes the circuit."""
        async with self._lock:
            self.total_successes += 1
            if self._state != CircuitState.CLOSED:
                logger.info("Circuit %s closed after successful probe", self.signature)
            self._state = CircuitState.CLOSED
            self._failure_count = 0

    async def record_failure(self) -> CircuitState:
        """Record a failed invocation; may open the circuit."""
        async with self._lock:
            self._failure_count += 1
            self.total_failures += 1
            self._last_failure_time = self._clock()

            if self._state != CircuitState.OPEN and self._failure_count >= self.failure_threshold:
                self._state = CircuitState.OPEN
                logger.warning(
                    "Circuit %s opened (%d failures, threshold %d)",
                    self.signature,
                    self._failure_count,
                    self.failure_threshold,
                )
            return self._state

    async def reset(self) -> None:
        """Force-reset the circuit breaker to CLOSED state."""
        async with self._lock:
            self._state = CircuitState.CLOSED
            self._failure_count = 0

    def snapshot(self) -> dict:
        """Return a JSON-serializable snapshot for health/metrics."""
        return {
            "signature": self.signature,
            "command": self.command,
            "state": self._state.value,
            "failure_count": self._failure_count,
            "last_failure_time": self._last_failure_time,
            "total_calls": self.total_calls,
            "total_failures": self.total_failures,
            "total_rejections": self.total_rejections,
            "total_successes": self.total_successes,
        }


class CircuitBreakerTable:
    """Per-signature ``CircuitBreaker`` instances, created on first failure.

    The table is bounded: past *max_signatures* entries the least recently
    used breaker that is not OPEN is evicted (the oldest OPEN one only if
    every breaker is OPEN).

    Usage::

        table = CircuitBreakerTable(failure_threshold=5, cooldown=60.0)
        sig = command_signature("click", {"selector": "#buy"})
        if await table.is_open(sig):
            ...
        await table.record_failure(sig, "click")
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        cooldown: float = 60.0,
        max_signatures: int = 1024,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._threshold = failure_threshold
        self._cooldown = cooldown
        self._max_signatures = max(1, max_signatures)
        self._clock = clock
        self._breakers: OrderedDict[str, CircuitBreaker] = OrderedDict()

    def __len__(self) -> int:
        return len(self._breakers)

    def get(self, signature: str, command: str = "") -> CircuitBreaker:
        """Return (or create) the breaker for *signature*."""
        cb = self._breakers.get(signature)
        if cb is None:
            cb = CircuitBreaker(
                signature,
                command=command or signature.split(":", 1)[0],
                failure_threshold=self._threshold,
                cooldown=self._cooldown,
                clock=self._clock,
            )
            self._breakers[signature] = cb
            self._evict(keep=signature)
        else:
            self._breakers.move_to_end(signature)
        return cb

    def peek(self, signature: str) -> CircuitBreaker | None:
        """Return the breaker for *signature* without creating or touching it."""
        return self._breakers.get(signature)

    def _evict(self, keep: str) -> None:
        while len(self._breakers) > self._max_signatures:
            candidates = [sig for sig in self._breakers if sig != keep]
            victim = next(
                (sig for sig in candidates if self._breakers[sig].state != CircuitState.OPEN),
                candidates[0],
            )
            del self._breakers[victim]
            logger.debug("Evicted circuit breaker %s", victim)

    async def is_open(self, signature: str) -> bool:
        cb = self._breakers.get(signature)
        if cb is None:
            return False
        self._breakers.move_to_end(signature)
        return await cb.is_open()

    async def record_failure(self, signature: str, command: str = "") -> CircuitState:
        return await self.get(signature, command).record_failure()

    async def record_success(self, signature: str) -> None:
        cb = self._breakers.get(signature)
        if cb is not None:
            await cb.record_success()

    def retry_after(self, signature: str) -> float:
        cb = self._breakers.get(signature)
        return cb.retry_after() if cb is not None else 0.0

    async def reset(self, signature: str) -> bool:
        """Force one breaker to CLOSED; ``False`` if the signature is unknown."""
        cb = self._breakers.get(signature)
        if cb is None:
            return False
        await cb.reset()
        logger.info("Circuit %s reset", signature)
        return True

    async def reset_all(self) -> int:
        """Reset every circuit breaker to CLOSED; returns how many."""
        breakers = list(self._breakers.values())
        for cb in breakers:
            await cb.reset()
        logger.info("All circuit breakers reset (%d)", len(breakers))
        return len(breakers)

    def snapshot(self, signature: str) -> dict | None:
        cb = self._breakers.get(signature)
        return cb.snapshot() if cb is not None else None

    def all_snapshots(self) -> list[dict]:
        """Return snapshots for every tracked breaker."""
        return [cb.snapshot() for cb in self._breakers.values()]
