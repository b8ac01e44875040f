"""Retry orchestrator: one logical command, many attempts.

``RetryOrchestrator.execute`` wraps a single-attempt coroutine factory:

1. If the signature's circuit is open, fail fast with ``CircuitOpenError``
   (no attempt, no failure recorded).
2. Run attempts from 0.  Success records a breaker success and returns.
3. On failure, classify the error.  Once the policy budget is spent, or the
   category is not retryable, record ONE breaker failure and raise the last
   error with its ``ErrorContext`` attached.
4. Otherwise back off (abortable by the target's disconnect signal and
   bounded by the caller's deadline) and try again.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Mapping
from typing import Any, TypeVar

from browser_relay.core.errors import (
    CircuitOpenError,
    CommandFailedError,
    ErrorContext,
    RelayError,
    TargetDisconnectedError,
    classify_error,
)
from browser_relay.resilience.backoff import BackoffPolicyResolver
from browser_relay.resilience.circuit_breaker import CircuitBreakerTable, command_signature

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryOrchestrator:
    """Runs commands under a retry policy and per-signature circuit breaking.

    Args:
        resolver: Policy lookup and delay computation.
        breakers: Circuit breaker table shared by all invocations.
        clock:    Monotonic clock used for caller deadlines.
    """

    def __init__(
        self,
        resolver: BackoffPolicyResolver,
        breakers: CircuitBreakerTable,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.resolver = resolver
        self.breakers = breakers
        self._clock = clock

    async def execute(
        self,
        command: str,
        params: Mapping[str, Any] | None,
        operation: Callable[[], Awaitable[T]],
        *,
        abort: asyncio.Event | None = None,
        abort_target: str = "",
        deadline: float | None = None,
    ) -> T:
        """Run *operation* until it succeeds or the retry budget is spent.

        Args:
            command:      Command kind (selects the retry policy).
            params:       Command parameters (part of the breaker signature).
            operation:    Performs exactly one attempt.
            abort:        Set when the target disconnects; ends a backoff
                          sleep early with ``TargetDisconnectedError``.
            abort_target: Session id reported in that error.
            deadline:     Absolute ``clock()`` reading after which no further
                          retry is started.

        Raises:
            CircuitOpenError: The signature is isolated; nothing was attempted.
            RelayError: The last attempt's error, with ``context`` attached.
        """
        signature = command_signature(command, params)
        if await self.breakers.is_open(signature):
            retry_after = self.breakers.retry_after(signature)
            logger.warning("Circuit open for %s (%s), rejecting call", command, signature)
            raise CircuitOpenError(command, signature, retry_after)

        policy = self.resolver.policy_for(command)
        attempt = 0
        while True:
            try:
                result = await operation()
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                error = self._as_relay_error(exc)
                context = ErrorContext(command=command, params=dict(params or {}), code=error.code, retry_count=attempt)
                error.context = context
                logger.error(
                    "Command %s failed: code=%s category=%s attempt=%d recoverable=%s",
                    command,
                    error.code.value,
                    context.category.value,
                    attempt,
                    context.recoverable,
                )

                delay = self.resolver.delay_for(policy, attempt)
                give_up = self.resolver.exhausted(policy, attempt) or not policy.allows(context.category)
                if not give_up and deadline is not None and self._clock() + delay > deadline:
                    logger.warning("Deadline for %s leaves no room for retry %d", command, attempt + 1)
                    give_up = True
                if give_up:
                    await self._give_up(signature, command, attempt, error)
                    if error is exc:
                        raise
                    raise error from exc

                logger.info("Retrying %s (retry %d/%d) in %.2fs", command, attempt + 1, policy.max_retries, delay)
                if await self._backoff(delay, abort):
                    disconnected = TargetDisconnectedError(abort_target)
                    disconnected.context = ErrorContext(
                        command=command,
                        params=dict(params or {}),
                        code=disconnected.code,
                        retry_count=attempt,
                    )
                    await self._give_up(signature, command, attempt, disconnected)
                    raise disconnected from error
                attempt += 1
                continue

            await self.breakers.record_success(signature)
            logger.info("Command %s succeeded after %d retries", command, attempt)
            return result

    async def _give_up(self, signature: str, command: str, attempt: int, error: RelayError) -> None:
        await self.breakers.record_failure(signature, command)
        logger.error(
            "Command %s failed permanently after %d retries: %s (fallbacks: %s)",
            command,
            attempt,
            error,
            error.code.fallback_strategies,
        )

    @staticmethod
    async def _backoff(delay: float, abort: asyncio.Event | None) -> bool:
        """Sleep for *delay*; return ``True`` if *abort* fired first."""
        if abort is None:
            await asyncio.sleep(delay)
            return False
        if abort.is_set():
            return True
        try:
            await asyncio.wait_for(abort.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return False
        return True

    @staticmethod
    def _as_relay_error(exc: Exception) -> RelayError:
        """Keep relay errors as-is; wrap foreign ones with a classified code."""
        if isinstance(exc, RelayError):
            return exc
        return CommandFailedError(str(exc) or type(exc).__name__, code=classify_error(exc))
