"""Resilience patterns: retry policies, circuit breakers and the orchestrator.

Provides per-signature circuit breakers and exponential-backoff retry so a
persistently failing browser target is isolated instead of hammered.
"""

from browser_relay.resilience.backoff import BackoffPolicyResolver, RetryPolicy
from browser_relay.resilience.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerTable,
    CircuitState,
    command_signature,
)
from browser_relay.resilience.retry import RetryOrchestrator

__all__ = [
    "BackoffPolicyResolver",
    "CircuitBreaker",
    "CircuitBreakerTable",
    "CircuitState",
    "RetryOrchestrator",
    "RetryPolicy",
    "command_signature",
]
