"""Tests for per-signature circuit breakers.

Covers:
- CircuitBreaker state transitions (CLOSED → OPEN → HALF_OPEN → CLOSED)
- Signature stability and isolation between signatures
- The bounded table's eviction order
"""

from __future__ import annotations

import pytest

from browser_relay.resilience.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerTable,
    CircuitState,
    command_signature,
)


class FakeClock:
    def __init__(self, now: float = 0.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Signatures
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class TestCommandSignature:
    def test_key_order_irrelevant(self):
        assert command_signature("click", {"a": 1, "b": 2}) == command_signature("click", {"b": 2, "a": 1})

    def test_params_distinguish(self):
        assert command_signature("click", {"selector": "#a"}) != command_signature("click", {"selector": "#b"})

    def test_command_prefix(self):
        sig = command_signature("extract", {"selector": "#x"})
        assert sig.startswith("extract:")
        assert len(sig.split(":", 1)[1]) == 32

    def test_none_and_empty_params_match(self):
        assert command_signature("getTabs", None) == command_signature("getTabs", {})


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# CircuitBreaker State Machine Tests
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class TestCircuitBreakerStates:
    async def test_initial_state_is_closed(self):
        cb = CircuitBreaker("click:abc")
        assert cb.state == CircuitState.CLOSED
        assert cb.failure_count == 0
        assert await cb.is_open() is False

    async def test_stays_closed_below_threshold(self):
        cb = CircuitBreaker("click:abc", failure_threshold=5)
        for _ in range(4):
            await cb.record_failure()
        assert cb.state == CircuitState.CLOSED

    async def test_opens_at_fifth_failure(self):
        cb = CircuitBreaker("click:abc", failure_threshold=5)
        for _ in range(5):
            await cb.record_failure()
        assert cb.state == CircuitState.OPEN
        assert await cb.is_open() is True
        assert cb.total_rejections == 1

    async def test_success_resets_failure_count(self):
        cb = CircuitBreaker("click:abc", failure_threshold=5)
        for _ in range(4):
            await cb.record_failure()
        await cb.record_success()
        assert cb.failure_count == 0
        await cb.record_failure()
        assert cb.state == CircuitState.CLOSED

    async def test_half_open_after_cooldown(self):
        clock = FakeClock()
        cb = CircuitBreaker("click:abc", failure_threshold=1, cooldown=60.0, clock=clock)
        await cb.record_failure()
        clock.now = 60.0
        assert await cb.is_open() is True
        clock.now = 60.5
        assert await cb.is_open() is False
        assert cb.state == CircuitState.HALF_OPEN

    async def test_probe_success_closes(self):
        clock = FakeClock()
        cb = CircuitBreaker("click:abc", failure_threshold=1, cooldown=1.0, clock=clock)
        await cb.record_failure()
        clock.now = 2.0
        await cb.is_open()
        await cb.record_success()
        assert cb.state == CircuitState.CLOSED

    async def test_probe_failure_reopens(self):
        clock = FakeClock()
        cb = CircuitBreaker("click:abc", failure_threshold=1, cooldown=1.0, clock=clock)
        await cb.record_failure()
        clock.now = 2.0
        await cb.is_open()
        await cb.record_failure()
        assert cb.state == CircuitState.OPEN
        assert await cb.is_open() is True

    async def test_retry_after(self):
        clock = FakeClock()
        cb = CircuitBreaker("click:abc", failure_threshold=1, cooldown=60.0, clock=clock)
        assert cb.retry_after() == 0.0
        await cb.record_failure()
        clock.now = 20.0
        assert cb.retry_after() == pytest.approx(40.0)

    async def test_reset(self):
        cb = CircuitBreaker("click:abc", failure_threshold=1)
        await cb.record_failure()
        await cb.reset()
        assert cb.state == CircuitState.CLOSED
        assert cb.failure_count == 0

    async def test_snapshot(self):
        cb = CircuitBreaker("click:abc", command="click")
        await cb.is_open()
        snap = cb.snapshot()
        assert snap["signature"] == "click:abc"
        assert snap["command"] == "click"
        assert snap["state"] == "closed"
        assert snap["total_calls"] == 1


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Table
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class TestCircuitBreakerTable:
    async def test_unknown_signature_is_closed(self):
        table = CircuitBreakerTable()
        assert await table.is_open("click:unknown") is False
        assert len(table) == 0

    async def test_signatures_are_isolated(self):
        table = CircuitBreakerTable(failure_threshold=2)
        a = command_signature("click", {"selector": "#a"})
        b = command_signature("click", {"selector": "#b"})
        await table.record_failure(a, "click")
        await table.record_failure(a, "click")
        assert await table.is_open(a) is True
        assert await table.is_open(b) is False

    async def test_command_derived_from_signature(self):
        table = CircuitBreakerTable()
        sig = command_signature("hover", {"selector": "#x"})
        await table.record_failure(sig)
        assert table.snapshot(sig)["command"] == "hover"

    async def test_reset_one_and_all(self):
        table = CircuitBreakerTable(failure_threshold=1)
        await table.record_failure("click:a")
        await table.record_failure("click:b")
        assert await table.reset("click:a") is True
        assert await table.reset("click:missing") is False
        assert table.peek("click:a").state == CircuitState.CLOSED
        assert await table.reset_all() == 2
        assert table.peek("click:b").state == CircuitState.CLOSED

    async def test_evicts_least_recently_used_closed_breaker(self):
        table = CircuitBreakerTable(failure_threshold=5, max_signatures=2)
        await table.record_failure("click:a")
        await table.record_failure("click:b")
        await table.is_open("click:a")
        await table.record_failure("click:c")
        assert table.peek("click:b") is None
        assert table.peek("click:a") is not None
        assert len(table) == 2

    async def test_open_breakers_survive_eviction(self):
        table = CircuitBreakerTable(failure_threshold=1, max_signatures=2)
        await table.record_failure("click:open")
        table.get("click:x")
        table.get("click:y")
        assert table.peek("click:open") is not None
        assert table.peek("click:x") is None

    async def test_new_signature_isolated_when_table_full_of_open(self):
        table = CircuitBreakerTable(failure_threshold=1, max_signatures=1)
        await table.record_failure("click:a")
        await table.record_failure("click:b")
        assert await table.is_open("click:b") is True
        assert table.peek("click:a") is None
        assert len(table) == 1

    async def test_oldest_open_evicted_when_all_open(self):
        table = CircuitBreakerTable(failure_threshold=1, max_signatures=2)
        for sig in ("click:a", "click:b", "click:c"):
            await table.record_failure(sig)
        assert table.peek("click:a") is None
        assert await table.is_open("click:b") is True
        assert await table.is_open("click:c") is True

    async def test_all_snapshots(self):
        table = CircuitBreakerTable()
        await table.record_failure("click:a")
        assert [s["signature"] for s in table.all_snapshots()] == ["click:a"]
