"""Tests for CommandCorrelator: exactly-once settlement of pending commands."""

import asyncio
import threading

import pytest

from browser_relay.core.errors import CommandTimeoutError, RelayError, TargetDisconnectedError
from browser_relay.state.correlator import CommandCorrelator


@pytest.fixture
def correlator():
    return CommandCorrelator()


class TestCorrelationIds:
    def test_ids_are_unique_and_prefixed(self, correlator):
        ids = {correlator.new_correlation_id() for _ in range(100)}
        assert len(ids) == 100
        assert all(cid.startswith("cmd_") for cid in ids)


class TestResolve:
    async def test_resolve_delivers_value(self, correlator):
        cid, reply = correlator.register("a1", 5.0, "navigate")
        assert correlator.pending_count == 1
        assert correlator.resolve(cid, {"title": "Example"}) is True
        assert await reply == {"title": "Example"}
        assert correlator.pending_count == 0

    async def test_second_settle_is_noop(self, correlator):
        cid, reply = correlator.register("a1", 5.0)
        assert correlator.resolve(cid, 1) is True
        assert correlator.resolve(cid, 2) is False
        assert correlator.reject(cid, RelayError("late")) is False
        assert await reply == 1

    async def test_unknown_id(self, correlator):
        assert correlator.resolve("cmd_nope", None) is False

    async def test_reject_raises_error(self, correlator):
        cid, reply = correlator.register("a1", 5.0)
        correlator.reject(cid, RelayError("boom"))
        with pytest.raises(RelayError, match="boom"):
            await reply

    async def test_resolve_from_another_thread(self, correlator):
        cid, reply = correlator.register("a1", 5.0)
        outcome: list[bool] = []
        thread = threading.Thread(target=lambda: outcome.append(correlator.resolve(cid, "done")))
        thread.start()
        thread.join()
        assert outcome == [True]
        assert await asyncio.wait_for(reply, 1.0) == "done"

    async def test_racing_threads_settle_once(self, correlator):
        cid, reply = correlator.register("a1", 5.0)
        outcomes: list[bool] = []
        lock = threading.Lock()

        def settle(value):
            ok = correlator.resolve(cid, value)
            with lock:
                outcomes.append(ok)

        threads = [threading.Thread(target=settle, args=(i,)) for i in range(10)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert outcomes.count(True) == 1
        assert await asyncio.wait_for(reply, 1.0) in range(10)


class TestTimeout:
    async def test_expires_with_timeout_error(self, correlator):
        cid, reply = correlator.register("a1", 0.05, "click")
        with pytest.raises(CommandTimeoutError, match="Command timeout"):
            await reply
        assert correlator.pending_count == 0

    async def test_late_reply_after_timeout_is_noop(self, correlator):
        cid, reply = correlator.register("a1", 0.05)
        with pytest.raises(CommandTimeoutError):
            await reply
        assert correlator.resolve(cid, "too late") is False

    async def test_resolve_cancels_timer(self, correlator):
        cid, reply = correlator.register("a1", 0.05)
        correlator.resolve(cid, "fast")
        await asyncio.sleep(0.1)
        assert await reply == "fast"


class TestDiscard:
    async def test_discard_cancels_waiter(self, correlator):
        cid, reply = correlator.register("a1", 5.0)
        assert correlator.discard(cid) is True
        with pytest.raises(asyncio.CancelledError):
            await reply
        assert correlator.discard(cid) is False


class TestRejectTarget:
    async def test_rejects_only_that_target(self, correlator):
        cid1, r1 = correlator.register("a1", 5.0)
        cid2, r2 = correlator.register("a1", 5.0)
        cid3, r3 = correlator.register("a2", 5.0)
        assert correlator.reject_target("a1") == 2
        for reply in (r1, r2):
            with pytest.raises(TargetDisconnectedError):
                await reply
        assert correlator.pending_for("a2") == [cid3]
        correlator.resolve(cid3, "ok")
        assert await r3 == "ok"

    async def test_disconnect_wins_over_timeout(self, correlator):
        cid, reply = correlator.register("a1", 0.05)
        correlator.reject_target("a1")
        with pytest.raises(TargetDisconnectedError):
            await reply
        await asyncio.sleep(0.1)
        assert correlator.pending_count == 0

    async def test_close_fails_everything(self, correlator):
        _, r1 = correlator.register("a1", 5.0)
        _, r2 = correlator.register("a2", 5.0)
        assert correlator.close(RelayError("shutdown")) == 2
        for reply in (r1, r2):
            with pytest.raises(RelayError, match="shutdown"):
                await reply
