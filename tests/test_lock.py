"""
Tests for the document lock, recursion guard and scheduler context isolation.

Run with: pytest tests/test_lock.py -v
"""
import asyncio
import contextvars

import pytest

from ats_sync.exceptions import LockBusyError
from ats_sync.services import AsyncioScheduler, OperationLock, in_locked_operation

from conftest import FlushableScheduler


class TestOperationLock:

    @pytest.mark.asyncio
    async def test_runs_and_clears_guard(self, orchestrator):
        async def work():
            assert in_locked_operation()
            assert await orchestrator.state.is_recursion_guard_set()
            return "done"

        assert await orchestrator.lock.run("work", work) == "done"
        assert not await orchestrator.state.is_recursion_guard_set()
        assert not orchestrator.lock.locked

    @pytest.mark.asyncio
    async def test_nested_run_is_blocked(self, orchestrator):
        inner = []

        async def inner_work():
            inner.append("ran")

        async def outer_work():
            return await orchestrator.lock.run("inner", inner_work)

        assert await orchestrator.lock.run("outer", outer_work) is None
        assert inner == [], "a run started inside another run must not execute"

    @pytest.mark.asyncio
    async def test_persisted_guard_blocks(self, orchestrator):
        called = []

        async def work():
            called.append(True)

        await orchestrator.state.set_recursion_guard()

        assert await orchestrator.lock.run("work", work) is None
        assert called == []
        assert not orchestrator.lock.locked

    @pytest.mark.asyncio
    async def test_second_lock_on_same_store_is_refused_not_queued(self, orchestrator):
        other = OperationLock(orchestrator.state)
        seen = []

        async def other_work():
            seen.append("other")

        async def work():
            seen.append("first")
            # Fresh context, as in another worker
            task = asyncio.get_running_loop().create_task(
                other.run("other", other_work, timeout=0.01), context=contextvars.Context()
            )
            seen.append(await task)

        await orchestrator.lock.run("first", work)

        assert seen == ["first", None]
        assert not await orchestrator.state.is_recursion_guard_set()

    @pytest.mark.asyncio
    async def test_guard_is_cleared_when_work_fails(self, orchestrator):
        async def work():
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            await orchestrator.lock.run("work", work)

        assert not await orchestrator.state.is_recursion_guard_set()
        assert not orchestrator.lock.locked

    @pytest.mark.asyncio
    async def test_initialize_clears_stale_guard(self, orchestrator):
        await orchestrator.state.set_recursion_guard()

        await orchestrator.initialize()

        assert not await orchestrator.state.is_recursion_guard_set()

    @pytest.mark.asyncio
    async def test_busy_lock_runs_fallback(self, orchestrator):
        fallback = []

        async def work():
            return "never"

        async def on_busy():
            fallback.append(True)

        assert await orchestrator.lock.acquire(1)
        try:
            result = await orchestrator.lock.run("work", work, timeout=0.01, on_busy=on_busy)
        finally:
            orchestrator.lock.release()

        assert result is None
        assert fallback == [True]

    @pytest.mark.asyncio
    async def test_admin_operation_raises_when_busy(self, orchestrator, monkeypatch):
        monkeypatch.setattr("ats_sync.workflows.orchestrator.LOCK_TIMEOUT_LONG_SECONDS", 0.01)

        assert await orchestrator.lock.acquire(1)
        try:
            with pytest.raises(LockBusyError) as exc_info:
                await orchestrator.reconcile()
        finally:
            orchestrator.lock.release()

        assert exc_info.value.status_code == 423
        assert exc_info.value.operation == "reconcile"


class TestSchedulerContext:

    @pytest.mark.asyncio
    async def test_handlers_do_not_inherit_lock_marker(self, orchestrator, timer):
        scheduler = FlushableScheduler(clock=timer)
        seen = []

        async def record(trigger):
            seen.append(in_locked_operation())

        scheduler.register("record", record)

        async def work():
            scheduler.schedule("record", 60)
            await scheduler.flush()

        await orchestrator.lock.run("outer", work)
        await scheduler.shutdown()

        assert seen == [False]

    @pytest.mark.asyncio
    async def test_unknown_handler_cannot_be_scheduled(self, timer):
        scheduler = AsyncioScheduler(clock=timer)

        with pytest.raises(KeyError):
            scheduler.schedule("missing", 1)

    @pytest.mark.asyncio
    async def test_cancel_removes_pending_trigger(self, timer):
        scheduler = FlushableScheduler(clock=timer)

        async def noop(trigger):
            pass

        scheduler.register("noop", noop)
        trigger = scheduler.schedule("noop", 60)

        assert scheduler.exists(trigger.trigger_id)
        assert scheduler.cancel(trigger.trigger_id)
        assert not scheduler.exists(trigger.trigger_id)
        assert await scheduler.flush() == 0
        await scheduler.shutdown()

    @pytest.mark.asyncio
    async def test_trigger_fires_after_delay_in_fresh_context(self, orchestrator, timer):
        scheduler = AsyncioScheduler(clock=timer)
        fired = asyncio.Event()
        seen = []

        async def record(trigger):
            seen.append(in_locked_operation())
            fired.set()

        scheduler.register("record", record)

        async def work():
            scheduler.schedule("record", 0)

        await orchestrator.lock.run("outer", work)
        await asyncio.wait_for(fired.wait(), timeout=1)
        await scheduler.shutdown()

        assert seen == [False]
        assert scheduler.list_triggers() == []
        assert not hasattr(AsyncioScheduler, "flush")
