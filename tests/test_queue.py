"""
Tests for the debounced reconcile queue and its scheduled worker.

Run with: pytest tests/test_queue.py -v
"""
import pytest

from ats_sync.config import HANDLER_DEBOUNCED_RECONCILE, STALE_TRIGGER_SECONDS
from ats_sync.models import QueueScope, ReconcileResult, ReqCol

from conftest import REQ_HEADERS, col


@pytest.fixture
def reconcile_calls(orchestrator, monkeypatch):
    """Replace the reconcile pass with a recorder."""
    calls = []

    async def fake_reconcile(job_ids=None):
        calls.append(job_ids)
        return ReconcileResult(job_ids=job_ids)

    monkeypatch.setattr(orchestrator.candidates, "reconcile", fake_reconcile)
    return calls


class TestEnqueue:

    @pytest.mark.asyncio
    async def test_burst_shares_one_trigger(self, orchestrator):
        first = await orchestrator.debounce.enqueue(["J1"])
        second = await orchestrator.debounce.enqueue(["J2", "J1"])

        assert first is not None
        assert second is None, "a pending trigger is reused"
        assert len(orchestrator.scheduler.list_triggers(HANDLER_DEBOUNCED_RECONCILE)) == 1
        assert await orchestrator.state.get_scheduled_trigger_id() == first.trigger_id

        pending = await orchestrator.queue.peek()
        assert pending.scope == QueueScope.JOBS
        assert pending.job_ids == ["J1", "J2"]

    @pytest.mark.asyncio
    async def test_enqueue_all_wins_over_job_ids(self, orchestrator):
        await orchestrator.debounce.enqueue(["J1"])
        await orchestrator.debounce.enqueue_all()
        await orchestrator.debounce.enqueue(["J3"])

        pending = await orchestrator.queue.peek()
        assert pending.scope == QueueScope.ALL

    @pytest.mark.asyncio
    async def test_empty_ids_are_ignored(self, orchestrator):
        assert await orchestrator.debounce.enqueue(["", None]) is None
        assert await orchestrator.queue.peek() is None
        assert orchestrator.scheduler.list_triggers() == []

    @pytest.mark.asyncio
    async def test_corrupt_payload_is_reset(self, orchestrator):
        await orchestrator.state.set_queue_payload("{not json")
        assert await orchestrator.queue.peek() is None

        await orchestrator.debounce.enqueue(["J1"])

        assert (await orchestrator.queue.peek()).job_ids == ["J1"]

    @pytest.mark.asyncio
    async def test_corrupt_payload_drains_to_nothing(self, orchestrator):
        await orchestrator.state.set_queue_payload('{"jobs": 1}')

        assert await orchestrator.queue.drain() is None
        assert await orchestrator.state.get_queue_payload() is None


class TestScheduling:

    @pytest.mark.asyncio
    async def test_lost_trigger_is_replaced(self, orchestrator):
        await orchestrator.state.set_scheduled_trigger_id("gone")

        trigger = await orchestrator.debounce.enqueue(["J1"])

        assert trigger is not None
        assert await orchestrator.state.get_scheduled_trigger_id() == trigger.trigger_id

    @pytest.mark.asyncio
    async def test_stale_untracked_triggers_are_removed(self, orchestrator, timer):
        orphan = orchestrator.scheduler.schedule(HANDLER_DEBOUNCED_RECONCILE, 600)
        timer.advance(STALE_TRIGGER_SECONDS + 1)

        trigger = await orchestrator.debounce.enqueue(["J1"])

        remaining = [t.trigger_id for t in orchestrator.scheduler.list_triggers(HANDLER_DEBOUNCED_RECONCILE)]
        assert orphan.trigger_id not in remaining
        assert remaining == [trigger.trigger_id]


class TestWorker:

    @pytest.mark.asyncio
    async def test_flush_drains_queue_once(self, orchestrator, reconcile_calls):
        await orchestrator.debounce.enqueue(["J1"])
        await orchestrator.debounce.enqueue(["J2"])

        await orchestrator.scheduler.flush()

        assert reconcile_calls == [["J1", "J2"]]
        assert await orchestrator.queue.peek() is None
        assert await orchestrator.state.get_scheduled_trigger_id() is None
        assert orchestrator.scheduler.list_triggers() == []

    @pytest.mark.asyncio
    async def test_full_reconcile_batch(self, orchestrator, reconcile_calls):
        await orchestrator.debounce.enqueue_all()

        await orchestrator.scheduler.flush()

        assert reconcile_calls == [None]

    @pytest.mark.asyncio
    async def test_empty_queue_is_a_no_op(self, orchestrator, reconcile_calls):
        assert await orchestrator.debounce.run_worker() is None
        assert reconcile_calls == []

    @pytest.mark.asyncio
    async def test_enqueue_after_drain_schedules_again(self, orchestrator, reconcile_calls):
        await orchestrator.debounce.enqueue(["J1"])
        await orchestrator.scheduler.flush()

        trigger = await orchestrator.debounce.enqueue(["J2"])

        assert trigger is not None
        await orchestrator.scheduler.flush()
        assert reconcile_calls == [["J1"], ["J2"]]

    @pytest.mark.asyncio
    async def test_busy_worker_reschedules_and_keeps_queue(self, orchestrator, reconcile_calls, monkeypatch):
        monkeypatch.setattr("ats_sync.services.queue_service.LOCK_TIMEOUT_LONG_SECONDS", 0.01)
        first = await orchestrator.debounce.enqueue(["J1"])

        assert await orchestrator.lock.acquire(1)
        try:
            await orchestrator.scheduler.flush()
        finally:
            orchestrator.lock.release()

        assert reconcile_calls == []
        tracked = await orchestrator.state.get_scheduled_trigger_id()
        assert tracked is not None and tracked != first.trigger_id
        assert orchestrator.scheduler.exists(tracked)
        assert (await orchestrator.queue.peek()).job_ids == ["J1"]

    @pytest.mark.asyncio
    async def test_queued_job_gets_days_open_recomputed(self, orchestrator, tables, reconcile_calls):
        await orchestrator.debounce.enqueue(["2025-0001"])
        await orchestrator.scheduler.flush()

        assert tables["req"].cell(2, col(REQ_HEADERS, ReqCol.DAYS_OPEN)) == 10
        assert tables["req"].cell(3, col(REQ_HEADERS, ReqCol.DAYS_OPEN)) is None


class TestStructuralChanges:

    @pytest.mark.asyncio
    async def test_busy_lock_escalates_to_full_reconcile(self, orchestrator, monkeypatch):
        monkeypatch.setattr("ats_sync.workflows.orchestrator.LOCK_TIMEOUT_STRUCTURAL_SECONDS", 0.01)

        assert await orchestrator.lock.acquire(1)
        try:
            result = await orchestrator.on_structural_change("INSERT_ROW")
        finally:
            orchestrator.lock.release()

        assert result is None
        assert (await orchestrator.queue.peek()).scope == QueueScope.ALL
        assert await orchestrator.state.get_scheduled_trigger_id() is not None

    @pytest.mark.asyncio
    async def test_structural_change_reconciles_everything(self, orchestrator, reconcile_calls):
        result = await orchestrator.on_structural_change("REMOVE_ROW")

        assert result is not None
        assert reconcile_calls == [None]

    @pytest.mark.asyncio
    async def test_other_change_types_are_ignored(self, orchestrator, reconcile_calls):
        assert await orchestrator.on_structural_change("FORMAT") is None
        assert reconcile_calls == []
