"""
Debounced reconcile queue.

Edits enqueue job IDs (or escalate to "everything"); one scheduled trigger
per burst drains the queue and reconciles under the document lock.

Persisted form under ATS:queue:jobIds is a JSON list of job IDs or the
sentinel "all". The scheduled trigger id is kept under ATS:queue:scheduled
so repeated enqueues within the debounce window share one run.
"""
import json
import logging
import time
from typing import Callable, Iterable, List, Optional, Union

from ats_sync.config import (
    DEBOUNCE_RECONCILE_SECONDS,
    HANDLER_DEBOUNCED_RECONCILE,
    LOCK_TIMEOUT_LONG_SECONDS,
    QUEUE_ALL_SENTINEL,
    QUEUE_LOCK_TIMEOUT_SECONDS,
    STALE_TRIGGER_SECONDS,
)
from ats_sync.models import QueueBatch, QueueScope, ReconcileResult, ScheduledTrigger
from ats_sync.repositories import SyncStateRepository
from .candidate_sync_service import CandidateSyncService
from .lock_service import BoundedLock, OperationLock
from .requisition_service import RequisitionService
from .scheduler import AsyncioScheduler

logger = logging.getLogger(__name__)

_CORRUPT = object()


class ReconcileQueue:
    """Typed view over the persisted queue payload."""

    def __init__(self, state: SyncStateRepository, lock: Optional[BoundedLock] = None):
        self.state = state
        self.lock = lock or BoundedLock("queue")

    async def _load(self) -> Union[None, str, List[str], object]:
        raw = await self.state.get_queue_payload()
        if raw is None or raw == "":
            return None
        if raw == QUEUE_ALL_SENTINEL:
            return QUEUE_ALL_SENTINEL
        try:
            parsed = json.loads(raw)
        except ValueError:
            return _CORRUPT
        if not isinstance(parsed, list):
            return _CORRUPT
        return [str(j) for j in parsed if j]

    @staticmethod
    def _to_batch(payload) -> Optional[QueueBatch]:
        if payload == QUEUE_ALL_SENTINEL:
            return QueueBatch(scope=QueueScope.ALL)
        if isinstance(payload, list) and payload:
            return QueueBatch(scope=QueueScope.JOBS, job_ids=payload)
        return None

    async def peek(self) -> Optional[QueueBatch]:
        payload = await self._load()
        if payload is _CORRUPT:
            return None
        return self._to_batch(payload)

    async def merge(self, job_ids: Iterable[str]) -> bool:
        """
        Add job IDs to the queue.

        Returns:
            False when the queue lock could not be taken in time
        """
        ids = [j for j in job_ids if j]
        if not ids:
            return True
        if not await self.lock.acquire(QUEUE_LOCK_TIMEOUT_SECONDS):
            logger.warning(f"Queue lock busy, enqueue skipped | job_ids={ids}")
            return False
        try:
            payload = await self._load()
            if payload == QUEUE_ALL_SENTINEL:
                return True
            if payload is _CORRUPT:
                logger.warning("Corrupt reconcile queue payload, resetting")
                payload = []
            merged = list(payload or [])
            for j in ids:
                if j not in merged:
                    merged.append(j)
            await self.state.set_queue_payload(json.dumps(merged))
            return True
        finally:
            self.lock.release()

    async def escalate_all(self) -> bool:
        """Replace whatever is queued with a full reconcile."""
        if not await self.lock.acquire(QUEUE_LOCK_TIMEOUT_SECONDS):
            logger.warning("Queue lock busy, escalation skipped")
            return False
        try:
            await self.state.set_queue_payload(QUEUE_ALL_SENTINEL)
            return True
        finally:
            self.lock.release()

    async def drain(self) -> Optional[QueueBatch]:
        """Read and clear the queue in one step. None when there is nothing to do."""
        if not await self.lock.acquire(QUEUE_LOCK_TIMEOUT_SECONDS):
            logger.warning("Queue lock busy, drain skipped")
            return None
        try:
            payload = await self._load()
            await self.state.clear_queue_payload()
        finally:
            self.lock.release()

        if payload is _CORRUPT:
            logger.warning("Corrupt reconcile queue payload, nothing to do")
            return None
        return self._to_batch(payload)


class DebounceCoordinator:
    """Enqueue + schedule + worker for debounced reconciles."""

    def __init__(
        self,
        queue: ReconcileQueue,
        state: SyncStateRepository,
        scheduler: AsyncioScheduler,
        lock: OperationLock,
        requisitions: RequisitionService,
        candidates: CandidateSyncService,
        clock: Callable[[], float] = time.time,
        delay: float = DEBOUNCE_RECONCILE_SECONDS,
    ):
        self.queue = queue
        self.state = state
        self.scheduler = scheduler
        self.lock = lock
        self.requisitions = requisitions
        self.candidates = candidates
        self.clock = clock
        self.delay = delay

    # ------------------------------------------------------------------
    # Enqueue
    # ------------------------------------------------------------------

    async def enqueue(self, job_ids: Iterable[str]) -> Optional[ScheduledTrigger]:
        ids = [j for j in job_ids if j]
        if not ids:
            return None
        if not await self.queue.merge(ids):
            return None
        logger.info(f"Enqueued reconcile | job_ids={ids}")
        return await self.schedule()

    async def enqueue_all(self) -> Optional[ScheduledTrigger]:
        if not await self.queue.escalate_all():
            return None
        logger.info("Enqueued full reconcile")
        return await self.schedule()

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    async def _cleanup_orphans(self, tracked: Optional[str]) -> int:
        now = self.clock()
        removed = 0
        for trigger in self.scheduler.list_triggers(HANDLER_DEBOUNCED_RECONCILE):
            if trigger.trigger_id == tracked:
                continue
            if now - trigger.created_at > STALE_TRIGGER_SECONDS:
                self.scheduler.cancel(trigger.trigger_id)
                removed += 1
        if removed:
            logger.warning(f"Removed stale reconcile triggers | count={removed}")
        return removed

    async def schedule(self) -> Optional[ScheduledTrigger]:
        """Schedule the worker unless a tracked trigger is still pending."""
        tracked = await self.state.get_scheduled_trigger_id()
        await self._cleanup_orphans(tracked)

        if tracked:
            if self.scheduler.exists(tracked):
                return None
            await self.state.clear_scheduled_trigger_id()

        try:
            trigger = self.scheduler.schedule(HANDLER_DEBOUNCED_RECONCILE, self.delay)
        except Exception as e:
            logger.warning(f"Failed to schedule debounced reconcile | error={e}")
            return None
        await self.state.set_scheduled_trigger_id(trigger.trigger_id)
        logger.info(f"Scheduled debounced reconcile | trigger_id={trigger.trigger_id} delay={self.delay:g}s")
        return trigger

    async def _release_trigger(self, trigger_id: Optional[str]) -> None:
        if not trigger_id:
            return
        if await self.state.get_scheduled_trigger_id() == trigger_id:
            await self.state.clear_scheduled_trigger_id()
        self.scheduler.cancel(trigger_id)

    # ------------------------------------------------------------------
    # Worker
    # ------------------------------------------------------------------

    async def run_worker(self, trigger: Optional[ScheduledTrigger] = None) -> Optional[ReconcileResult]:
        """Scheduler entry point: drain the queue and reconcile under the document lock."""
        trigger_id = trigger.trigger_id if trigger else None

        async def on_busy():
            await self._release_trigger(trigger_id)
            await self.schedule()

        try:
            return await self.lock.run(
                "debounced_reconcile",
                self.process_queue,
                timeout=LOCK_TIMEOUT_LONG_SECONDS,
                on_busy=on_busy,
            )
        finally:
            await self._release_trigger(trigger_id)

    async def process_queue(self) -> Optional[ReconcileResult]:
        batch = await self.queue.drain()
        if batch is None:
            logger.info("Debounced reconcile: queue empty, nothing to do")
            return None

        if batch.scope == QueueScope.ALL:
            logger.info("Debounced reconcile: full reconcile")
            return await self.candidates.reconcile(None)

        logger.info(f"Debounced reconcile | job_ids={batch.job_ids}")
        rows = await self.requisitions.rows_for_job_ids(batch.job_ids)
        try:
            await self.requisitions.recompute_days_open(rows)
        except Exception as e:
            logger.warning(f"Days open recompute failed | job_ids={batch.job_ids} error={e}")
        return await self.candidates.reconcile(batch.job_ids)

    async def status(self) -> dict:
        return {
            "pending": await self.queue.peek(),
            "scheduled_trigger_id": await self.state.get_scheduled_trigger_id(),
            "triggers": self.scheduler.list_triggers(HANDLER_DEBOUNCED_RECONCILE),
        }
