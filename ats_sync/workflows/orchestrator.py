"""
Sync Orchestrator - central entry point for every sync event.

The orchestrator is the single entry point for:
1. Edit events on the three tables (candidate, active, requisition, header row)
2. Structural changes and form submissions
3. Admin operations (full resync, days open, validations, links, import)
4. Scheduled debounce workers (reconcile queue, link hygiene)

Key principle: Routers are thin - they validate input and forward events here.
Every mutating path runs under the document lock.
"""
import logging
import time
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional

from ats_sync.config import (
    CACHE_TTL_SHORT,
    DEBOUNCE_LINK_HYGIENE_SECONDS,
    DEBOUNCE_RECONCILE_SECONDS,
    HANDLER_DEBOUNCED_LINK_HYGIENE,
    HANDLER_DEBOUNCED_RECONCILE,
    LOCK_TIMEOUT_LONG_SECONDS,
    LOCK_TIMEOUT_SECONDS,
    LOCK_TIMEOUT_STRUCTURAL_SECONDS,
    SHEET_ACTIVE,
    SHEET_SETTINGS,
    STORAGE_BACKEND,
)
from ats_sync.models import (
    ActCol,
    CandCol,
    FormSubmissionResult,
    ImportResult,
    QueueStatusResponse,
    ReconcileResult,
    ReqCol,
    ResyncReport,
    ResyncStep,
    ScheduledTrigger,
    Severity,
    StructuralChange,
    TableKind,
    default_headers,
)
from ats_sync.repositories import (
    InMemoryStateStore,
    InMemoryWorkbook,
    RowIO,
    StateStore,
    SyncStateRepository,
    Workbook,
)
from ats_sync.services import (
    AsyncioScheduler,
    CandidateImportService,
    CandidateSyncService,
    DebounceCoordinator,
    FormSubmissionService,
    HeaderResolver,
    HiredFlow,
    LinkHygieneService,
    NotificationService,
    OperationLock,
    ReconcileQueue,
    RequisitionService,
    SHEET_BY_KIND,
    ValidationService,
)
from ats_sync.utils import MuteWindow, TTLCache, cell_text, composite_key, normalize_email, now_local

logger = logging.getLogger(__name__)

RESYNC_REQ_HEADERS_MISSING = "Resync failed: Critical headers are missing from the Requisitions sheet."
RESYNC_ALL_HEADERS_MISSING = "Resync failed: Critical headers are missing from the Candidate Database sheet."
RESYNC_STARTED = "Starting full system resync..."
RESYNC_COMPLETE = "Full system resync complete!"
RESYNC_QUEUED = "Resync is queued and will run shortly."

STRUCTURAL_CHANGES = {c.value for c in StructuralChange}

# Singleton instance
_orchestrator: Optional["SyncOrchestrator"] = None


async def get_orchestrator() -> "SyncOrchestrator":
    """Get the singleton SyncOrchestrator instance."""
    global _orchestrator
    if _orchestrator is None:
        if STORAGE_BACKEND == "memory":
            _orchestrator = SyncOrchestrator(InMemoryWorkbook(), InMemoryStateStore())
            await _orchestrator.initialize()
            await _orchestrator.ensure_tables()
        else:
            # Import here so the memory backend never needs a database
            from ats_sync.database import get_db_pool, run_schema_migrations
            from ats_sync.repositories import PostgresStateStore, PostgresWorkbook

            pool = await get_db_pool()
            await run_schema_migrations(pool)
            _orchestrator = SyncOrchestrator(PostgresWorkbook(pool), PostgresStateStore(pool))
            await _orchestrator.initialize()
    return _orchestrator


async def shutdown_orchestrator():
    """Stop scheduled work and drop the singleton."""
    global _orchestrator
    if _orchestrator is not None:
        await _orchestrator.shutdown()
        _orchestrator = None


class SyncOrchestrator:
    """
    Owns the sync services and routes events to them.

    Handlers for scheduled triggers are kept in a registry keyed by handler
    name and registered with the scheduler on initialize().
    """

    def __init__(
        self,
        workbook: Workbook,
        store: StateStore,
        clock: Callable[[], datetime] = now_local,
        timer: Callable[[], float] = time.time,
        reconcile_delay: float = DEBOUNCE_RECONCILE_SECONDS,
        link_delay: float = DEBOUNCE_LINK_HYGIENE_SECONDS,
        scheduler: Optional[AsyncioScheduler] = None,
    ):
        self.workbook = workbook
        self.state = SyncStateRepository(store)
        self.clock = clock

        self.cache = TTLCache(clock=timer)
        self.mute = MuteWindow(self.cache, CACHE_TTL_SHORT)
        self.notifier = NotificationService(workbook, clock)
        self.lock = OperationLock(self.state)
        self.scheduler = scheduler or AsyncioScheduler(clock=timer)

        self.headers = HeaderResolver(workbook, self.cache)
        self.requisitions = RequisitionService(self.headers, self.state, clock)
        self.validations = ValidationService(workbook, self.headers, self.requisitions, self.state)
        self.hired_flow = HiredFlow(self.headers, self.requisitions, clock)
        self.links = LinkHygieneService(
            self.headers, self.state, self.scheduler, self.lock, clock=timer, delay=link_delay
        )
        self.candidates = CandidateSyncService(
            self.headers, self.validations, self.hired_flow, self.links, self.mute, self.notifier, clock
        )
        self.queue = ReconcileQueue(self.state)
        self.debounce = DebounceCoordinator(
            self.queue, self.state, self.scheduler, self.lock,
            self.requisitions, self.candidates, clock=timer, delay=reconcile_delay,
        )
        self.forms = FormSubmissionService(
            self.headers, self.requisitions, self.validations, self.candidates, self.notifier, clock
        )
        self.imports = CandidateImportService(
            self.headers, self.requisitions, self.validations, self.candidates, clock
        )

        # Handler registry: handler name -> scheduled worker
        self.handlers: Dict[str, Callable[[ScheduledTrigger], Awaitable[Any]]] = {}

    async def initialize(self):
        """Register scheduled handlers, ensure the audit table, clear a stale guard."""
        self._register_handlers()
        await self.notifier.ensure_log_table()
        if await self.state.is_recursion_guard_set():
            logger.warning("Clearing stale recursion guard left by an interrupted run")
            await self.state.clear_recursion_guard()
        logger.info("SyncOrchestrator initialized")

    def _register_handlers(self):
        self.handlers = {
            HANDLER_DEBOUNCED_RECONCILE: self.debounce.run_worker,
            HANDLER_DEBOUNCED_LINK_HYGIENE: self.links.run_worker,
        }
        for name, handler in self.handlers.items():
            self.scheduler.register(name, handler)
        logger.info(f"Registered {len(self.handlers)} scheduled handlers")

    async def shutdown(self):
        await self.scheduler.shutdown()

    async def ensure_tables(self) -> List[str]:
        """Create missing tables with their default header row. Returns created names."""
        created = []
        for kind, sheet in SHEET_BY_KIND.items():
            if await self.workbook.get_table(sheet) is None:
                table = await self.workbook.create_table(sheet)
                await table.write_range(1, 1, [default_headers(kind)])
                created.append(sheet)
        if await self.workbook.get_table(SHEET_SETTINGS) is None:
            await self.workbook.create_table(SHEET_SETTINGS)
            created.append(SHEET_SETTINGS)
        if created:
            logger.info(f"Created tables | names={created}")
        return created

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    def _touched(headers: Optional[Iterable[str]], header: str) -> bool:
        """Whether an edit touched `header`; None means the columns are unknown."""
        return headers is None or header in headers

    @staticmethod
    async def _collect_job_ids(io: RowIO, header: str, rows: Iterable[int]) -> List[str]:
        ids: List[str] = []
        if not io.info.has(header):
            return ids
        for row in rows:
            try:
                jid = cell_text((await io.read_row(row)).get(header))
            except Exception as e:
                logger.warning(f"Error collecting Job ID | sheet={io.sheet} row={row} error={e}")
                continue
            if jid and jid not in ids:
                ids.append(jid)
        return ids

    async def _data_rows(self, kind: TableKind, rows: Iterable[int]):
        io = await self.headers.open(kind)
        if io is None:
            logger.warning(f"Could not get header info | sheet={SHEET_BY_KIND[kind]}")
            return None, []
        return io, sorted({r for r in rows if r >= io.info.data_start_row})

    # =========================================================================
    # Edit entry points
    # =========================================================================

    async def on_candidate_rows_edited(self, rows: Iterable[int], headers: Optional[List[str]] = None) -> List[str]:
        """
        Candidate Database rows were edited.

        Args:
            rows: Edited row numbers
            headers: Edited column headers, when known

        Returns:
            Job IDs enqueued for reconcile
        """
        rows = list(rows)

        async def _run() -> List[str]:
            io, data_rows = await self._data_rows(TableKind.CANDIDATE, rows)
            if io is None or not data_rows:
                return []

            if io.info.has(CandCol.EMAIL) and self._touched(headers, CandCol.EMAIL):
                try:
                    await self.candidates.enforce_unique_email(data_rows)
                except Exception as e:
                    logger.warning(f"Error enforcing unique email | error={e}")

            try:
                await self.candidates.stamp_created_and_updated(data_rows, headers)
            except Exception as e:
                logger.warning(f"Error stamping timestamps | error={e}")

            if io.info.has(CandCol.JOB_ID) and self._touched(headers, CandCol.JOB_ID):
                try:
                    await self.candidates.autopopulate_from_job_id(data_rows)
                except Exception as e:
                    logger.warning(f"Error auto-populating from Job ID | error={e}")

            job_ids = await self._collect_job_ids(io, CandCol.JOB_ID, data_rows)
            if job_ids:
                await self.debounce.enqueue(job_ids)
            return job_ids

        return await self.lock.run("candidate_edit", _run, timeout=LOCK_TIMEOUT_SECONDS) or []

    async def on_active_rows_edited(self, rows: Iterable[int]) -> List[str]:
        """Active Candidates rows were edited: push them back into Candidate Database."""
        rows = list(rows)

        async def _run() -> List[str]:
            io, data_rows = await self._data_rows(TableKind.ACTIVE, rows)
            if io is None or not data_rows:
                return []

            affected: List[str] = []
            for row in data_rows:
                try:
                    values = await io.read_row(row)
                    jid = cell_text(values.get(ActCol.JOB_ID))
                    email = normalize_email(values.get(ActCol.EMAIL))
                    if not jid or not email:
                        continue
                    key = composite_key(jid, email)
                    await self.mute.mark(SHEET_ACTIVE, key)
                    logger.info(f"Marked Active row as recently edited | key={key} row={row}")
                    await self.candidates.upsert_all_from_active(values)
                    if jid not in affected:
                        affected.append(jid)
                except Exception as e:
                    logger.warning(f"Error processing Active Candidates edit | row={row} error={e}")

            if affected:
                await self.debounce.enqueue(affected)
            return affected

        return await self.lock.run("active_edit", _run, timeout=LOCK_TIMEOUT_SECONDS) or []

    async def on_requisition_rows_edited(self, rows: Iterable[int], headers: Optional[List[str]] = None) -> List[str]:
        """Requisitions rows were edited: job IDs, status dates, Job ID dropdowns."""
        rows = list(rows)

        async def _run() -> List[str]:
            io, data_rows = await self._data_rows(TableKind.REQUISITION, rows)
            if io is None or not data_rows:
                return []

            try:
                await self.requisitions.ensure_job_ids()
            except Exception as e:
                logger.warning(f"Error ensuring Job IDs | error={e}")

            try:
                await self.requisitions.apply_status_transitions(data_rows)
            except Exception as e:
                logger.warning(f"Error applying status transitions | error={e}")

            dropdown_headers = (ReqCol.JOB_ID, ReqCol.JOB_STATUS)
            if any(io.info.has(h) and self._touched(headers, h) for h in dropdown_headers):
                try:
                    await self.validations.sync_job_id_dropdowns()
                except Exception as e:
                    logger.warning(f"Error syncing Job ID dropdowns | error={e}")

            job_ids = await self._collect_job_ids(io, ReqCol.JOB_ID, data_rows)
            if job_ids:
                await self.debounce.enqueue(job_ids)
            return job_ids

        return await self.lock.run("requisition_edit", _run, timeout=LOCK_TIMEOUT_SECONDS) or []

    async def on_header_row_edited(self, sheet: str, column: int, old_value: Any, new_value: Any) -> bool:
        """A header cell was edited. Returns False when the edit was reverted."""
        return await self.headers.guard_header_edit(
            sheet, column, old_value, new_value, notify=self.notifier.notify
        )

    async def on_structural_change(self, change_type: str) -> Optional[ReconcileResult]:
        """Rows or sheets were inserted or removed: full reconcile, or queue one when busy."""
        if change_type not in STRUCTURAL_CHANGES:
            logger.debug(f"Ignoring non-structural change | change_type={change_type}")
            return None

        async def _run() -> Optional[ReconcileResult]:
            try:
                return await self.candidates.reconcile(None)
            except Exception as e:
                logger.warning(f"Error in structural change handler | change_type={change_type} error={e}")
                return None

        return await self.lock.run(
            "structural_change",
            _run,
            timeout=LOCK_TIMEOUT_STRUCTURAL_SECONDS,
            on_busy=self.debounce.enqueue_all,
        )

    async def on_form_submission(self, fields: Dict[str, Any]) -> FormSubmissionResult:
        """A form response arrived. Raises LockBusyError when the lock stays busy."""
        result = await self.lock.run(
            "form_submission",
            lambda: self.forms.process(fields),
            timeout=LOCK_TIMEOUT_SECONDS,
            raise_on_busy=True,
        )
        return result or FormSubmissionResult(accepted=False, reason="recursion_blocked")

    # =========================================================================
    # Admin operations
    # =========================================================================

    async def full_resync(self) -> ResyncReport:
        """
        Rebuild everything: job IDs, days open, validations, job mirror,
        Active membership and links. Each step is isolated.
        """
        req_info = await self.headers.get_header_info(TableKind.REQUISITION)
        if req_info is None or not req_info.has(ReqCol.JOB_ID, ReqCol.JOB_STATUS):
            await self.notifier.notify(RESYNC_REQ_HEADERS_MISSING, Severity.ERROR, "Error")
            return ResyncReport(ok=False, message=RESYNC_REQ_HEADERS_MISSING)

        all_info = await self.headers.get_header_info(TableKind.CANDIDATE)
        if all_info is None or not all_info.has(CandCol.JOB_ID, CandCol.EMAIL):
            await self.notifier.notify(RESYNC_ALL_HEADERS_MISSING, Severity.ERROR, "Error")
            return ResyncReport(ok=False, message=RESYNC_ALL_HEADERS_MISSING)

        await self.notifier.notify(RESYNC_STARTED, Severity.INFO, "Please Wait")

        async def _run() -> ResyncReport:
            await self.headers.invalidate_all()
            steps = [
                ("Job IDs", self.requisitions.ensure_job_ids),
                ("Days Open", self.requisitions.recompute_days_open_all),
                ("Validations", self.validations.rebuild_all_validations),
                ("Job Sync", self.candidates.sweep_autopopulate_all_from_requisitions),
                ("Active Sync", self.candidates.reconcile_all),
                ("Links", self.links.sweep),
            ]
            report = ResyncReport(ok=True)
            for name, step in steps:
                try:
                    await step()
                    report.steps.append(ResyncStep(name=name, ok=True))
                    logger.info(f"Resync step completed: {name}")
                except Exception as e:
                    report.ok = False
                    report.steps.append(ResyncStep(name=name, ok=False, error=str(e)))
                    logger.warning(f"Resync step failed: {name} | error={e}")
                    await self.notifier.notify(
                        f"{name} encountered an error but sync is continuing. Check SYS_LOGS for details.",
                        Severity.WARNING,
                        "Warning",
                    )
            report.message = RESYNC_COMPLETE
            await self.notifier.notify(RESYNC_COMPLETE, Severity.INFO, "Success")
            logger.info(f"Full resync completed | steps={len(steps)} ok={report.ok}")
            return report

        async def _busy():
            await self.debounce.enqueue_all()
            await self.notifier.notify(RESYNC_QUEUED, Severity.WARNING, "System Busy")

        report = await self.lock.run("full_resync", _run, timeout=LOCK_TIMEOUT_LONG_SECONDS, on_busy=_busy)
        if report is None:
            return ResyncReport(ok=False, queued=True, message=RESYNC_QUEUED)
        return report

    async def recompute_days_open_all(self) -> int:
        return await self.lock.run(
            "recompute_days_open",
            self.requisitions.recompute_days_open_all,
            timeout=LOCK_TIMEOUT_LONG_SECONDS,
            raise_on_busy=True,
        ) or 0

    async def rebuild_validations(self) -> int:
        return await self.lock.run(
            "rebuild_validations",
            self.validations.rebuild_all_validations,
            timeout=LOCK_TIMEOUT_LONG_SECONDS,
            raise_on_busy=True,
        ) or 0

    async def link_hygiene_sweep(self) -> int:
        return await self.lock.run(
            "link_hygiene_sweep",
            self.links.sweep,
            timeout=LOCK_TIMEOUT_LONG_SECONDS,
            raise_on_busy=True,
        ) or 0

    async def reconcile(self, job_ids: Optional[List[str]] = None) -> Optional[ReconcileResult]:
        """Reconcile now, for the given jobs or everything."""
        return await self.lock.run(
            "reconcile",
            lambda: self.candidates.reconcile(job_ids),
            timeout=LOCK_TIMEOUT_LONG_SECONDS,
            raise_on_busy=True,
        )

    async def bulk_import(self, rows: Any) -> ImportResult:
        result = await self.lock.run(
            "bulk_import",
            lambda: self.imports.bulk_import_candidates(rows),
            timeout=LOCK_TIMEOUT_LONG_SECONDS,
            raise_on_busy=True,
        )
        return result or ImportResult()

    async def queue_status(self) -> QueueStatusResponse:
        status = await self.debounce.status()
        return QueueStatusResponse(
            pending=status["pending"],
            scheduled_trigger_id=status["scheduled_trigger_id"],
            triggers=status["triggers"],
            dirty_links=await self.links.pending_markers(),
        )
