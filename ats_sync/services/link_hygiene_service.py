"""
Link hygiene - turns raw URLs in the resume / LinkedIn columns into labelled links.

Routine syncs write raw URLs and mark the cell dirty; a separately debounced
worker consumes the markers and rewrites those cells as hyperlinks. A full
sweep over both candidate tables is available for menus and full resync.
"""
import logging
import time
from typing import Callable, Dict, Optional, Tuple

from ats_sync.config import (
    DEBOUNCE_LINK_HYGIENE_SECONDS,
    HANDLER_DEBOUNCED_LINK_HYGIENE,
    LINK_HYGIENE_RESCHEDULE_WINDOW_SECONDS,
    LOCK_TIMEOUT_SECONDS,
)
from ats_sync.models import ActCol, CandCol, Hyperlink, LINK_LABELS, ScheduledTrigger, TableKind
from ats_sync.repositories import RowIO, SyncStateRepository, contiguous_runs
from ats_sync.utils import extract_url, make_hyperlink
from .header_service import HeaderResolver
from .lock_service import OperationLock
from .scheduler import AsyncioScheduler

logger = logging.getLogger(__name__)

LINK_TARGETS: Tuple[Tuple[TableKind, str], ...] = (
    (TableKind.CANDIDATE, CandCol.RESUME),
    (TableKind.CANDIDATE, CandCol.LINKEDIN),
    (TableKind.ACTIVE, ActCol.RESUME),
    (TableKind.ACTIVE, ActCol.LINKEDIN),
)


class LinkHygieneService:

    def __init__(
        self,
        headers: HeaderResolver,
        state: SyncStateRepository,
        scheduler: AsyncioScheduler,
        lock: OperationLock,
        clock: Callable[[], float] = time.time,
        delay: float = DEBOUNCE_LINK_HYGIENE_SECONDS,
    ):
        self.headers = headers
        self.state = state
        self.scheduler = scheduler
        self.lock = lock
        self.clock = clock
        self.delay = delay

    # ------------------------------------------------------------------
    # Dirty markers and scheduling
    # ------------------------------------------------------------------

    async def mark_dirty(self, sheet: str, header: str, row: int) -> None:
        await self.state.mark_link_dirty(sheet, header, row, repr(self.clock()))

    async def schedule(self) -> Optional[ScheduledTrigger]:
        """Schedule the worker unless it was scheduled within the reschedule window."""
        now = self.clock()
        last = await self.state.get_link_scheduled_at()
        if last is not None and now - last < LINK_HYGIENE_RESCHEDULE_WINDOW_SECONDS:
            return None
        try:
            trigger = self.scheduler.schedule(HANDLER_DEBOUNCED_LINK_HYGIENE, self.delay)
        except Exception as e:
            logger.warning(f"Failed to schedule link hygiene | error={e}")
            return None
        await self.state.set_link_scheduled_at(now)
        logger.info(f"Scheduled link hygiene | trigger_id={trigger.trigger_id} delay={self.delay:g}s")
        return trigger

    async def _reschedule(self) -> Optional[ScheduledTrigger]:
        await self.state.clear_link_scheduled_at()
        return await self.schedule()

    # ------------------------------------------------------------------
    # Worker
    # ------------------------------------------------------------------

    async def run_worker(self, trigger: Optional[ScheduledTrigger] = None) -> None:
        """Scheduler entry point: consume dirty markers under the document lock."""
        await self.lock.run(
            "link_hygiene",
            self._consume_all,
            timeout=LOCK_TIMEOUT_SECONDS,
            on_busy=self._reschedule,
        )

    async def _consume_all(self) -> int:
        rescheduled = False
        rewritten = 0
        try:
            for kind, header in LINK_TARGETS:
                rewritten += await self._consume(kind, header)
            if await self.state.count_link_dirty() > 0:
                rescheduled = await self._reschedule() is not None
        except Exception as e:
            logger.warning(f"Link hygiene failed | error={e}")
        finally:
            if not rescheduled:
                await self.state.clear_link_scheduled_at()
        return rewritten

    async def _consume(self, kind: TableKind, header: str) -> int:
        io = await self.headers.open(kind)
        if io is None or not io.info.has(header):
            return 0
        rows = [r for r in await self.state.consume_link_dirty_rows(io.sheet, header) if r >= io.info.data_start_row]
        rewritten = 0
        for start, end in contiguous_runs(rows):
            try:
                rewritten += await self.normalize_block(io, header, start, end)
            except Exception as e:
                logger.warning(
                    f"Link normalization failed for block | sheet={io.sheet} header={header} "
                    f"start_row={start} end_row={end} error={e}"
                )
        return rewritten

    # ------------------------------------------------------------------
    # Rewriting
    # ------------------------------------------------------------------

    async def normalize_block(self, io: RowIO, header: str, start_row: int, end_row: int) -> int:
        """
        Rewrite URL cells in [start_row, end_row] of one column as labelled links.

        Cells without a URL are left alone, as are cells that already hold
        the same link. Returns the number of cells written.
        """
        col = io.info.column(header)
        if not col or end_row < start_row:
            return 0

        label = LINK_LABELS[header]
        grid = await io.table.read_range(start_row, col, end_row - start_row + 1, 1)
        wanted: Dict[int, Hyperlink] = {}
        for offset, cells in enumerate(grid):
            current = cells[0]
            url = extract_url(current)
            if not url:
                continue
            if isinstance(current, Hyperlink) and current.url == url and current.label == label:
                continue
            link = make_hyperlink(url, label)
            if link is not None:
                wanted[start_row + offset] = link

        await io.write_column(col, list(wanted), lambda r: wanted[r])
        return len(wanted)

    async def sweep(self) -> int:
        """Rewrite every resume / LinkedIn URL in both candidate tables."""
        total = 0
        for kind, header in LINK_TARGETS:
            io = await self.headers.open(kind)
            if io is None or not io.info.has(header):
                continue
            last_row = await io.table.get_last_row()
            if last_row < io.info.data_start_row:
                continue
            total += await self.normalize_block(io, header, io.info.data_start_row, last_row)
        logger.info(f"Link hygiene sweep complete | rewritten={total}")
        return total

    async def pending_markers(self) -> int:
        return await self.state.count_link_dirty()
