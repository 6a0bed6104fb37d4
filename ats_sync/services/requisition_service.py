"""
Requisition service - status transitions, days open and job ID assignment.
"""
import logging
import re
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional

from ats_sync.models import OPEN_STATUSES, ReqCol, RequisitionStatus, TableKind
from ats_sync.repositories import RowIO, SyncStateRepository
from ats_sync.utils import (
    business_days_between,
    canonicalize_status,
    cell_text,
    is_blank,
    now_local,
    values_equal,
)
from .header_service import HeaderResolver
from .index_service import build_requisition_index

logger = logging.getLogger(__name__)

_JOB_ID_RE = re.compile(r"^(\d{4})-(\d{4})$")


def transition_updates(values: Dict[str, Any], header_map: Dict[str, int], now: datetime) -> Dict[str, Any]:
    """
    Date-stamp updates implied by a requisition's current status.

    Only columns present in header_map are touched. Dates already set are
    kept; dates that the status invalidates are cleared.
    """
    status = canonicalize_status(values.get(ReqCol.JOB_STATUS))
    updates: Dict[str, Any] = {}

    def has(header: str) -> bool:
        return header in header_map

    def is_set(header: str) -> bool:
        return not is_blank(cell_text(values.get(header)))

    def stamp(header: str):
        if has(header) and not is_set(header):
            updates[header] = now

    def clear(header: str):
        if has(header) and is_set(header):
            updates[header] = ""

    if status != RequisitionStatus.HIRED.value:
        clear(ReqCol.HIRED_CANDIDATE_NAME)

    if status == RequisitionStatus.OPEN.value:
        stamp(ReqCol.OPENED)
        clear(ReqCol.ON_HOLD_DATE)
        clear(ReqCol.CLOSED_DATE)
        clear(ReqCol.HIRED_DATE)
    elif status == RequisitionStatus.ON_HOLD.value:
        # On Hold can be the first status, so Opened is left alone
        stamp(ReqCol.ON_HOLD_DATE)
        clear(ReqCol.CLOSED_DATE)
        clear(ReqCol.HIRED_DATE)
    elif status == RequisitionStatus.CLOSED.value:
        stamp(ReqCol.CLOSED_DATE)
    elif status == RequisitionStatus.HIRED.value:
        stamp(ReqCol.HIRED_DATE)
        stamp(ReqCol.CLOSED_DATE)

    return updates


def compute_days_open(values: Dict[str, Any], now: datetime) -> int:
    """Business days from Opened to now (Open/On Hold) or to the Closed / Hired date."""
    opened = values.get(ReqCol.OPENED)
    if is_blank(cell_text(opened)):
        return 0

    end: Any = now
    if canonicalize_status(values.get(ReqCol.JOB_STATUS)) not in OPEN_STATUSES:
        closed = values.get(ReqCol.CLOSED_DATE)
        hired = values.get(ReqCol.HIRED_DATE)
        if not is_blank(cell_text(closed)):
            end = closed
        elif not is_blank(cell_text(hired)):
            end = hired
    return business_days_between(opened, end)


class RequisitionService:
    """Operations on the Requisitions table."""

    def __init__(
        self,
        headers: HeaderResolver,
        state: SyncStateRepository,
        clock: Callable[[], datetime] = now_local,
    ):
        self.headers = headers
        self.state = state
        self.clock = clock

    async def open(self) -> Optional[RowIO]:
        return await self.headers.open(TableKind.REQUISITION)

    # ------------------------------------------------------------------
    # Status transitions
    # ------------------------------------------------------------------

    async def apply_status_transitions(self, rows: Iterable[int]) -> int:
        """Apply transition date stamps to the given rows. Returns rows changed."""
        io = await self.open()
        if io is None:
            return 0
        now = self.clock()
        changed = 0
        for row in sorted(set(rows)):
            if row < io.info.data_start_row:
                continue
            try:
                values = await io.read_row(row)
                updates = transition_updates(values, io.info.header_map, now)
                if updates:
                    await io.write_fields(row, updates)
                    changed += 1
            except Exception as e:
                logger.warning(f"Status transition failed | sheet={io.sheet} row={row} error={e}")
        return changed

    async def set_hired(self, job_id: str, hired_name: str) -> bool:
        """Mark a requisition Hired with the hired candidate's name, then re-apply transitions."""
        io = await self.open()
        if io is None:
            return False
        index = await build_requisition_index(io)
        entry = index.get(job_id)
        if entry is None:
            logger.info(f"Hired flow: requisition not found | job_id={job_id}")
            return False

        updates: Dict[str, Any] = {}
        if canonicalize_status(entry.values.get(ReqCol.JOB_STATUS)) != RequisitionStatus.HIRED.value:
            updates[ReqCol.JOB_STATUS] = RequisitionStatus.HIRED.value
        if hired_name and cell_text(entry.values.get(ReqCol.HIRED_CANDIDATE_NAME)) != hired_name.strip():
            updates[ReqCol.HIRED_CANDIDATE_NAME] = hired_name.strip()
        if not updates:
            return False

        await io.write_fields(entry.row, updates)
        await self.apply_status_transitions([entry.row])
        return True

    # ------------------------------------------------------------------
    # Days open
    # ------------------------------------------------------------------

    async def recompute_days_open(self, rows: Iterable[int]) -> int:
        """Rewrite Days Open for the given rows where the value changed. Returns rows written."""
        io = await self.open()
        if io is None:
            return 0
        if not io.info.has(ReqCol.DAYS_OPEN, ReqCol.OPENED, ReqCol.JOB_STATUS):
            logger.info(f"Days Open skipped: required columns missing | sheet={io.sheet}")
            return 0

        now = self.clock()
        written = 0
        for row in sorted(set(rows)):
            if row < io.info.data_start_row:
                continue
            values = await io.read_row(row)
            days = compute_days_open(values, now)
            if not values_equal(days, values.get(ReqCol.DAYS_OPEN)):
                if await io.write_fields(row, {ReqCol.DAYS_OPEN: days}):
                    written += 1
        return written

    async def recompute_days_open_all(self) -> int:
        io = await self.open()
        if io is None:
            return 0
        last_row = await io.table.get_last_row()
        if last_row < io.info.data_start_row:
            return 0
        written = await self.recompute_days_open(range(io.info.data_start_row, last_row + 1))
        logger.info(f"Days Open recomputed | sheet={io.sheet} written={written}")
        return written

    async def rows_for_job_ids(self, job_ids: Iterable[str]) -> List[int]:
        io = await self.open()
        if io is None:
            return []
        index = await build_requisition_index(io)
        return [index.by_key[j] for j in job_ids if j in index.by_key]

    # ------------------------------------------------------------------
    # Job IDs
    # ------------------------------------------------------------------

    async def _init_sequence(self, io: RowIO, year: int) -> None:
        if await self.state.get_job_sequence(year) is not None:
            return
        max_seq = 0
        for _, values in await io.bulk_read():
            match = _JOB_ID_RE.match(cell_text(values.get(ReqCol.JOB_ID)))
            if match and int(match.group(1)) == year:
                max_seq = max(max_seq, int(match.group(2)))
        await self.state.set_job_sequence(year, max_seq)
        logger.info(f"Job ID sequence initialized | year={year} last={max_seq}")

    async def _allocate(self, year: int, count: int) -> List[str]:
        last = await self.state.get_job_sequence(year) or 0
        ids = []
        for _ in range(count):
            last += 1
            ids.append(f"{year}-{last:04d}")
        await self.state.set_job_sequence(year, last)
        return ids

    async def ensure_job_ids(self) -> List[str]:
        """
        Give every row with a title or status but no ID the next job ID.

        Returns:
            The newly assigned job IDs
        """
        io = await self.open()
        if io is None:
            return []
        if not io.info.has(ReqCol.JOB_ID, ReqCol.JOB_TITLE, ReqCol.JOB_STATUS):
            logger.warning(f"Job ID assignment skipped: required columns missing | sheet={io.sheet}")
            return []

        now = self.clock()
        year = now.year
        await self._init_sequence(io, year)

        needing = [
            (row, values) for row, values in await io.bulk_read()
            if not cell_text(values.get(ReqCol.JOB_ID))
            and (cell_text(values.get(ReqCol.JOB_TITLE)) or cell_text(values.get(ReqCol.JOB_STATUS)))
        ]
        if not needing:
            return []

        new_ids = await self._allocate(year, len(needing))
        for (row, values), job_id in zip(needing, new_ids):
            updates: Dict[str, Any] = {ReqCol.JOB_ID: job_id}
            if io.info.has(ReqCol.CREATED) and is_blank(cell_text(values.get(ReqCol.CREATED))):
                updates[ReqCol.CREATED] = now
            await io.write_fields(row, updates)
        logger.info(f"Assigned job IDs | count={len(new_ids)} ids={new_ids}")
        return new_ids

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    async def active_job_ids(self) -> List[str]:
        """Job IDs whose status is Open or On Hold, in sheet order."""
        io = await self.open()
        if io is None:
            return []
        index = await build_requisition_index(io)
        return list(dict.fromkeys(
            e.key for e in index.rows
            if e.key and canonicalize_status(e.values.get(ReqCol.JOB_STATUS)) in OPEN_STATUSES
        ))

    async def all_job_ids(self) -> List[str]:
        io = await self.open()
        if io is None:
            return []
        index = await build_requisition_index(io)
        return list(dict.fromkeys(e.key for e in index.rows if e.key))
