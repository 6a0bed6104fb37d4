"""
Pytest fixtures for ATS sync tests.

These fixtures build an in-memory workbook seeded with the three tables and
a Settings table, a fixed clock, and a fully wired orchestrator whose
debounce delays are long enough that nothing fires unless a test flushes
the scheduler.
"""
from datetime import date, datetime
from typing import Any, Dict, List, Optional

import asyncio
import contextvars

import httpx
import pytest
import pytest_asyncio

from ats_sync.config import SHEET_ACTIVE, SHEET_ALL, SHEET_REQUISITIONS, SHEET_SETTINGS
from ats_sync.models import CandCol, ReqCol, TableKind, default_headers
from ats_sync.repositories import InMemoryStateStore, InMemoryTable, InMemoryWorkbook
from ats_sync.services import AsyncioScheduler
from ats_sync.workflows import SyncOrchestrator

FIXED_NOW = datetime(2025, 1, 28, 9, 30, 0)

REQ_HEADERS = default_headers(TableKind.REQUISITION)
ALL_HEADERS = default_headers(TableKind.CANDIDATE)
ACT_HEADERS = default_headers(TableKind.ACTIVE)

SETTINGS_ROWS = [
    [CandCol.STAGE, ReqCol.PRIORITY],
    ["Applied", "High"],
    ["Screening", "Low"],
    ["Interviewing", None],
    ["Hired", None],
    ["Rejected", None],
]


class FakeTimer:
    """Monotonic seconds clock that only moves when a test advances it."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FlushableScheduler(AsyncioScheduler):
    """Scheduler whose pending triggers a test can fire on demand."""

    async def flush(self) -> int:
        """Fire every pending trigger now, in creation order. Returns how many ran."""
        pending = sorted(self._triggers.values(), key=lambda t: t.created_at)
        for trigger in pending:
            task = self._tasks.get(trigger.trigger_id)
            if task is not None and not task.done():
                task.cancel()
        loop = asyncio.get_running_loop()
        for trigger in pending:
            await loop.create_task(self._fire(trigger), context=contextvars.Context())
        return len(pending)


def make_row(headers: List[str], values: Dict[str, Any]) -> List[Any]:
    return [values.get(h) for h in headers]


def seed_requisitions() -> List[Dict[str, Any]]:
    return [
        {
            ReqCol.JOB_ID: "2025-0001",
            ReqCol.JOB_TITLE: "Backend Engineer",
            ReqCol.JOB_STATUS: "Open",
            ReqCol.OPENED: date(2025, 1, 13),
        },
        {
            ReqCol.JOB_ID: "2025-0002",
            ReqCol.JOB_TITLE: "Product Designer",
            ReqCol.JOB_STATUS: "on hold",
            ReqCol.OPENED: date(2025, 1, 6),
            ReqCol.ON_HOLD_DATE: date(2025, 1, 21),
        },
        {
            ReqCol.JOB_ID: "2025-0003",
            ReqCol.JOB_TITLE: "Recruiter",
            ReqCol.JOB_STATUS: "Closed",
            ReqCol.OPENED: date(2025, 1, 2),
            ReqCol.CLOSED_DATE: date(2025, 1, 10),
        },
    ]


def seed_candidates() -> List[Dict[str, Any]]:
    return [
        {
            CandCol.FULL_NAME: "Ada Lovelace",
            CandCol.EMAIL: "a@x.com",
            CandCol.PHONE: "(555) 123-4567",
            CandCol.RESUME: "www.example.com/ada.pdf",
            CandCol.JOB_ID: "2025-0001",
            CandCol.STAGE: "Interviewing",
            CandCol.CREATED: datetime(2025, 1, 14, 10, 0),
        },
        {
            CandCol.FULL_NAME: "Bob Byte",
            CandCol.EMAIL: "b@x.com",
            CandCol.JOB_ID: "2025-0001",
            CandCol.STAGE: "Interviewing",
            CandCol.CREATED: datetime(2025, 1, 15, 10, 0),
        },
        {
            CandCol.FULL_NAME: "Cy Cursor",
            CandCol.EMAIL: "c@x.com",
            CandCol.JOB_ID: "2025-0002",
            CandCol.STAGE: "Screening",
            CandCol.CREATED: datetime(2025, 1, 16, 10, 0),
        },
        {
            CandCol.FULL_NAME: "Dee Debug",
            CandCol.EMAIL: "d@x.com",
            CandCol.JOB_ID: "2025-0003",
            CandCol.STAGE: "Applied",
            CandCol.CREATED: datetime(2025, 1, 3, 10, 0),
        },
    ]


def build_workbook(
    requisitions: Optional[List[Dict[str, Any]]] = None,
    candidates: Optional[List[Dict[str, Any]]] = None,
    active: Optional[List[Dict[str, Any]]] = None,
) -> InMemoryWorkbook:
    reqs = seed_requisitions() if requisitions is None else requisitions
    cands = seed_candidates() if candidates is None else candidates
    workbook = InMemoryWorkbook()
    workbook.add_table(SHEET_REQUISITIONS, [REQ_HEADERS] + [make_row(REQ_HEADERS, r) for r in reqs], max_rows=50)
    workbook.add_table(SHEET_ALL, [ALL_HEADERS] + [make_row(ALL_HEADERS, c) for c in cands], max_rows=50)
    workbook.add_table(SHEET_ACTIVE, [ACT_HEADERS] + [make_row(ACT_HEADERS, a) for a in (active or [])], max_rows=50)
    workbook.add_table(SHEET_SETTINGS, SETTINGS_ROWS)
    return workbook


# =============================================================================
# Table inspection helpers
# =============================================================================

def col(headers: List[str], header: str) -> int:
    return headers.index(header) + 1


async def rows_as_dicts(table: InMemoryTable, headers: List[str]) -> List[Dict[str, Any]]:
    """Data rows (below header row 1) as header -> value maps, skipping empty rows."""
    last_row = await table.get_last_row()
    out = []
    for row in range(2, last_row + 1):
        values = {h: table.cell(row, i + 1) for i, h in enumerate(headers)}
        if any(v not in (None, "") for v in values.values()):
            values["_row"] = row
            out.append(values)
    return out


def three_table_writes(workbook: InMemoryWorkbook) -> int:
    return sum(
        workbook.table(name).write_count
        for name in (SHEET_REQUISITIONS, SHEET_ALL, SHEET_ACTIVE)
    )


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def timer() -> FakeTimer:
    return FakeTimer()


@pytest.fixture
def workbook() -> InMemoryWorkbook:
    return build_workbook()


@pytest.fixture
def tables(workbook: InMemoryWorkbook) -> Dict[str, InMemoryTable]:
    return {
        "req": workbook.table(SHEET_REQUISITIONS),
        "all": workbook.table(SHEET_ALL),
        "act": workbook.table(SHEET_ACTIVE),
    }


@pytest_asyncio.fixture
async def orchestrator(workbook: InMemoryWorkbook, timer: FakeTimer):
    """Fully wired orchestrator over the seeded workbook."""
    orch = SyncOrchestrator(
        workbook,
        InMemoryStateStore(),
        clock=lambda: FIXED_NOW,
        timer=timer,
        reconcile_delay=60,
        link_delay=60,
        scheduler=FlushableScheduler(clock=timer),
    )
    await orch.initialize()
    yield orch
    await orch.shutdown()


@pytest_asyncio.fixture
async def client(orchestrator: SyncOrchestrator):
    """Async HTTP client against the app, with the test orchestrator injected."""
    from app import app
    from ats_sync.dependencies import get_sync_orchestrator

    async def _override():
        return orchestrator

    app.dependency_overrides[get_sync_orchestrator] = _override
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()
