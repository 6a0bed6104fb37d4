"""
Tests for header row discovery, anchor protection and row indexes.

Run with: pytest tests/test_headers_and_index.py -v
"""
from datetime import date

import pytest

from ats_sync.config import SHEET_ACTIVE, SHEET_ALL, SHEET_REQUISITIONS
from ats_sync.exceptions import TableNotReadyError
from ats_sync.models import CandCol, CandidateRecord, ReqCol, Severity, TableKind
from ats_sync.repositories import InMemoryStateStore, InMemoryWorkbook
from ats_sync.services import build_candidate_index, build_requisition_index
from ats_sync.workflows import SyncOrchestrator

from conftest import ALL_HEADERS, FIXED_NOW, REQ_HEADERS, build_workbook, col, make_row, seed_candidates


class TestHeaderDiscovery:

    @pytest.mark.asyncio
    async def test_header_row_below_title_rows(self, timer):
        workbook = InMemoryWorkbook()
        workbook.add_table(SHEET_ALL, [
            ["Candidate Database"],
            [],
            ALL_HEADERS,
            make_row(ALL_HEADERS, seed_candidates()[0]),
        ])
        orch = SyncOrchestrator(workbook, InMemoryStateStore(), clock=lambda: FIXED_NOW, timer=timer)

        info = await orch.headers.get_header_info(TableKind.CANDIDATE)

        assert info.header_row == 3
        assert info.data_start_row == 4
        assert info.column(CandCol.EMAIL) == ALL_HEADERS.index(CandCol.EMAIL) + 1

    @pytest.mark.asyncio
    async def test_missing_anchor_means_not_ready(self, timer):
        workbook = InMemoryWorkbook()
        workbook.add_table(SHEET_ALL, [["Name", "Email Address"]])
        orch = SyncOrchestrator(workbook, InMemoryStateStore(), clock=lambda: FIXED_NOW, timer=timer)

        assert await orch.headers.get_header_info(TableKind.CANDIDATE) is None
        assert await orch.headers.open(TableKind.ACTIVE) is None
        with pytest.raises(TableNotReadyError) as exc_info:
            await orch.headers.require(TableKind.CANDIDATE)
        assert exc_info.value.status_code == 409

    @pytest.mark.asyncio
    async def test_header_info_is_cached_until_expiry(self, orchestrator, tables, timer):
        first = await orchestrator.headers.get_header_info(TableKind.REQUISITION)
        await tables["req"].write_range(1, len(REQ_HEADERS) + 1, [["Notes"]])

        assert await orchestrator.headers.get_header_info(TableKind.REQUISITION) is first

        timer.advance(121)
        refreshed = await orchestrator.headers.get_header_info(TableKind.REQUISITION)
        assert refreshed.has("Notes")


class TestAnchorGuard:

    @pytest.mark.asyncio
    async def test_anchor_rename_is_reverted(self, orchestrator, tables):
        await orchestrator.headers.get_header_info(TableKind.REQUISITION)
        job_id_col = REQ_HEADERS.index(ReqCol.JOB_ID) + 1
        await tables["req"].write_range(1, job_id_col, [["Req Number"]])

        accepted = await orchestrator.on_header_row_edited(SHEET_REQUISITIONS, job_id_col, ReqCol.JOB_ID, "Req Number")

        assert accepted is False
        assert tables["req"].cell(1, job_id_col) == ReqCol.JOB_ID
        last = orchestrator.notifier.recent(1)[0]
        assert last.severity == Severity.WARNING
        assert last.title == "System Protection"
        assert ReqCol.JOB_ID in last.message

    @pytest.mark.asyncio
    async def test_revert_without_cached_header_row(self, timer):
        workbook = InMemoryWorkbook()
        table = workbook.add_table(SHEET_ACTIVE, [["Active"], ["Renamed", "Job ID"]])
        orch = SyncOrchestrator(workbook, InMemoryStateStore(), clock=lambda: FIXED_NOW, timer=timer)

        assert await orch.on_header_row_edited(SHEET_ACTIVE, 1, "Full Name", "Renamed") is False
        assert table.cell(2, 1) == "Full Name"

    @pytest.mark.asyncio
    async def test_other_header_edits_invalidate_cache(self, orchestrator, tables):
        first = await orchestrator.headers.get_header_info(TableKind.REQUISITION)
        await tables["req"].write_range(1, len(REQ_HEADERS) + 1, [["Notes"]])

        accepted = await orchestrator.on_header_row_edited(SHEET_REQUISITIONS, len(REQ_HEADERS) + 1, "", "Notes")

        assert accepted is True
        refreshed = await orchestrator.headers.get_header_info(TableKind.REQUISITION)
        assert refreshed is not first
        assert refreshed.has("Notes")

    @pytest.mark.asyncio
    async def test_unknown_sheet_is_ignored(self, orchestrator):
        assert await orchestrator.on_header_row_edited("Scratch", 1, "a", "b") is True


class TestRowIndex:

    @pytest.mark.asyncio
    async def test_candidate_index_keys_and_duplicates(self, orchestrator, tables):
        twin = {CandCol.FULL_NAME: "Ada Again", CandCol.EMAIL: "A@X.COM", CandCol.JOB_ID: "2025-0001"}
        await tables["all"].write_range(6, 1, [make_row(ALL_HEADERS, twin)])
        await tables["all"].write_range(7, 1, [make_row(ALL_HEADERS, {CandCol.FULL_NAME: "No Key"})])
        io = await orchestrator.headers.open(TableKind.CANDIDATE)

        index = await build_candidate_index(io)

        assert index.by_key["2025-0001|a@x.com"] == 6, "the later row wins"
        assert [r.row for r in index.rows] == [2, 3, 4, 5, 6], "rows without job ID and email are skipped"
        assert [r.row for r in index.for_job("2025-0001")] == [2, 3, 6]

    @pytest.mark.asyncio
    async def test_requisition_index_by_job_id(self, orchestrator):
        io = await orchestrator.headers.open(TableKind.REQUISITION)

        index = await build_requisition_index(io)

        assert index.get("2025-0002").row == 3
        assert index.get("2025-0099") is None

    @pytest.mark.asyncio
    async def test_rows_are_read_as_typed_records(self, orchestrator, tables):
        await tables["all"].write_range(2, col(ALL_HEADERS, CandCol.LINKEDIN), [[date(2025, 1, 20)]])
        io = await orchestrator.headers.open(TableKind.CANDIDATE)

        index = await build_candidate_index(io)

        ada = index.get("2025-0001|a@x.com").record
        assert isinstance(ada, CandidateRecord)
        assert (ada.row, ada.full_name, ada.stage) == (2, "Ada Lovelace", "Interviewing")
        assert ada.linkedin == date(2025, 1, 20), "link columns keep non-link values"
        assert ada.hired_date is None

    @pytest.mark.asyncio
    async def test_unreadable_row_is_left_out(self, orchestrator, tables):
        await tables["all"].write_range(3, col(ALL_HEADERS, CandCol.CREATED), [[object()]])
        io = await orchestrator.headers.open(TableKind.CANDIDATE)

        assert io.info.to_record(3, await io.read_row(3)) is None
        index = await build_candidate_index(io)
        assert [r.row for r in index.rows] == [2, 4, 5]


class TestTableCreation:

    @pytest.mark.asyncio
    async def test_missing_tables_are_created_with_headers(self, timer):
        workbook = build_workbook()
        del workbook._tables[SHEET_ACTIVE]
        orch = SyncOrchestrator(workbook, InMemoryStateStore(), clock=lambda: FIXED_NOW, timer=timer)

        created = await orch.ensure_tables()

        assert created == [SHEET_ACTIVE]
        info = await orch.headers.get_header_info(TableKind.ACTIVE)
        assert info.header_row == 1
