"""
Tests for Candidate Database edit handling around hires.

Run with: pytest tests/test_candidate_sync.py -v
"""
import pytest

from ats_sync.config import REJECTED_REASON_HIRED_OTHER
from ats_sync.models import ActCol, CandCol, ReqCol

from conftest import ACT_HEADERS, ALL_HEADERS, FIXED_NOW, REQ_HEADERS, col, rows_as_dicts


async def set_cell(table, row: int, headers, header: str, value):
    await table.write_range(row, col(headers, header), [[value]])


@pytest.fixture
def hired_calls(orchestrator, monkeypatch):
    """Names passed to the hired flow, in call order."""
    calls = []
    original = orchestrator.hired_flow.apply

    async def counting_apply(job_id, hired_name, hired_email):
        calls.append(hired_name)
        return await original(job_id, hired_name, hired_email)

    monkeypatch.setattr(orchestrator.hired_flow, "apply", counting_apply)
    return calls


class TestHiredStamp:

    @pytest.mark.asyncio
    async def test_mirrored_hired_status_does_not_hire_other_candidates(self, orchestrator, tables):
        await orchestrator.reconcile()
        await set_cell(tables["all"], 2, ALL_HEADERS, CandCol.STAGE, "Hired")
        await orchestrator.on_candidate_rows_edited([2], [CandCol.STAGE])
        await orchestrator.scheduler.flush()
        assert tables["all"].cell(3, col(ALL_HEADERS, CandCol.JOB_STATUS)) == "Hired"

        await set_cell(tables["all"], 3, ALL_HEADERS, CandCol.INTERVIEW_NOTES, "Asked for feedback")
        await orchestrator.on_candidate_rows_edited([3], [CandCol.INTERVIEW_NOTES])

        req = (await rows_as_dicts(tables["req"], REQ_HEADERS))[0]
        assert req[ReqCol.HIRED_CANDIDATE_NAME] == "Ada Lovelace"
        candidates = {r[CandCol.FULL_NAME]: r for r in await rows_as_dicts(tables["all"], ALL_HEADERS)}
        assert candidates["Bob Byte"][CandCol.STAGE] == "Rejected"
        assert candidates["Bob Byte"][CandCol.REJECTED_REASON] == REJECTED_REASON_HIRED_OTHER
        assert candidates["Bob Byte"][CandCol.HIRED_DATE] in (None, "")
        assert candidates["Ada Lovelace"][CandCol.STAGE] == "Hired"

    @pytest.mark.asyncio
    async def test_later_edits_to_hired_row_do_not_rerun_flow(self, orchestrator, tables, hired_calls):
        await set_cell(tables["all"], 2, ALL_HEADERS, CandCol.STAGE, "Hired")
        await orchestrator.on_candidate_rows_edited([2], [CandCol.STAGE])
        assert hired_calls == ["Ada Lovelace"]

        await set_cell(tables["all"], 2, ALL_HEADERS, CandCol.INTERVIEW_NOTES, "Offer signed")
        await orchestrator.on_candidate_rows_edited([2], [CandCol.INTERVIEW_NOTES])
        assert hired_calls == ["Ada Lovelace"]

        await orchestrator.on_candidate_rows_edited([2], [CandCol.STAGE])
        assert hired_calls == ["Ada Lovelace", "Ada Lovelace"], "a Stage edit always re-runs the flow"

    @pytest.mark.asyncio
    async def test_unstamped_hired_row_runs_flow_on_any_edit(self, orchestrator, tables, hired_calls):
        await set_cell(tables["all"], 2, ALL_HEADERS, CandCol.STAGE, "Hired")

        await orchestrator.on_candidate_rows_edited([2], [CandCol.INTERVIEW_NOTES])

        assert hired_calls == ["Ada Lovelace"]
        assert tables["all"].cell(2, col(ALL_HEADERS, CandCol.HIRED_DATE)) == FIXED_NOW
        assert tables["req"].cell(2, col(REQ_HEADERS, ReqCol.HIRED_CANDIDATE_NAME)) == "Ada Lovelace"

    @pytest.mark.asyncio
    async def test_hired_stage_from_active_runs_flow(self, orchestrator, tables, hired_calls):
        await orchestrator.reconcile()
        assert tables["act"].cell(2, col(ACT_HEADERS, ActCol.FULL_NAME)) == "Ada Lovelace"

        await set_cell(tables["act"], 2, ACT_HEADERS, ActCol.STAGE, "Hired")
        await orchestrator.on_active_rows_edited([2])

        assert hired_calls == ["Ada Lovelace"]
        assert tables["all"].cell(2, col(ALL_HEADERS, CandCol.STAGE)) == "Hired"
        assert tables["all"].cell(2, col(ALL_HEADERS, CandCol.HIRED_DATE)) == FIXED_NOW
        assert tables["all"].cell(3, col(ALL_HEADERS, CandCol.STAGE)) == "Rejected"


class TestAutopopulate:

    @pytest.mark.asyncio
    async def test_row_without_job_id_is_skipped(self, orchestrator, tables):
        await set_cell(tables["all"], 2, ALL_HEADERS, CandCol.JOB_ID, "")

        assert await orchestrator.candidates.autopopulate_from_job_id([2]) == 0

    @pytest.mark.asyncio
    async def test_mirrors_title_and_status(self, orchestrator, tables):
        await set_cell(tables["all"], 4, ALL_HEADERS, CandCol.JOB_ID, "2025-0001")

        assert await orchestrator.candidates.autopopulate_from_job_id([4]) == 1
        assert tables["all"].cell(4, col(ALL_HEADERS, CandCol.JOB_TITLE)) == "Backend Engineer"
        assert tables["all"].cell(4, col(ALL_HEADERS, CandCol.JOB_STATUS)) == "Open"
