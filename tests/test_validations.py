"""
Tests for Settings-driven dropdowns and Job ID dropdowns.

Run with: pytest tests/test_validations.py -v
"""
import pytest

from ats_sync.config import SHEET_SETTINGS
from ats_sync.models import CandCol, ReqCol, TableKind
from ats_sync.services import settings_hash

from conftest import ACT_HEADERS, ALL_HEADERS, REQ_HEADERS, col, three_table_writes


class TestSettingsHash:

    def test_order_does_not_matter(self):
        a = {"Stage": ["Applied", "Hired"], "Priority": ["High"]}
        b = {"Priority": ["High"], "Stage": ["Hired", "Applied"]}
        assert settings_hash(a) == settings_hash(b)

    def test_option_change_changes_hash(self):
        assert settings_hash({"Stage": ["Applied"]}) != settings_hash({"Stage": ["Applied", "Offer"]})


class TestRebuild:

    @pytest.mark.asyncio
    async def test_rebuild_applies_settings_and_job_ids(self, orchestrator, tables):
        applied = await orchestrator.rebuild_validations()

        assert applied == 3, "Priority on Requisitions, Stage on both candidate tables"
        priority = await tables["req"].get_validation(2, col(REQ_HEADERS, ReqCol.PRIORITY))
        assert priority.allowed == ["High", "Low"]
        assert priority.allow_invalid

        for key, headers in (("all", ALL_HEADERS), ("act", ACT_HEADERS)):
            rule = await tables[key].get_validation(2, col(headers, CandCol.JOB_ID))
            assert rule.allowed == ["2025-0001", "2025-0002"], f"{key}: only Open / On Hold jobs"

    @pytest.mark.asyncio
    async def test_unchanged_settings_skip_rebuild(self, orchestrator, workbook):
        await orchestrator.rebuild_validations()
        before = three_table_writes(workbook)

        assert await orchestrator.rebuild_validations() == 0
        assert three_table_writes(workbook) == before

    @pytest.mark.asyncio
    async def test_changed_settings_rebuild_only_changed_columns(self, orchestrator, workbook, tables):
        await orchestrator.rebuild_validations()
        settings = workbook.table(SHEET_SETTINGS)
        await settings.write_range(7, 1, [["Offer"]])

        applied = await orchestrator.rebuild_validations()

        assert applied == 2
        stage = await tables["all"].get_validation(2, col(ALL_HEADERS, CandCol.STAGE))
        assert "Offer" in stage.allowed

    @pytest.mark.asyncio
    async def test_missing_settings_table(self, orchestrator, workbook):
        del workbook._tables[SHEET_SETTINGS]

        assert await orchestrator.validations.get_dropdown_configurations() == {}


class TestJobIdDropdowns:

    @pytest.mark.asyncio
    async def test_no_active_jobs_clears_rules(self, orchestrator, tables):
        await orchestrator.validations.sync_job_id_dropdowns()
        status_col = col(REQ_HEADERS, ReqCol.JOB_STATUS)
        await tables["req"].write_range(2, status_col, [["Closed"], ["Closed"]])

        assert await orchestrator.validations.sync_job_id_dropdowns() == []
        assert await tables["all"].get_validation(2, col(ALL_HEADERS, CandCol.JOB_ID)) is None

    @pytest.mark.asyncio
    async def test_empty_option_list_is_skipped(self, orchestrator, tables):
        io = await orchestrator.headers.open(TableKind.CANDIDATE)

        assert await orchestrator.validations.apply_list_validation(io, CandCol.JOB_ID, []) is False
        assert await tables["all"].get_validation(2, col(ALL_HEADERS, CandCol.JOB_ID)) is None

    @pytest.mark.asyncio
    async def test_status_edit_refreshes_dropdowns(self, orchestrator, tables):
        await tables["req"].write_range(3, col(REQ_HEADERS, ReqCol.JOB_STATUS), [["Closed"]])

        await orchestrator.on_requisition_rows_edited([3], [ReqCol.JOB_STATUS])

        rule = await tables["act"].get_validation(2, col(ACT_HEADERS, CandCol.JOB_ID))
        assert rule.allowed == ["2025-0001"]
