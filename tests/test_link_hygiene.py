"""
Tests for resume / LinkedIn link hygiene.

Run with: pytest tests/test_link_hygiene.py -v
"""
import pytest

from ats_sync.config import HANDLER_DEBOUNCED_LINK_HYGIENE, SHEET_ALL
from ats_sync.models import ActCol, CandCol, Hyperlink

from conftest import ACT_HEADERS, ALL_HEADERS, col


class TestSweep:

    @pytest.mark.asyncio
    async def test_sweep_labels_raw_urls(self, orchestrator, tables):
        await tables["all"].write_range(3, col(ALL_HEADERS, CandCol.LINKEDIN), [["linkedin.com/in/bob"]])
        await tables["all"].write_range(4, col(ALL_HEADERS, CandCol.RESUME), [["see attached"]])

        rewritten = await orchestrator.link_hygiene_sweep()

        assert rewritten == 2
        all_table = tables["all"]
        assert all_table.cell(2, col(ALL_HEADERS, CandCol.RESUME)) == Hyperlink(
            url="https://www.example.com/ada.pdf", label="Resume"
        )
        assert all_table.cell(3, col(ALL_HEADERS, CandCol.LINKEDIN)) == Hyperlink(
            url="https://linkedin.com/in/bob", label="LinkedIn Profile"
        )
        assert all_table.cell(4, col(ALL_HEADERS, CandCol.RESUME)) == "see attached", "non-URLs are left alone"

    @pytest.mark.asyncio
    async def test_second_sweep_is_a_no_op(self, orchestrator, workbook):
        await orchestrator.link_hygiene_sweep()
        before = workbook.total_writes()

        assert await orchestrator.link_hygiene_sweep() == 0
        assert workbook.total_writes() == before

    @pytest.mark.asyncio
    async def test_relabels_links_with_wrong_label(self, orchestrator, tables):
        await tables["all"].write_range(
            2, col(ALL_HEADERS, CandCol.RESUME), [[Hyperlink(url="https://cv.example.com/ada", label="click")]]
        )

        await orchestrator.link_hygiene_sweep()

        assert tables["all"].cell(2, col(ALL_HEADERS, CandCol.RESUME)) == Hyperlink(
            url="https://cv.example.com/ada", label="Resume"
        )


class TestDebouncedWorker:

    @pytest.mark.asyncio
    async def test_changed_resume_is_marked_then_rewritten(self, orchestrator, tables):
        await orchestrator.reconcile()
        new_url = "https://cv.example.com/ada-v2.pdf"
        await tables["all"].write_range(2, col(ALL_HEADERS, CandCol.RESUME), [[new_url]])

        await orchestrator.reconcile(["2025-0001"])

        resume_col = col(ACT_HEADERS, ActCol.RESUME)
        assert tables["act"].cell(2, resume_col) == new_url, "routine sync writes the raw URL"
        assert await orchestrator.links.pending_markers() == 1
        assert len(orchestrator.scheduler.list_triggers(HANDLER_DEBOUNCED_LINK_HYGIENE)) == 1

        await orchestrator.scheduler.flush()

        assert tables["act"].cell(2, resume_col) == Hyperlink(url=new_url, label="Resume")
        assert await orchestrator.links.pending_markers() == 0
        assert await orchestrator.state.get_link_scheduled_at() is None

    @pytest.mark.asyncio
    async def test_schedule_is_suppressed_inside_window(self, orchestrator, timer):
        first = await orchestrator.links.schedule()
        second = await orchestrator.links.schedule()
        timer.advance(5)
        third = await orchestrator.links.schedule()

        assert first is not None
        assert second is None
        assert third is not None

    @pytest.mark.asyncio
    async def test_markers_below_header_are_ignored(self, orchestrator):
        await orchestrator.links.mark_dirty(SHEET_ALL, CandCol.RESUME, 1)

        assert await orchestrator.links.run_worker() is None
        assert await orchestrator.links.pending_markers() == 0
