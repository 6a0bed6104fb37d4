"""
Dropdown validation manager.

Dropdown options come from the Settings table: the first row holds header
names, the cells below each header are that column's allowed values. Job ID
dropdowns are built from the requisitions that are Open or On Hold.
"""
import json
import logging
from typing import Dict, Iterable, List, Optional

from ats_sync.config import SHEET_SETTINGS
from ats_sync.models import ActCol, CandCol, ListValidation, TableKind
from ats_sync.repositories import RowIO, SyncStateRepository, Workbook, a1_range
from ats_sync.utils import cell_text
from .header_service import HeaderResolver
from .requisition_service import RequisitionService

logger = logging.getLogger(__name__)


def settings_hash(configurations: Dict[str, List[str]]) -> str:
    """Canonical JSON of the configurations; order of headers and options is ignored."""
    return json.dumps(
        [{"key": key, "values": sorted(configurations[key])} for key in sorted(configurations)],
        separators=(",", ":"),
    )


class ValidationService:
    """Builds and maintains list validations on the three tables."""

    def __init__(
        self,
        workbook: Workbook,
        headers: HeaderResolver,
        requisitions: RequisitionService,
        state: SyncStateRepository,
    ):
        self.workbook = workbook
        self.headers = headers
        self.requisitions = requisitions
        self.state = state

    async def get_dropdown_configurations(self) -> Dict[str, List[str]]:
        """Header -> allowed options, read from the Settings table."""
        table = await self.workbook.get_table(SHEET_SETTINGS)
        if table is None:
            logger.warning(f"Settings table not found, cannot build dynamic validations | sheet={SHEET_SETTINGS}")
            return {}

        last_row = await table.get_last_row()
        last_col = await table.get_last_column()
        if last_row < 1 or last_col < 1:
            return {}

        grid = await table.read_range(1, 1, last_row, last_col)
        configurations: Dict[str, List[str]] = {}
        for c, header_cell in enumerate(grid[0]):
            header = cell_text(header_cell)
            if not header:
                continue
            options = [cell_text(r[c]) for r in grid[1:] if cell_text(r[c])]
            if options:
                configurations[header] = options
        return configurations

    async def apply_list_validation(self, io: RowIO, header: str, options: List[str]) -> bool:
        """
        Restrict a column (data start to the end of the grid) to `options`.

        Returns:
            True when a rule was written, False when skipped
        """
        if not options:
            logger.warning(f"Attempted to apply empty validation list | sheet={io.sheet} header={header}")
            return False

        col = io.info.column(header)
        if not col:
            return False
        start_row = io.info.data_start_row
        max_rows = await io.table.get_max_rows()
        if start_row > max_rows:
            return False

        existing = await io.table.get_validation(start_row, col)
        if existing is not None and sorted(existing.allowed) == sorted(options):
            logger.debug(f"Validation unchanged | sheet={io.sheet} header={header}")
            return False

        try:
            await io.table.set_validation(
                start_row, col, max_rows - start_row + 1,
                ListValidation(allowed=list(options), allow_invalid=True),
            )
        except Exception as e:
            logger.warning(
                f"Range op failed: set_validation | sheet={io.sheet} header={header} "
                f"a1={a1_range(start_row, col, max_rows - start_row + 1)} error={e}"
            )
            return False
        logger.info(f"Validation rule updated | sheet={io.sheet} header={header} values={len(options)}")
        return True

    async def clear_column_validation(self, io: RowIO, header: str) -> None:
        col = io.info.column(header)
        if not col:
            return
        start_row = io.info.data_start_row
        max_rows = await io.table.get_max_rows()
        if start_row > max_rows:
            return
        try:
            await io.table.set_validation(start_row, col, max_rows - start_row + 1, None)
            logger.info(f"Cleared validation for column | sheet={io.sheet} header={header}")
        except Exception as e:
            logger.warning(f"Failed to clear column validation | sheet={io.sheet} header={header} error={e}")

    async def sync_job_id_dropdowns(self) -> List[str]:
        """Restrict Job ID in Candidate Database and Active Candidates to open job IDs."""
        job_ids = await self.requisitions.active_job_ids()
        targets = (
            (TableKind.CANDIDATE, CandCol.JOB_ID),
            (TableKind.ACTIVE, ActCol.JOB_ID),
        )
        for kind, header in targets:
            io = await self.headers.open(kind)
            if io is None or not io.info.has(header):
                continue
            if job_ids:
                await self.apply_list_validation(io, header, job_ids)
            else:
                await self.clear_column_validation(io, header)
        if not job_ids:
            logger.info("No active job IDs, Job ID dropdown validations cleared")
        return job_ids

    async def rebuild_all_validations(self) -> int:
        """
        Re-apply Settings-driven dropdowns when Settings changed, then re-sync Job ID dropdowns.

        Returns:
            Number of columns whose rule was rebuilt
        """
        configurations = await self.get_dropdown_configurations()
        new_hash = settings_hash(configurations)
        applied = 0

        if new_hash == await self.state.get_settings_hash():
            logger.info(f"Settings unchanged, skipping validation rebuild | configs={len(configurations)}")
        else:
            logger.info(f"Settings changed, rebuilding validations | configs={len(configurations)}")
            for kind in (TableKind.REQUISITION, TableKind.CANDIDATE, TableKind.ACTIVE):
                io = await self.headers.open(kind)
                if io is None:
                    continue
                for header in io.info.header_map:
                    if header in configurations:
                        if await self.apply_list_validation(io, header, configurations[header]):
                            applied += 1
            await self.state.set_settings_hash(new_hash)
            logger.info(f"Validation rebuild complete | applied={applied}")

        try:
            await self.sync_job_id_dropdowns()
        except Exception as e:
            logger.warning(f"Failed to sync Job ID dropdowns | error={e}")
        return applied

    # ------------------------------------------------------------------
    # Single-row rules for newly appended rows
    # ------------------------------------------------------------------

    async def copy_row_validations(self, io: RowIO, from_row: int, to_row: int) -> None:
        for col in sorted(set(io.info.header_map.values())):
            try:
                rule = await io.table.get_validation(from_row, col)
                if rule is not None:
                    await io.table.set_validation(to_row, col, 1, rule)
            except Exception as e:
                logger.warning(f"Failed to copy validation rule | sheet={io.sheet} row={to_row} col={col} error={e}")

    async def apply_row_validations(
        self,
        io: RowIO,
        row: int,
        allow_invalid: bool = True,
        job_ids: Optional[Iterable[str]] = None,
    ) -> None:
        """Fresh Settings dropdowns plus a Job ID dropdown on one row."""
        configurations = await self.get_dropdown_configurations()
        for header in io.info.header_map:
            options = configurations.get(header)
            if options:
                await io.set_cell_validation(row, header, ListValidation(allowed=options, allow_invalid=allow_invalid))

        job_id_list = list(job_ids) if job_ids is not None else await self.requisitions.active_job_ids()
        if job_id_list and io.info.has(CandCol.JOB_ID):
            await io.set_cell_validation(row, CandCol.JOB_ID, ListValidation(allowed=job_id_list, allow_invalid=True))

    async def apply_new_row_validations(self, io: RowIO, row: int) -> None:
        """Copy rules from the row above, or build them fresh on an otherwise empty table."""
        if row - 1 >= io.info.data_start_row:
            await self.copy_row_validations(io, row - 1, row)
        else:
            logger.info(f"No template row for validation copy, building fresh | sheet={io.sheet} row={row}")
            await self.apply_row_validations(io, row, allow_invalid=True)
