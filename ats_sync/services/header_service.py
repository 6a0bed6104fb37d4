"""
Header resolver - finds each table's header row and column positions.

The header row is the first row (within MAX_HEADER_SEARCH_ROWS) that contains
the table's anchor header. Results are cached for CACHE_TTL_MUTATION seconds
under h_info:{sheet}.
"""
import logging
from typing import Any, Callable, Dict, Optional

from ats_sync.config import (
    CACHE_TTL_MUTATION,
    MAX_HEADER_SEARCH_ROWS,
    SHEET_ACTIVE,
    SHEET_ALL,
    SHEET_REQUISITIONS,
)
from ats_sync.exceptions import TableNotReadyError
from ats_sync.models import ANCHORS, HeaderInfo, Severity, TableKind, cell_text
from ats_sync.repositories import RowIO, SheetTable, Workbook
from ats_sync.utils import TTLCache

logger = logging.getLogger(__name__)

SHEET_BY_KIND: Dict[TableKind, str] = {
    TableKind.REQUISITION: SHEET_REQUISITIONS,
    TableKind.CANDIDATE: SHEET_ALL,
    TableKind.ACTIVE: SHEET_ACTIVE,
}

KIND_BY_SHEET: Dict[str, TableKind] = {sheet: kind for kind, sheet in SHEET_BY_KIND.items()}


def _cache_key(sheet: str) -> str:
    return f"h_info:{sheet}"


class HeaderResolver:
    """Resolves HeaderInfo per table and hands out header-addressed RowIO."""

    def __init__(self, workbook: Workbook, cache: TTLCache):
        self.workbook = workbook
        self.cache = cache

    async def get_table(self, kind: TableKind) -> Optional[SheetTable]:
        return await self.workbook.get_table(SHEET_BY_KIND[kind])

    async def scan(self, table: SheetTable, kind: TableKind) -> Optional[HeaderInfo]:
        """Locate the header row without touching the cache."""
        last_col = await table.get_last_column()
        last_row = await table.get_last_row()
        if last_col < 1 or last_row < 1:
            return None

        anchor = ANCHORS[kind]
        grid = await table.read_range(1, 1, min(MAX_HEADER_SEARCH_ROWS, last_row), last_col)
        for i, cells in enumerate(grid):
            texts = [cell_text(c) for c in cells]
            if anchor not in texts:
                continue
            header_map: Dict[str, int] = {}
            for col, text in enumerate(texts, start=1):
                if text and text not in header_map:
                    header_map[text] = col
            return HeaderInfo(
                kind=kind,
                sheet=table.name,
                header_row=i + 1,
                data_start_row=i + 2,
                header_map=header_map,
            )
        return None

    async def get_header_info(self, kind: TableKind) -> Optional[HeaderInfo]:
        """HeaderInfo for a table, or None when the table or its anchor is missing."""
        sheet = SHEET_BY_KIND[kind]
        cached = await self.cache.get(_cache_key(sheet))
        if cached is not None:
            return cached

        table = await self.workbook.get_table(sheet)
        if table is None:
            logger.warning(f"Table not found | sheet={sheet}")
            return None

        info = await self.scan(table, kind)
        if info is None:
            logger.warning(f"Header row not found | sheet={sheet} anchor={ANCHORS[kind]}")
            return None

        await self.cache.set(_cache_key(sheet), info, ttl=CACHE_TTL_MUTATION)
        return info

    async def open(self, kind: TableKind) -> Optional[RowIO]:
        """RowIO for a table, or None when it is not ready."""
        table = await self.get_table(kind)
        if table is None:
            return None
        info = await self.get_header_info(kind)
        if info is None:
            return None
        return RowIO(table, info)

    async def require(self, kind: TableKind) -> RowIO:
        """Like open() but raises TableNotReadyError."""
        io = await self.open(kind)
        if io is None:
            raise TableNotReadyError(SHEET_BY_KIND[kind], ANCHORS[kind])
        return io

    async def invalidate(self, sheet: str) -> None:
        await self.cache.invalidate(_cache_key(sheet))
        logger.info(f"Header cache invalidated | sheet={sheet}")

    async def invalidate_all(self) -> None:
        for sheet in SHEET_BY_KIND.values():
            await self.invalidate(sheet)

    async def guard_header_edit(
        self,
        sheet: str,
        column: int,
        old_value: Any,
        new_value: Any,
        notify: Optional[Callable[..., Any]] = None,
    ) -> bool:
        """
        Protect the anchor header against renames.

        Returns False when the edit renamed the anchor away and was reverted,
        True otherwise (the header cache is invalidated in that case).
        """
        kind = KIND_BY_SHEET.get(sheet)
        if kind is None:
            return True

        anchor = ANCHORS[kind]
        old_text = cell_text(old_value)
        new_text = cell_text(new_value)

        if old_text == anchor and new_text != anchor:
            table = await self.workbook.get_table(sheet)
            if table is not None:
                header_row = await self._header_row_for_revert(table, column, new_text)
                try:
                    await table.write_range(header_row, column, [[old_text]])
                    logger.warning(f"Reverted anchor header edit | sheet={sheet} column={column} value={new_text!r}")
                except Exception as e:
                    logger.warning(f"Failed to revert anchor header | sheet={sheet} column={column} error={e}")
            if notify is not None:
                await notify(
                    f'The "{anchor}" header is critical and cannot be changed. Reverting edit.',
                    Severity.WARNING,
                    "System Protection",
                )
            return False

        await self.invalidate(sheet)
        return True

    async def _header_row_for_revert(self, table: SheetTable, column: int, new_text: str) -> int:
        # The cached map still points at the header row; otherwise look for the edited cell
        cached = await self.cache.get(_cache_key(table.name))
        if cached is not None:
            return cached.header_row
        last_row = await table.get_last_row()
        if last_row >= 1:
            grid = await table.read_range(1, column, min(MAX_HEADER_SEARCH_ROWS, last_row), 1)
            for i, cells in enumerate(grid):
                if cell_text(cells[0]) == new_text:
                    return i + 1
        return 1
