"""
Table accessor interface and field-level row helpers.

A SheetTable is a grid of cells addressed by 1-based row and column. RowIO
sits on top of it and reads/writes rows by header name through a HeaderInfo.
"""
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Optional, Tuple

from ats_sync.models import HeaderInfo, ListValidation, RowFormat

logger = logging.getLogger(__name__)


def column_letter(col: int) -> str:
    """1 -> A, 27 -> AA."""
    letters = ""
    while col > 0:
        col, rem = divmod(col - 1, 26)
        letters = chr(65 + rem) + letters
    return letters


def a1_range(row: int, col: int, num_rows: int = 1, num_cols: int = 1) -> str:
    start = f"{column_letter(col)}{row}"
    if num_rows == 1 and num_cols == 1:
        return start
    return f"{start}:{column_letter(col + num_cols - 1)}{row + num_rows - 1}"


def contiguous_runs(numbers: Iterable[int]) -> List[Tuple[int, int]]:
    """Sorted (start, end) runs of consecutive integers."""
    ordered = sorted(set(numbers))
    runs: List[Tuple[int, int]] = []
    for n in ordered:
        if runs and n == runs[-1][1] + 1:
            runs[-1] = (runs[-1][0], n)
        else:
            runs.append((n, n))
    return runs


class SheetTable(ABC):
    """Abstract table storage (one spreadsheet tab)."""

    name: str

    @abstractmethod
    async def get_last_row(self) -> int:
        """Last row holding any content (0 when empty)."""

    @abstractmethod
    async def get_last_column(self) -> int:
        """Last column holding any content (0 when empty)."""

    @abstractmethod
    async def get_max_rows(self) -> int:
        """Size of the grid, including empty formatted rows."""

    @abstractmethod
    async def read_range(self, start_row: int, start_col: int, num_rows: int, num_cols: int) -> List[List[Any]]:
        ...

    @abstractmethod
    async def write_range(self, start_row: int, start_col: int, values: List[List[Any]]) -> None:
        ...

    @abstractmethod
    async def insert_rows_after(self, row: int, count: int = 1) -> None:
        ...

    @abstractmethod
    async def delete_row(self, row: int) -> None:
        ...

    @abstractmethod
    async def get_row_format(self, row: int) -> Optional[RowFormat]:
        ...

    @abstractmethod
    async def set_row_format(self, row: int, fmt: Optional[RowFormat]) -> None:
        ...

    @abstractmethod
    async def get_validation(self, row: int, col: int) -> Optional[ListValidation]:
        ...

    @abstractmethod
    async def set_validation(
        self, start_row: int, col: int, num_rows: int, validation: Optional[ListValidation]
    ) -> None:
        """Apply (or clear, when None) a list rule to a column range."""


class Workbook(ABC):
    """Resolves tables by sheet name."""

    @abstractmethod
    async def get_table(self, name: str) -> Optional[SheetTable]:
        ...

    @abstractmethod
    async def create_table(self, name: str) -> SheetTable:
        ...


class RowIO:
    """Header-addressed reads and writes against one table."""

    def __init__(self, table: SheetTable, info: HeaderInfo):
        self.table = table
        self.info = info

    @property
    def sheet(self) -> str:
        return self.table.name

    def _row_values(self, cells: List[Any]) -> Dict[str, Any]:
        values = {}
        for header, col in self.info.header_map.items():
            values[header] = cells[col - 1] if col - 1 < len(cells) else None
        return values

    async def read_row(self, row: int) -> Dict[str, Any]:
        """Header -> value map for one row."""
        if row < 1:
            logger.warning(f"read_row called with invalid row | sheet={self.sheet} row={row}")
            return {}
        last_col = await self.table.get_last_column()
        if not self.info.header_map or last_col < 1:
            return {}
        cells = (await self.table.read_range(row, 1, 1, last_col))[0]
        return self._row_values(cells)

    async def bulk_read(self, start_row: Optional[int] = None, row_count: Optional[int] = None) -> List[Tuple[int, Dict[str, Any]]]:
        """(row, header -> value) for a block of rows in one read; defaults to the whole data range."""
        start = start_row or self.info.data_start_row
        last_row = await self.table.get_last_row()
        last_col = await self.table.get_last_column()
        if row_count is None:
            row_count = last_row - start + 1
        if row_count < 1 or last_col < 1:
            return []
        grid = await self.table.read_range(start, 1, row_count, last_col)
        return [(start + i, self._row_values(cells)) for i, cells in enumerate(grid)]

    async def write_fields(self, row: int, updates: Dict[str, Any]) -> int:
        """
        Partial row update by header name.

        Adjacent columns are written in one call; a failing run is logged and
        the remaining runs still go through. Unknown headers are ignored.

        Returns:
            Number of cells written
        """
        by_col = sorted(
            (self.info.header_map[h], h, v) for h, v in updates.items() if h in self.info.header_map
        )
        if not by_col:
            return 0

        written = 0
        i = 0
        while i < len(by_col):
            start_col = by_col[i][0]
            headers = [by_col[i][1]]
            values = [by_col[i][2]]
            while i + 1 < len(by_col) and by_col[i + 1][0] == start_col + len(values):
                i += 1
                headers.append(by_col[i][1])
                values.append(by_col[i][2])
            try:
                await self.table.write_range(row, start_col, [values])
                written += len(values)
            except Exception as e:
                logger.warning(
                    f"Range op failed: write | sheet={self.sheet} header={', '.join(headers)} "
                    f"a1={a1_range(row, start_col, 1, len(values))} error={e}"
                )
            i += 1
        return written

    async def write_column(self, col: int, rows: Iterable[int], value_for: Any) -> None:
        """Write one column for many rows, one call per contiguous run.

        value_for is either a constant or a callable taking the row number.
        """
        for start, end in contiguous_runs(rows):
            height = end - start + 1
            values = [[value_for(r) if callable(value_for) else value_for] for r in range(start, end + 1)]
            try:
                await self.table.write_range(start, col, values)
            except Exception as e:
                logger.warning(
                    f"Range op failed: write column | sheet={self.sheet} "
                    f"a1={a1_range(start, col, height, 1)} error={e}"
                )

    async def append_row(self, count: int = 1) -> int:
        """Insert empty row(s) below the data and return the first new row number."""
        last_row = max(await self.table.get_last_row(), self.info.header_row)
        await self.table.insert_rows_after(last_row, count)
        return last_row + 1

    async def delete_row(self, row: int) -> None:
        await self.table.delete_row(row)

    async def set_cell_validation(self, row: int, header: str, validation: Optional[ListValidation]) -> None:
        col = self.info.column(header)
        if not col:
            return
        try:
            await self.table.set_validation(row, col, 1, validation)
        except Exception as e:
            logger.warning(
                f"Range op failed: set_validation | sheet={self.sheet} header={header} "
                f"a1={a1_range(row, col)} error={e}"
            )
