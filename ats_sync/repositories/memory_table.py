"""
In-process table backend.

Used when ATS_STORAGE_BACKEND=memory and by the test suite. Behaves like a
spreadsheet tab: inserted rows shift the rows, formats and validations below
them; the grid keeps empty rows until they are deleted.
"""
import copy
import logging
from typing import Any, Dict, List, Optional, Set, Tuple

from ats_sync.models import ListValidation, RowFormat
from .table import SheetTable, Workbook

logger = logging.getLogger(__name__)

DEFAULT_MAX_ROWS = 1000


def _is_empty(value: Any) -> bool:
    return value is None or value == ""


class InMemoryTable(SheetTable):
    """A grid of cells kept in Python lists."""

    def __init__(self, name: str, rows: Optional[List[List[Any]]] = None, max_rows: int = DEFAULT_MAX_ROWS):
        self.name = name
        self._rows: List[List[Any]] = [list(r) for r in (rows or [])]
        self._max_rows = max(max_rows, len(self._rows))
        self._formats: Dict[int, RowFormat] = {}
        self._validations: Dict[Tuple[int, int], ListValidation] = {}
        # Mutation counter, used to check that a pass wrote nothing
        self.write_count = 0
        # (row, col) cells whose writes raise, to exercise error isolation
        self.rejected_cells: Set[Tuple[int, int]] = set()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_last_row(self) -> int:
        for idx in range(len(self._rows) - 1, -1, -1):
            if any(not _is_empty(v) for v in self._rows[idx]):
                return idx + 1
        return 0

    async def get_last_column(self) -> int:
        last = 0
        for cells in self._rows:
            for idx in range(len(cells) - 1, -1, -1):
                if not _is_empty(cells[idx]):
                    last = max(last, idx + 1)
                    break
        return last

    async def get_max_rows(self) -> int:
        return self._max_rows

    async def read_range(self, start_row: int, start_col: int, num_rows: int, num_cols: int) -> List[List[Any]]:
        grid = []
        for r in range(start_row, start_row + num_rows):
            cells = self._rows[r - 1] if r - 1 < len(self._rows) else []
            grid.append([
                cells[c - 1] if c - 1 < len(cells) else None
                for c in range(start_col, start_col + num_cols)
            ])
        return grid

    def cell(self, row: int, col: int) -> Any:
        """Synchronous single-cell read for tests and diagnostics."""
        if row - 1 < len(self._rows) and col - 1 < len(self._rows[row - 1]):
            return self._rows[row - 1][col - 1]
        return None

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def _ensure_row(self, row: int) -> List[Any]:
        while len(self._rows) < row:
            self._rows.append([])
        self._max_rows = max(self._max_rows, row)
        return self._rows[row - 1]

    async def write_range(self, start_row: int, start_col: int, values: List[List[Any]]) -> None:
        for i, row_values in enumerate(values):
            for j, _ in enumerate(row_values):
                if (start_row + i, start_col + j) in self.rejected_cells:
                    raise PermissionError(f"write rejected at row {start_row + i}, column {start_col + j}")

        for i, row_values in enumerate(values):
            cells = self._ensure_row(start_row + i)
            for j, value in enumerate(row_values):
                col = start_col + j
                while len(cells) < col:
                    cells.append(None)
                cells[col - 1] = value
        self.write_count += 1

    async def insert_rows_after(self, row: int, count: int = 1) -> None:
        self._ensure_row(row)
        for _ in range(count):
            self._rows.insert(row, [])
        self._max_rows += count
        self._formats = {(r + count if r > row else r): f for r, f in self._formats.items()}
        self._validations = {
            ((r + count if r > row else r), c): v for (r, c), v in self._validations.items()
        }
        self.write_count += 1

    async def delete_row(self, row: int) -> None:
        if row - 1 < len(self._rows):
            del self._rows[row - 1]
        self._max_rows = max(0, self._max_rows - 1)
        self._formats = {(r - 1 if r > row else r): f for r, f in self._formats.items() if r != row}
        self._validations = {
            ((r - 1 if r > row else r), c): v for (r, c), v in self._validations.items() if r != row
        }
        self.write_count += 1

    async def get_row_format(self, row: int) -> Optional[RowFormat]:
        fmt = self._formats.get(row)
        return copy.deepcopy(fmt) if fmt is not None else None

    async def set_row_format(self, row: int, fmt: Optional[RowFormat]) -> None:
        if fmt is None:
            self._formats.pop(row, None)
        else:
            self._formats[row] = copy.deepcopy(fmt)
        self.write_count += 1

    async def get_validation(self, row: int, col: int) -> Optional[ListValidation]:
        return self._validations.get((row, col))

    async def set_validation(
        self, start_row: int, col: int, num_rows: int, validation: Optional[ListValidation]
    ) -> None:
        for r in range(start_row, start_row + num_rows):
            if validation is None:
                self._validations.pop((r, col), None)
            else:
                self._validations[(r, col)] = validation
        self.write_count += 1


class InMemoryWorkbook(Workbook):
    """Named collection of in-memory tables."""

    def __init__(self, tables: Optional[Dict[str, InMemoryTable]] = None):
        self._tables: Dict[str, InMemoryTable] = dict(tables or {})

    def add_table(self, name: str, rows: Optional[List[List[Any]]] = None, max_rows: int = DEFAULT_MAX_ROWS) -> InMemoryTable:
        table = InMemoryTable(name, rows, max_rows)
        self._tables[name] = table
        return table

    async def get_table(self, name: str) -> Optional[SheetTable]:
        return self._tables.get(name)

    async def create_table(self, name: str) -> SheetTable:
        if name not in self._tables:
            self.add_table(name)
            logger.info(f"Created table {name}")
        return self._tables[name]

    def table(self, name: str) -> InMemoryTable:
        """Synchronous lookup for tests and diagnostics."""
        return self._tables[name]

    def total_writes(self) -> int:
        return sum(t.write_count for t in self._tables.values())
