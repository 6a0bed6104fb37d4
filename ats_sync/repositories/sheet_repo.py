"""
PostgreSQL table backend - one JSONB row per spreadsheet row.

Cells are stored as a JSON array; hyperlinks and dates use tagged objects
({"$link": ..., "label": ...}, {"$datetime": ...}, {"$date": ...}).
"""
import asyncpg
import json
import logging
from datetime import date, datetime
from typing import Any, List, Optional

from ats_sync.models import Hyperlink, ListValidation, RowFormat
from .table import SheetTable, Workbook

logger = logging.getLogger(__name__)

DEFAULT_MAX_ROWS = 1000


def encode_cell(value: Any) -> Any:
    """Cell value -> JSON-compatible value."""
    if isinstance(value, Hyperlink):
        return {"$link": value.url, "label": value.label}
    if isinstance(value, datetime):
        return {"$datetime": value.isoformat()}
    if isinstance(value, date):
        return {"$date": value.isoformat()}
    return value


def decode_cell(value: Any) -> Any:
    """JSON value -> cell value."""
    if isinstance(value, dict):
        if "$link" in value:
            return Hyperlink(url=value["$link"], label=value.get("label", ""))
        if "$datetime" in value:
            return datetime.fromisoformat(value["$datetime"])
        if "$date" in value:
            return date.fromisoformat(value["$date"])
    return value


def trim_cells(cells: List[Any]) -> List[Any]:
    """Drop trailing empty cells so array length equals the last used column."""
    out = list(cells)
    while out and (out[-1] is None or out[-1] == ""):
        out.pop()
    return out


class PostgresTable(SheetTable):
    """Spreadsheet tab persisted in ats.sheet_rows."""

    def __init__(self, pool: asyncpg.Pool, name: str):
        self.pool = pool
        self.name = name

    async def get_last_row(self) -> int:
        return await self.pool.fetchval(
            """
            SELECT COALESCE(MAX(row_number), 0) FROM ats.sheet_rows
            WHERE sheet_name = $1 AND jsonb_array_length(cells) > 0
            """,
            self.name
        )

    async def get_last_column(self) -> int:
        return await self.pool.fetchval(
            "SELECT COALESCE(MAX(jsonb_array_length(cells)), 0) FROM ats.sheet_rows WHERE sheet_name = $1",
            self.name
        )

    async def get_max_rows(self) -> int:
        value = await self.pool.fetchval(
            "SELECT max_rows FROM ats.sheet_tables WHERE name = $1",
            self.name
        )
        return value or 0

    async def read_range(self, start_row: int, start_col: int, num_rows: int, num_cols: int) -> List[List[Any]]:
        rows = await self.pool.fetch(
            """
            SELECT row_number, cells FROM ats.sheet_rows
            WHERE sheet_name = $1 AND row_number BETWEEN $2 AND $3
            """,
            self.name, start_row, start_row + num_rows - 1
        )
        by_row = {r["row_number"]: json.loads(r["cells"]) for r in rows}
        grid = []
        for r in range(start_row, start_row + num_rows):
            cells = by_row.get(r, [])
            grid.append([
                decode_cell(cells[c - 1]) if c - 1 < len(cells) else None
                for c in range(start_col, start_col + num_cols)
            ])
        return grid

    async def write_range(self, start_row: int, start_col: int, values: List[List[Any]]) -> None:
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                for i, row_values in enumerate(values):
                    row = start_row + i
                    existing = await conn.fetchval(
                        "SELECT cells FROM ats.sheet_rows WHERE sheet_name = $1 AND row_number = $2 FOR UPDATE",
                        self.name, row
                    )
                    cells = json.loads(existing) if existing else []
                    for j, value in enumerate(row_values):
                        col = start_col + j
                        while len(cells) < col:
                            cells.append(None)
                        cells[col - 1] = encode_cell(value)
                    await conn.execute(
                        """
                        INSERT INTO ats.sheet_rows (sheet_name, row_number, cells)
                        VALUES ($1, $2, $3::jsonb)
                        ON CONFLICT (sheet_name, row_number) DO UPDATE SET cells = EXCLUDED.cells
                        """,
                        self.name, row, json.dumps(trim_cells(cells))
                    )
                await conn.execute(
                    "UPDATE ats.sheet_tables SET max_rows = GREATEST(max_rows, $2) WHERE name = $1",
                    self.name, start_row + len(values) - 1
                )

    async def _shift_rows(self, conn, after_row: int, delta: int) -> None:
        # Two-step shift keeps (sheet_name, row_number) unique at every step
        for table in ("ats.sheet_rows", "ats.sheet_validations"):
            await conn.execute(
                f"UPDATE {table} SET row_number = -(row_number + $3) WHERE sheet_name = $1 AND row_number > $2",
                self.name, after_row, delta
            )
            await conn.execute(
                f"UPDATE {table} SET row_number = -row_number WHERE sheet_name = $1 AND row_number < 0",
                self.name
            )

    async def insert_rows_after(self, row: int, count: int = 1) -> None:
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                await self._shift_rows(conn, row, count)
                await conn.execute(
                    "UPDATE ats.sheet_tables SET max_rows = GREATEST(max_rows, $2) + $3 WHERE name = $1",
                    self.name, row, count
                )

    async def delete_row(self, row: int) -> None:
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                await conn.execute(
                    "DELETE FROM ats.sheet_rows WHERE sheet_name = $1 AND row_number = $2",
                    self.name, row
                )
                await conn.execute(
                    "DELETE FROM ats.sheet_validations WHERE sheet_name = $1 AND row_number = $2",
                    self.name, row
                )
                await self._shift_rows(conn, row, -1)
                await conn.execute(
                    "UPDATE ats.sheet_tables SET max_rows = GREATEST(max_rows - 1, 0) WHERE name = $1",
                    self.name
                )

    async def get_row_format(self, row: int) -> Optional[RowFormat]:
        value = await self.pool.fetchval(
            "SELECT format FROM ats.sheet_rows WHERE sheet_name = $1 AND row_number = $2",
            self.name, row
        )
        return json.loads(value) if value else None

    async def set_row_format(self, row: int, fmt: Optional[RowFormat]) -> None:
        await self.pool.execute(
            """
            INSERT INTO ats.sheet_rows (sheet_name, row_number, cells, format)
            VALUES ($1, $2, '[]'::jsonb, $3::jsonb)
            ON CONFLICT (sheet_name, row_number) DO UPDATE SET format = EXCLUDED.format
            """,
            self.name, row, json.dumps(fmt) if fmt is not None else None
        )

    async def get_validation(self, row: int, col: int) -> Optional[ListValidation]:
        value = await self.pool.fetchval(
            "SELECT rule FROM ats.sheet_validations WHERE sheet_name = $1 AND row_number = $2 AND col = $3",
            self.name, row, col
        )
        return ListValidation.model_validate(json.loads(value)) if value else None

    async def set_validation(
        self, start_row: int, col: int, num_rows: int, validation: Optional[ListValidation]
    ) -> None:
        end_row = start_row + num_rows - 1
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                if validation is None:
                    await conn.execute(
                        """
                        DELETE FROM ats.sheet_validations
                        WHERE sheet_name = $1 AND col = $2 AND row_number BETWEEN $3 AND $4
                        """,
                        self.name, col, start_row, end_row
                    )
                    return
                await conn.execute(
                    """
                    INSERT INTO ats.sheet_validations (sheet_name, row_number, col, rule)
                    SELECT $1, r, $2, $5::jsonb FROM generate_series($3::int, $4::int) AS r
                    ON CONFLICT (sheet_name, row_number, col) DO UPDATE SET rule = EXCLUDED.rule
                    """,
                    self.name, col, start_row, end_row, validation.model_dump_json()
                )


class PostgresWorkbook(Workbook):
    """Tables registered in ats.sheet_tables."""

    def __init__(self, pool: asyncpg.Pool):
        self.pool = pool

    async def get_table(self, name: str) -> Optional[SheetTable]:
        exists = await self.pool.fetchval(
            "SELECT EXISTS (SELECT 1 FROM ats.sheet_tables WHERE name = $1)",
            name
        )
        return PostgresTable(self.pool, name) if exists else None

    async def create_table(self, name: str) -> SheetTable:
        await self.pool.execute(
            """
            INSERT INTO ats.sheet_tables (name, max_rows) VALUES ($1, $2)
            ON CONFLICT (name) DO NOTHING
            """,
            name, DEFAULT_MAX_ROWS
        )
        return PostgresTable(self.pool, name)
