"""
Repository layer for table storage and durable sync state.
"""
from .table import SheetTable, Workbook, RowIO, contiguous_runs, a1_range
from .memory_table import InMemoryTable, InMemoryWorkbook
from .sheet_repo import PostgresTable, PostgresWorkbook
from .state_repo import StateStore, InMemoryStateStore, PostgresStateStore, SyncStateRepository

__all__ = [
    "SheetTable",
    "Workbook",
    "RowIO",
    "contiguous_runs",
    "a1_range",
    "InMemoryTable",
    "InMemoryWorkbook",
    "PostgresTable",
    "PostgresWorkbook",
    "StateStore",
    "InMemoryStateStore",
    "PostgresStateStore",
    "SyncStateRepository",
]
