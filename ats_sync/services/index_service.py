"""
Row index builder - one bulk read per table, then key lookups in memory.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from ats_sync.models import SheetRecord
from ats_sync.repositories import RowIO
from ats_sync.utils import composite_key, is_blank

logger = logging.getLogger(__name__)


@dataclass
class IndexedRow:
    row: int
    values: Dict[str, Any]
    record: Optional[SheetRecord]
    key: str = ""


@dataclass
class RowIndex:
    """key -> row map plus the ordered row list it was built from.

    When two rows share a key the later one wins in by_key; rows keeps both.
    """
    by_key: Dict[str, int] = field(default_factory=dict)
    rows: List[IndexedRow] = field(default_factory=list)
    by_row: Dict[int, IndexedRow] = field(default_factory=dict)

    def get(self, key: str) -> Optional[IndexedRow]:
        row = self.by_key.get(key)
        return self.by_row.get(row) if row is not None else None

    def has(self, key: str) -> bool:
        return key in self.by_key

    def for_job(self, job_id: str) -> List[IndexedRow]:
        return [r for r in self.rows if r.key.split("|", 1)[0] == job_id]


async def build_candidate_index(io: RowIO, rows: Optional[Iterable[int]] = None) -> RowIndex:
    """
    Index Candidate Database / Active Candidates rows by composite key.

    Rows with neither a job ID nor an email are left out, as are rows that
    cannot be read as records (logged by HeaderInfo.to_record).
    """
    index = RowIndex()
    wanted = set(rows) if rows is not None else None
    for row, values in await io.bulk_read():
        if wanted is not None and row not in wanted:
            continue
        record = io.info.to_record(row, values)
        if record is None:
            continue
        if is_blank(record.job_id) and is_blank(record.email):
            continue
        key = composite_key(record.job_id, record.email)
        entry = IndexedRow(row=row, values=values, record=record, key=key)
        index.rows.append(entry)
        index.by_row[row] = entry
        index.by_key[key] = row
    return index


async def build_requisition_index(io: RowIO) -> RowIndex:
    """Index Requisitions rows by job ID; every readable row is listed."""
    index = RowIndex()
    for row, values in await io.bulk_read():
        record = io.info.to_record(row, values)
        if record is None:
            continue
        job_id = record.job_id
        entry = IndexedRow(row=row, values=values, record=record, key=job_id)
        index.rows.append(entry)
        index.by_row[row] = entry
        if job_id:
            index.by_key[job_id] = row
    return index
