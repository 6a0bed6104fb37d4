"""
Bulk candidate import.

Takes already-parsed records (header -> value maps) and appends the ones
whose email is not yet in Candidate Database. Email uniqueness here is global,
not per job.
"""
import logging
from datetime import datetime
from typing import Any, Callable, Dict, List

from ats_sync.config import SHEET_ALL, SOURCE_IMPORT
from ats_sync.exceptions import ImportValidationError
from ats_sync.models import CandCol, ImportResult, TableKind
from ats_sync.utils import cell_text, normalize_email, now_local
from .candidate_sync_service import CandidateSyncService
from .header_service import HeaderResolver
from .requisition_service import RequisitionService
from .validation_service import ValidationService

logger = logging.getLogger(__name__)

INVALID_FORMAT_MESSAGE = (
    "Import failed: Invalid data format.\n\n"
    "The import data must be a list of candidate records. Please check your import file format."
)
SHEET_MISSING_MESSAGE = (
    'Import failed: "Candidate Database" sheet not found.\n\n'
    'Please ensure your spreadsheet has a sheet named "Candidate Database".'
)
HEADERS_MISSING_MESSAGE = (
    'Import failed: Cannot find headers in "Candidate Database" sheet.\n\n'
    'Please ensure the sheet has a header row with "Full Name" in column A.'
)
COLUMNS_MISSING_MESSAGE = (
    "Import failed: Your data is missing required columns.\n\n"
    'Each candidate record must include "Full Name" and "Email Address" fields.'
)


class CandidateImportService:

    def __init__(
        self,
        headers: HeaderResolver,
        requisitions: RequisitionService,
        validations: ValidationService,
        candidates: CandidateSyncService,
        clock: Callable[[], datetime] = now_local,
    ):
        self.headers = headers
        self.requisitions = requisitions
        self.validations = validations
        self.candidates = candidates
        self.clock = clock

    async def bulk_import_candidates(self, rows: Any) -> ImportResult:
        """
        Append new candidates from parsed import records.

        Raises:
            ImportValidationError: payload or Candidate Database is unusable
        """
        if not isinstance(rows, list):
            raise ImportValidationError(INVALID_FORMAT_MESSAGE)

        table = await self.headers.get_table(TableKind.CANDIDATE)
        if table is None:
            raise ImportValidationError(SHEET_MISSING_MESSAGE, {"sheet": SHEET_ALL})
        all_io = await self.headers.open(TableKind.CANDIDATE)
        if all_io is None:
            raise ImportValidationError(HEADERS_MISSING_MESSAGE, {"sheet": SHEET_ALL})

        first = rows[0] if rows else None
        if not isinstance(first, dict) or not first.get(CandCol.FULL_NAME) or not first.get(CandCol.EMAIL):
            raise ImportValidationError(COLUMNS_MISSING_MESSAGE)

        emails = set()
        for _, values in await all_io.bulk_read():
            email = normalize_email(values.get(CandCol.EMAIL))
            if email:
                emails.add(email)

        result = ImportResult(total=len(rows))
        to_append: List[Dict[str, Any]] = []
        for record in rows:
            if not isinstance(record, dict):
                result.skipped_no_email += 1
                continue
            values = {h: v for h, v in record.items() if all_io.info.has(h)}
            for h in (CandCol.FULL_NAME, CandCol.EMAIL):
                if values.get(h):
                    values[h] = str(values[h]).strip()

            email = normalize_email(values.get(CandCol.EMAIL))
            if not email:
                result.skipped_no_email += 1
                continue
            if email in emails:
                result.skipped_duplicate += 1
                continue
            emails.add(email)

            now = self.clock()
            values[CandCol.SOURCE] = SOURCE_IMPORT
            values[CandCol.CREATED] = now
            values[CandCol.UPDATED] = now
            to_append.append(values)

        if not to_append:
            logger.info(f"Import complete, nothing to add | total={result.total}")
            return result

        new_rows = []
        for values in to_append:
            new_rows.append(await self.candidates.append_candidate_row(all_io, values))
        result.added = len(new_rows)

        try:
            job_ids = await self.requisitions.active_job_ids()
            for row in new_rows:
                await self.validations.apply_row_validations(all_io, row, allow_invalid=True, job_ids=job_ids)
        except Exception as e:
            logger.warning(f"Failed to apply validations after import | error={e}")

        unique_job_ids = []
        for values in to_append:
            jid = cell_text(values.get(CandCol.JOB_ID))
            if jid and jid not in unique_job_ids:
                unique_job_ids.append(jid)

        await self.candidates.autopopulate_from_job_id(new_rows)
        if unique_job_ids:
            await self.candidates.reconcile(unique_job_ids)

        logger.info(
            f"Import complete | added={result.added} skipped_duplicate={result.skipped_duplicate} "
            f"skipped_no_email={result.skipped_no_email} total={result.total}"
        )
        return result
