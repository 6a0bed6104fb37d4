"""
Form submission processor.

A submitted application becomes a new Candidate Database row: header-matched
fields, Candidate Source "Career Site (Form)", Created / Last Updated stamped,
resume and LinkedIn links, strict Settings dropdowns and a Job ID dropdown.
The row is then autopopulated from its requisition and the job reconciled.
"""
import logging
from datetime import datetime
from typing import Any, Callable, Dict

from ats_sync.config import SOURCE_FORM
from ats_sync.models import CandCol, FormSubmissionResult, Severity, TableKind
from ats_sync.utils import cell_text, composite_key, normalize_email, now_local
from .candidate_sync_service import CandidateSyncService
from .header_service import HeaderResolver
from .index_service import build_candidate_index
from .notification_service import NotificationService
from .requisition_service import RequisitionService
from .validation_service import ValidationService

logger = logging.getLogger(__name__)

DUPLICATE_SUBMISSION_MESSAGE = "Submission blocked: You have already applied for this position."
SUBMISSION_ACCEPTED_MESSAGE = "New candidate successfully submitted and added to the ATS."


def _field_value(value: Any) -> Any:
    """Form answers may arrive as a list of responses; the first one counts."""
    if isinstance(value, (list, tuple)):
        return value[0] if value else None
    return value


class FormSubmissionService:

    def __init__(
        self,
        headers: HeaderResolver,
        requisitions: RequisitionService,
        validations: ValidationService,
        candidates: CandidateSyncService,
        notifier: NotificationService,
        clock: Callable[[], datetime] = now_local,
    ):
        self.headers = headers
        self.requisitions = requisitions
        self.validations = validations
        self.candidates = candidates
        self.notifier = notifier
        self.clock = clock

    async def process(self, fields: Dict[str, Any]) -> FormSubmissionResult:
        """
        Add one form submission to Candidate Database.

        Args:
            fields: Header name -> submitted answer

        Returns:
            FormSubmissionResult (accepted flag, new row or rejection reason)
        """
        fields = {k: _field_value(v) for k, v in (fields or {}).items()}
        logger.info(f"Form submission received | fields={sorted(fields)}")

        all_io = await self.headers.open(TableKind.CANDIDATE)
        if all_io is None:
            logger.warning("Form submission failed: Candidate Database not ready")
            return FormSubmissionResult(accepted=False, reason="table_not_ready")

        email = normalize_email(fields.get(CandCol.EMAIL))
        job_id = cell_text(fields.get(CandCol.JOB_ID))
        if not email:
            logger.warning("Form submission blocked: Email address is missing")
            return FormSubmissionResult(accepted=False, reason="missing_email")
        if not job_id:
            logger.warning("Form submission blocked: Job ID is missing")
            return FormSubmissionResult(accepted=False, reason="missing_job_id")

        index = await build_candidate_index(all_io)
        if index.has(composite_key(job_id, email)):
            logger.warning(f"Form submission blocked: duplicate job+email | job_id={job_id} email={email}")
            await self.notifier.notify(DUPLICATE_SUBMISSION_MESSAGE, Severity.WARNING)
            return FormSubmissionResult(accepted=False, reason="duplicate")

        values: Dict[str, Any] = {}
        for header in all_io.info.header_map:
            value = fields.get(header)
            if value is not None:
                values[header] = str(value).strip()
        now = self.clock()
        values[CandCol.SOURCE] = SOURCE_FORM
        values[CandCol.CREATED] = now
        values[CandCol.UPDATED] = now

        row = await self.candidates.append_candidate_row(all_io, values)

        try:
            await self.validations.apply_row_validations(
                all_io, row, allow_invalid=False, job_ids=await self.requisitions.all_job_ids()
            )
        except Exception as e:
            logger.warning(f"Failed to apply validations to form submission row | row={row} error={e}")

        logger.info(f"Form submission added | row={row} job_id={job_id} email={email}")

        await self.candidates.autopopulate_from_job_id([row])
        await self.candidates.reconcile([job_id])
        await self.notifier.notify(SUBMISSION_ACCEPTED_MESSAGE)
        return FormSubmissionResult(accepted=True, row=row)
