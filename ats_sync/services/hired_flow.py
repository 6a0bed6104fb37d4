"""
Hired flow - a candidate was hired for a job.

1. The requisition becomes Hired with the candidate's name (status
   transitions re-applied).
2. Every other candidate for that job who is neither Hired nor Rejected is
   rejected with reason "Hired a Different Candidate".

The two halves are isolated: a failure in one is logged and the other still
runs. Nothing is rolled back.
"""
import logging
from contextvars import ContextVar
from datetime import datetime
from typing import Callable, List

from ats_sync.config import REJECTED_REASON_HIRED_OTHER
from ats_sync.models import CandCol, CandidateStage, TableKind
from ats_sync.utils import normalize_email, now_local
from .header_service import HeaderResolver
from .index_service import build_candidate_index
from .requisition_service import RequisitionService

logger = logging.getLogger(__name__)

# Set while a hired flow runs in the current task; a nested call is dropped
_hired_flow_active: ContextVar[bool] = ContextVar("ats_hired_flow_active", default=False)

_TERMINAL_STAGES = {CandidateStage.HIRED.value.lower(), CandidateStage.REJECTED.value.lower()}


class HiredFlow:

    def __init__(
        self,
        headers: HeaderResolver,
        requisitions: RequisitionService,
        clock: Callable[[], datetime] = now_local,
    ):
        self.headers = headers
        self.requisitions = requisitions
        self.clock = clock

    async def apply(self, job_id: str, hired_name: str, hired_email: str) -> List[int]:
        """
        Run the hired flow for one job.

        Returns:
            Candidate Database rows that were rejected
        """
        if _hired_flow_active.get():
            logger.warning(f"Hired flow already in progress, skipping nested call | job_id={job_id}")
            return []

        token = _hired_flow_active.set(True)
        try:
            try:
                await self.requisitions.set_hired(job_id, hired_name)
            except Exception as e:
                logger.warning(f"Hired flow: requisition update failed | job_id={job_id} error={e}")

            try:
                rejected = await self._reject_other_candidates(job_id, normalize_email(hired_email))
            except Exception as e:
                logger.warning(f"Hired flow: auto-reject failed | job_id={job_id} error={e}")
                rejected = []

            logger.info(f"Hired flow complete | job_id={job_id} hired={hired_name!r} rejected={len(rejected)}")
            return rejected
        finally:
            _hired_flow_active.reset(token)

    async def _reject_other_candidates(self, job_id: str, hired_email: str) -> List[int]:
        io = await self.headers.open(TableKind.CANDIDATE)
        if io is None:
            return []

        now = self.clock()
        rejected = []
        index = await build_candidate_index(io)
        for entry in index.rows:
            if entry.record.job_id != job_id:
                continue
            if normalize_email(entry.record.email) == hired_email:
                continue
            if entry.record.stage.lower() in _TERMINAL_STAGES:
                continue
            updates = {
                CandCol.STAGE: CandidateStage.REJECTED.value,
                CandCol.REJECTED_REASON: REJECTED_REASON_HIRED_OTHER,
                CandCol.UPDATED: now,
            }
            if await io.write_fields(entry.row, updates):
                rejected.append(entry.row)
        return rejected
