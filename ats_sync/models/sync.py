"""
Sync operation models: queue batches, operation results, API requests.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field

from .enums import QueueScope, Severity


# =============================================================================
# Queue
# =============================================================================

class QueueBatch(BaseModel):
    """A drained reconcile queue: either everything or a set of job IDs."""
    scope: QueueScope
    job_ids: List[str] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return self.scope == QueueScope.JOBS and not self.job_ids


class ScheduledTrigger(BaseModel):
    """A one-shot delayed run registered with the scheduler."""
    trigger_id: str
    handler: str
    created_at: float
    run_at: float


# =============================================================================
# Results
# =============================================================================

class ReconcileResult(BaseModel):
    """Counts from one reconciliation pass."""
    job_ids: Optional[List[str]] = None
    candidates: int = 0
    synced: int = 0
    deleted: int = 0
    all_updated: int = 0
    active_inserted: int = 0
    active_updated: int = 0
    muted: int = 0
    conflicts: int = 0
    failed_rows: int = 0


class ImportResult(BaseModel):
    added: int = 0
    skipped_duplicate: int = 0
    skipped_no_email: int = 0
    total: int = 0


class FormSubmissionResult(BaseModel):
    accepted: bool
    row: Optional[int] = None
    reason: Optional[str] = None


class ResyncStep(BaseModel):
    name: str
    ok: bool
    error: Optional[str] = None


class ResyncReport(BaseModel):
    """Outcome of a full resync; partial success is reported per step."""
    ok: bool
    queued: bool = False
    message: str = ""
    steps: List[ResyncStep] = Field(default_factory=list)


class Notification(BaseModel):
    message: str
    severity: Severity = Severity.INFO
    title: Optional[str] = None
    created_at: datetime


class OperationResponse(BaseModel):
    """Generic response for trigger endpoints."""
    status: str
    message: Optional[str] = None
    data: Optional[Dict[str, Any]] = None


class QueueStatusResponse(BaseModel):
    pending: Optional[QueueBatch] = None
    scheduled_trigger_id: Optional[str] = None
    triggers: List[ScheduledTrigger] = Field(default_factory=list)
    dirty_links: int = 0


# =============================================================================
# Requests
# =============================================================================

class RowsEditedRequest(BaseModel):
    """Rows touched by an edit; headers limits which columns were edited (None = unknown/all)."""
    rows: List[int] = Field(..., min_length=1)
    headers: Optional[List[str]] = None


class HeaderEditRequest(BaseModel):
    sheet: str
    column: int = Field(..., ge=1)
    old_value: Optional[str] = None
    new_value: Optional[str] = None


class StructuralChangeRequest(BaseModel):
    change_type: str


class FormSubmissionRequest(BaseModel):
    fields: Dict[str, Any]


class ImportRequest(BaseModel):
    # Left untyped so a malformed payload reaches the import validation message
    rows: Any = None


class ReconcileRequest(BaseModel):
    job_ids: Optional[List[str]] = None
