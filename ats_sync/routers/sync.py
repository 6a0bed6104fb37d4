"""
Sync router - edit events, form submissions and admin operations.

The spreadsheet front end (or any edit-event source) posts here; every
endpoint forwards to the SyncOrchestrator.
"""
import logging

from fastapi import APIRouter, Depends, Query

from ats_sync.dependencies import get_notification_service, get_sync_orchestrator
from ats_sync.models import (
    FormSubmissionRequest,
    FormSubmissionResult,
    HeaderEditRequest,
    ImportRequest,
    ImportResult,
    OperationResponse,
    QueueStatusResponse,
    ReconcileRequest,
    ResyncReport,
    RowsEditedRequest,
    StructuralChangeRequest,
)
from ats_sync.services import NotificationService
from ats_sync.workflows import SyncOrchestrator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sync", tags=["Sync"])


# =============================================================================
# Edit events
# =============================================================================

@router.post("/candidates/edited", response_model=OperationResponse)
async def candidate_rows_edited(
    request: RowsEditedRequest,
    orchestrator: SyncOrchestrator = Depends(get_sync_orchestrator),
):
    """Candidate Database rows were edited."""
    job_ids = await orchestrator.on_candidate_rows_edited(request.rows, request.headers)
    return OperationResponse(status="ok", data={"enqueued_job_ids": job_ids})


@router.post("/active/edited", response_model=OperationResponse)
async def active_rows_edited(
    request: RowsEditedRequest,
    orchestrator: SyncOrchestrator = Depends(get_sync_orchestrator),
):
    """Active Candidates rows were edited."""
    job_ids = await orchestrator.on_active_rows_edited(request.rows)
    return OperationResponse(status="ok", data={"enqueued_job_ids": job_ids})


@router.post("/requisitions/edited", response_model=OperationResponse)
async def requisition_rows_edited(
    request: RowsEditedRequest,
    orchestrator: SyncOrchestrator = Depends(get_sync_orchestrator),
):
    """Requisitions rows were edited."""
    job_ids = await orchestrator.on_requisition_rows_edited(request.rows, request.headers)
    return OperationResponse(status="ok", data={"enqueued_job_ids": job_ids})


@router.post("/headers/edited", response_model=OperationResponse)
async def header_row_edited(
    request: HeaderEditRequest,
    orchestrator: SyncOrchestrator = Depends(get_sync_orchestrator),
):
    """A header cell was edited; anchor renames are reverted."""
    accepted = await orchestrator.on_header_row_edited(
        request.sheet, request.column, request.old_value, request.new_value
    )
    return OperationResponse(status="ok" if accepted else "reverted")


@router.post("/structure/changed", response_model=OperationResponse)
async def structure_changed(
    request: StructuralChangeRequest,
    orchestrator: SyncOrchestrator = Depends(get_sync_orchestrator),
):
    """Rows or sheets were inserted or removed."""
    result = await orchestrator.on_structural_change(request.change_type)
    return OperationResponse(
        status="ok" if result is not None else "skipped",
        data=result.model_dump() if result is not None else None,
    )


@router.post("/forms/submissions", response_model=FormSubmissionResult)
async def form_submission(
    request: FormSubmissionRequest,
    orchestrator: SyncOrchestrator = Depends(get_sync_orchestrator),
):
    """A career-site form response arrived."""
    return await orchestrator.on_form_submission(request.fields)


# =============================================================================
# Admin operations
# =============================================================================

@router.post("/resync", response_model=ResyncReport)
async def full_resync(orchestrator: SyncOrchestrator = Depends(get_sync_orchestrator)):
    """Run the full system resync (queued when the lock is busy)."""
    return await orchestrator.full_resync()


@router.post("/reconcile", response_model=OperationResponse)
async def reconcile(
    request: ReconcileRequest,
    orchestrator: SyncOrchestrator = Depends(get_sync_orchestrator),
):
    """Reconcile Active Candidates now, for some jobs or all of them."""
    result = await orchestrator.reconcile(request.job_ids)
    return OperationResponse(
        status="ok" if result is not None else "skipped",
        data=result.model_dump() if result is not None else None,
    )


@router.post("/days-open", response_model=OperationResponse)
async def recompute_days_open(orchestrator: SyncOrchestrator = Depends(get_sync_orchestrator)):
    written = await orchestrator.recompute_days_open_all()
    return OperationResponse(status="ok", data={"rows_written": written})


@router.post("/validations/rebuild", response_model=OperationResponse)
async def rebuild_validations(orchestrator: SyncOrchestrator = Depends(get_sync_orchestrator)):
    applied = await orchestrator.rebuild_validations()
    return OperationResponse(status="ok", data={"rules_applied": applied})


@router.post("/links/sweep", response_model=OperationResponse)
async def link_sweep(orchestrator: SyncOrchestrator = Depends(get_sync_orchestrator)):
    rewritten = await orchestrator.link_hygiene_sweep()
    return OperationResponse(status="ok", data={"cells_rewritten": rewritten})


@router.post("/import", response_model=ImportResult)
async def bulk_import(
    request: ImportRequest,
    orchestrator: SyncOrchestrator = Depends(get_sync_orchestrator),
):
    """
    Import parsed candidate records.

    Malformed payloads return 400 with a message meant for the user.
    """
    return await orchestrator.bulk_import(request.rows)


# =============================================================================
# Status
# =============================================================================

@router.get("/queue", response_model=QueueStatusResponse)
async def queue_status(orchestrator: SyncOrchestrator = Depends(get_sync_orchestrator)):
    """Pending reconcile batch, scheduled triggers and dirty link markers."""
    return await orchestrator.queue_status()


@router.get("/notifications")
async def recent_notifications(
    limit: int = Query(20, ge=1, le=100),
    notifier: NotificationService = Depends(get_notification_service),
):
    """Most recent user-facing notifications, newest last."""
    return [n.model_dump(mode="json") for n in notifier.recent(limit)]
