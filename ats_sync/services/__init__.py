"""
Service layer for the sync engine.
"""
from .notification_service import NotificationService
from .lock_service import BoundedLock, OperationLock, in_locked_operation
from .scheduler import AsyncioScheduler
from .header_service import HeaderResolver, SHEET_BY_KIND, KIND_BY_SHEET
from .index_service import IndexedRow, RowIndex, build_candidate_index, build_requisition_index
from .requisition_service import RequisitionService, transition_updates, compute_days_open
from .row_template import capture_template_format, apply_template_format
from .validation_service import ValidationService, settings_hash
from .hired_flow import HiredFlow
from .link_hygiene_service import LinkHygieneService, LINK_TARGETS
from .candidate_sync_service import CandidateSyncService, email_cell, phone_cell
from .queue_service import ReconcileQueue, DebounceCoordinator
from .form_service import FormSubmissionService
from .import_service import CandidateImportService

__all__ = [
    "NotificationService",
    "BoundedLock",
    "OperationLock",
    "in_locked_operation",
    "AsyncioScheduler",
    "HeaderResolver",
    "SHEET_BY_KIND",
    "KIND_BY_SHEET",
    "IndexedRow",
    "RowIndex",
    "build_candidate_index",
    "build_requisition_index",
    "RequisitionService",
    "transition_updates",
    "compute_days_open",
    "capture_template_format",
    "apply_template_format",
    "ValidationService",
    "settings_hash",
    "HiredFlow",
    "LinkHygieneService",
    "LINK_TARGETS",
    "CandidateSyncService",
    "email_cell",
    "phone_cell",
    "ReconcileQueue",
    "DebounceCoordinator",
    "FormSubmissionService",
    "CandidateImportService",
]
