"""
ATS sync models.

This module re-exports all model classes for convenient importing.
"""

# Enums
from .enums import (
    RequisitionStatus,
    OPEN_STATUSES,
    CandidateStage,
    TableKind,
    QueueScope,
    Severity,
    StructuralChange,
)

# Headers
from .headers import (
    ReqCol,
    CandCol,
    ActCol,
    ANCHOR_REQ,
    ANCHOR_ALL,
    ANCHOR_ACT,
    ANCHORS,
    MIRRORED_FIELDS,
    LINK_FIELDS,
    LINK_LABELS,
    default_headers,
)

# Cells
from .cells import (
    Hyperlink,
    ListValidation,
    CellValue,
    RowFormat,
    TemplateFormat,
    cell_text,
)

# Records
from .records import (
    SheetRecord,
    RequisitionRecord,
    CandidateRecord,
    ActiveCandidateRecord,
    AnyRecord,
    HeaderInfo,
)

# Sync operations
from .sync import (
    QueueBatch,
    ScheduledTrigger,
    ReconcileResult,
    ImportResult,
    FormSubmissionResult,
    ResyncStep,
    ResyncReport,
    Notification,
    OperationResponse,
    QueueStatusResponse,
    RowsEditedRequest,
    HeaderEditRequest,
    StructuralChangeRequest,
    FormSubmissionRequest,
    ImportRequest,
    ReconcileRequest,
)

__all__ = [
    # Enums
    "RequisitionStatus",
    "OPEN_STATUSES",
    "CandidateStage",
    "TableKind",
    "QueueScope",
    "Severity",
    "StructuralChange",
    # Headers
    "ReqCol",
    "CandCol",
    "ActCol",
    "ANCHOR_REQ",
    "ANCHOR_ALL",
    "ANCHOR_ACT",
    "ANCHORS",
    "MIRRORED_FIELDS",
    "LINK_FIELDS",
    "LINK_LABELS",
    "default_headers",
    # Cells
    "Hyperlink",
    "ListValidation",
    "CellValue",
    "RowFormat",
    "TemplateFormat",
    "cell_text",
    # Records
    "SheetRecord",
    "RequisitionRecord",
    "CandidateRecord",
    "ActiveCandidateRecord",
    "AnyRecord",
    "HeaderInfo",
    # Sync
    "QueueBatch",
    "ScheduledTrigger",
    "ReconcileResult",
    "ImportResult",
    "FormSubmissionResult",
    "ResyncStep",
    "ResyncReport",
    "Notification",
    "OperationResponse",
    "QueueStatusResponse",
    "RowsEditedRequest",
    "HeaderEditRequest",
    "StructuralChangeRequest",
    "FormSubmissionRequest",
    "ImportRequest",
    "ReconcileRequest",
]
