"""
Enums for the ATS sync engine.
"""
from enum import Enum


class RequisitionStatus(str, Enum):
    """Requisition lifecycle status (canonical spelling as shown in the sheet)."""
    OPEN = "Open"
    ON_HOLD = "On Hold"
    CLOSED = "Closed"
    PENDING_APPROVAL = "Pending Approval"
    HIRED = "Hired"


# Statuses whose candidates belong in Active Candidates
OPEN_STATUSES = frozenset({RequisitionStatus.OPEN.value, RequisitionStatus.ON_HOLD.value})


class CandidateStage(str, Enum):
    """Workflow stages the engine reads or writes."""
    HIRED = "Hired"
    REJECTED = "Rejected"


class TableKind(str, Enum):
    """The three synchronized tables."""
    REQUISITION = "requisition"
    CANDIDATE = "candidate"
    ACTIVE = "active"


class QueueScope(str, Enum):
    """Scope of a drained reconcile batch."""
    ALL = "all"
    JOBS = "jobs"


class Severity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class StructuralChange(str, Enum):
    """Change types that shift rows and require a full reconcile."""
    INSERT_ROW = "INSERT_ROW"
    REMOVE_ROW = "REMOVE_ROW"
    INSERT_GRID = "INSERT_GRID"
    REMOVE_GRID = "REMOVE_GRID"
