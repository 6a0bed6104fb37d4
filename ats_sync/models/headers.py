"""
Column headers of the synchronized tables.

Header names are the spreadsheet's own; code addresses columns by name and
resolves positions through the header resolver.
"""
from .enums import TableKind


class ReqCol:
    """Requisitions headers."""
    JOB_STATUS = "Job Status"
    JOB_TITLE = "Job Title"
    JOB_ID = "Job ID"
    PRIORITY = "Priority"
    REASON_FOR_HIRE = "Reason For Hire?"
    WORK_MODEL = "Work Model"
    REPORTING_LOCATION = "Reporting Location"
    HEADCOUNT_TARGET = "Headcount Target"
    EMPLOYMENT_TYPE = "Employment Type"
    MIN_SALARY = "Minimum Salary"
    MAX_SALARY = "Maximum Salary"
    HOURLY_MIN = "Hourly Pay Rate Minimum"
    HOURLY_MAX = "Hourly Pay Rate Maximum"
    JOB_OWNER = "Job Owner/Recruiter"
    HIRING_MANAGER = "Hiring Manager"
    CREATED = "Created Date"
    OPENED = "Opened Date"
    DAYS_OPEN = "Days Open"
    ON_HOLD_DATE = "On Hold Date"
    CLOSED_DATE = "Closed Date"
    HIRED_DATE = "Position Hired Date"
    HIRED_CANDIDATE_NAME = "Hired Candidate's Name"


class CandCol:
    """Candidate Database headers."""
    FULL_NAME = "Full Name"
    RESUME = "Resume Link"
    LINKEDIN = "LinkedIn Profile"
    PHONE = "Phone Number"
    EMAIL = "Email Address"
    HOME_ADDRESS = "Home Address"
    CITY = "City"
    STATE = "State"
    ZIP = "Zip Code"
    TARGET_SALARY = "Targeted\nCompensation (Salary)"
    TARGET_HOURLY = "Targeted\nCompensation (Hourly)"
    WORK_PREF = "Work Environment Preference"
    JOB_ID = "Job ID"
    JOB_STATUS = "Job Status"
    JOB_TITLE = "Job Title"
    STAGE = "Candidate\nWorkflow Status"
    REJECTED_REASON = "Rejected Reasoning"
    INTERVIEW_NOTES = "Interview Notes"
    RELOCATE = "Willingness to Relocate?"
    SOURCE = "Candidate Source"
    CREATED = "Created Date"
    UPDATED = "Last Updated"
    HIRED_DATE = "Hired Date"


class ActCol:
    """Active Candidates headers."""
    FULL_NAME = "Full Name"
    JOB_ID = "Job ID"
    JOB_STATUS = "Job Status"
    JOB_TITLE = "Job Title"
    STAGE = "Candidate\nWorkflow Status"
    REJECTED_REASON = "Rejected Reasoning"
    INTERVIEW_NOTES = "Interview Notes"
    RESUME = "Resume Link"
    LINKEDIN = "LinkedIn Profile"
    PHONE = "Phone Number"
    EMAIL = "Email Address"
    CITY = "City"
    STATE = "State"
    TARGET_SALARY = "Targeted\nCompensation (Salary)"
    TARGET_HOURLY = "Targeted\nCompensation (Hourly)"


ANCHOR_REQ = ReqCol.JOB_ID
ANCHOR_ALL = CandCol.FULL_NAME
ANCHOR_ACT = ActCol.FULL_NAME

ANCHORS = {
    TableKind.REQUISITION: ANCHOR_REQ,
    TableKind.CANDIDATE: ANCHOR_ALL,
    TableKind.ACTIVE: ANCHOR_ACT,
}

# Fields copied between Candidate Database and Active Candidates (only the
# ones present in both tables take part).
MIRRORED_FIELDS = (
    CandCol.STAGE,
    CandCol.REJECTED_REASON,
    CandCol.INTERVIEW_NOTES,
    CandCol.RESUME,
    CandCol.LINKEDIN,
    CandCol.PHONE,
    CandCol.EMAIL,
    CandCol.CITY,
    CandCol.STATE,
    CandCol.TARGET_SALARY,
    CandCol.TARGET_HOURLY,
    CandCol.JOB_TITLE,
    CandCol.JOB_STATUS,
    CandCol.FULL_NAME,
    CandCol.JOB_ID,
    CandCol.CREATED,
    CandCol.HIRED_DATE,
)

# Link columns are rewritten as hyperlinks, never diffed as text
LINK_FIELDS = (CandCol.RESUME, CandCol.LINKEDIN)

LINK_LABELS = {
    CandCol.RESUME: "Resume",
    CandCol.LINKEDIN: "LinkedIn Profile",
}


def default_headers(kind: TableKind) -> list:
    """Header row used when a table is created from scratch, in column order."""
    cls = {TableKind.REQUISITION: ReqCol, TableKind.CANDIDATE: CandCol, TableKind.ACTIVE: ActCol}[kind]
    return [value for name, value in vars(cls).items() if name.isupper()]
