"""
Typed row records.

Each table row is read into one record type; field aliases are the sheet's
header names so a header -> value map validates directly. Columns without a
declared field (Priority, Zip Code, ...) are kept as pydantic extras.
"""
import logging
from datetime import date, datetime
from typing import Annotated, Any, Dict, Literal, Optional, Union
from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, TypeAdapter, ValidationError

from .cells import Hyperlink, cell_text
from .enums import TableKind
from .headers import ActCol, CandCol, ReqCol

logger = logging.getLogger(__name__)


def _coerce_text(value: Any) -> str:
    return cell_text(value)


def _coerce_date(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, Hyperlink):
        value = value.label
    if isinstance(value, str) and not value.strip():
        return None
    return value


def _keep_cell(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        return None
    return value


Text = Annotated[str, BeforeValidator(_coerce_text)]
DateCell = Annotated[Optional[Union[datetime, date, str, int, float]], BeforeValidator(_coerce_date)]
# Link columns hold whatever was typed; a date or number is kept as is
LinkCell = Annotated[Optional[Union[Hyperlink, datetime, date, str, int, float]], BeforeValidator(_keep_cell)]


class SheetRecord(BaseModel):
    """Base for all row records."""
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    row: int = 0


class RequisitionRecord(SheetRecord):
    kind: Literal["requisition"] = "requisition"

    job_id: Text = Field("", alias=ReqCol.JOB_ID)
    job_status: Text = Field("", alias=ReqCol.JOB_STATUS)
    job_title: Text = Field("", alias=ReqCol.JOB_TITLE)
    created_date: DateCell = Field(None, alias=ReqCol.CREATED)
    opened_date: DateCell = Field(None, alias=ReqCol.OPENED)
    on_hold_date: DateCell = Field(None, alias=ReqCol.ON_HOLD_DATE)
    closed_date: DateCell = Field(None, alias=ReqCol.CLOSED_DATE)
    hired_date: DateCell = Field(None, alias=ReqCol.HIRED_DATE)
    hired_candidate_name: Text = Field("", alias=ReqCol.HIRED_CANDIDATE_NAME)
    days_open: Text = Field("", alias=ReqCol.DAYS_OPEN)


class CandidateRecord(SheetRecord):
    kind: Literal["candidate"] = "candidate"

    full_name: Text = Field("", alias=CandCol.FULL_NAME)
    resume: LinkCell = Field(None, alias=CandCol.RESUME)
    linkedin: LinkCell = Field(None, alias=CandCol.LINKEDIN)
    phone: Text = Field("", alias=CandCol.PHONE)
    email: Text = Field("", alias=CandCol.EMAIL)
    city: Text = Field("", alias=CandCol.CITY)
    state: Text = Field("", alias=CandCol.STATE)
    job_id: Text = Field("", alias=CandCol.JOB_ID)
    job_status: Text = Field("", alias=CandCol.JOB_STATUS)
    job_title: Text = Field("", alias=CandCol.JOB_TITLE)
    stage: Text = Field("", alias=CandCol.STAGE)
    rejected_reason: Text = Field("", alias=CandCol.REJECTED_REASON)
    interview_notes: Text = Field("", alias=CandCol.INTERVIEW_NOTES)
    source: Text = Field("", alias=CandCol.SOURCE)
    created: DateCell = Field(None, alias=CandCol.CREATED)
    updated: DateCell = Field(None, alias=CandCol.UPDATED)
    hired_date: DateCell = Field(None, alias=CandCol.HIRED_DATE)


class ActiveCandidateRecord(SheetRecord):
    kind: Literal["active"] = "active"

    full_name: Text = Field("", alias=ActCol.FULL_NAME)
    job_id: Text = Field("", alias=ActCol.JOB_ID)
    job_status: Text = Field("", alias=ActCol.JOB_STATUS)
    job_title: Text = Field("", alias=ActCol.JOB_TITLE)
    stage: Text = Field("", alias=ActCol.STAGE)
    rejected_reason: Text = Field("", alias=ActCol.REJECTED_REASON)
    interview_notes: Text = Field("", alias=ActCol.INTERVIEW_NOTES)
    resume: LinkCell = Field(None, alias=ActCol.RESUME)
    linkedin: LinkCell = Field(None, alias=ActCol.LINKEDIN)
    phone: Text = Field("", alias=ActCol.PHONE)
    email: Text = Field("", alias=ActCol.EMAIL)
    city: Text = Field("", alias=ActCol.CITY)
    state: Text = Field("", alias=ActCol.STATE)


AnyRecord = Annotated[
    Union[RequisitionRecord, CandidateRecord, ActiveCandidateRecord],
    Field(discriminator="kind"),
]

_RECORDS = TypeAdapter(AnyRecord)


class HeaderInfo(BaseModel):
    """Where a table's header row is and which column holds each header.

    Columns are 1-based.
    """
    kind: TableKind
    sheet: str
    header_row: int
    data_start_row: int
    header_map: Dict[str, int] = Field(default_factory=dict)

    def column(self, header: str) -> Optional[int]:
        return self.header_map.get(header)

    def has(self, *headers: str) -> bool:
        return all(h in self.header_map for h in headers)

    def to_record(self, row: int, values: Dict[str, Any]) -> Optional[SheetRecord]:
        """
        Validate a header -> value map into this table's record type.

        Returns None (and logs) when the row cannot be read as a record.
        """
        data = {k: v for k, v in values.items() if k not in ("kind", "row")}
        data["row"] = row
        data["kind"] = self.kind.value
        try:
            return _RECORDS.validate_python(data)
        except ValidationError as e:
            logger.warning(
                f"Skipping unreadable row | sheet={self.sheet} row={row} errors={e.error_count()} error={e.errors()[0]['msg']}"
            )
            return None
