"""
Cell value models.

A cell holds a plain value (text, number, date, datetime, bool, None) or a
Hyperlink. Validations are list rules attached to single cells.
"""
from typing import Any, Dict, List, Optional, Union
from datetime import date, datetime
from pydantic import BaseModel, ConfigDict, Field


class Hyperlink(BaseModel):
    """A clickable cell: target URL plus the text shown in the sheet."""
    model_config = ConfigDict(frozen=True)

    url: str
    label: str = ""

    def __str__(self) -> str:
        return self.label or self.url


class ListValidation(BaseModel):
    """Dropdown rule: the cell value must be one of `allowed`."""
    model_config = ConfigDict(frozen=True)

    allowed: List[str] = Field(default_factory=list)
    allow_invalid: bool = True


CellValue = Union[None, str, int, float, bool, date, datetime, Hyperlink]

# Opaque per-row formatting (background, font, number formats, ...)
RowFormat = Dict[str, Any]


def cell_text(value: Any) -> str:
    """Text shown in a cell: hyperlinks read as their label, None as ''."""
    if value is None:
        return ""
    if isinstance(value, Hyperlink):
        return value.label.strip()
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value).strip()


class TemplateFormat(BaseModel):
    """Row formatting captured before inserting a new data row.

    kind is "row" (copy from an existing data row), "saved" (formatting
    captured from the pre-formatted first data row of an empty table) or
    "none".
    """
    kind: str = "none"
    row: Optional[int] = None
    saved: Optional[RowFormat] = None
