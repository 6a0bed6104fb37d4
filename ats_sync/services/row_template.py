"""
Formatting for rows appended below the data.

The template is captured before the insert: the last data row when the
table has data, otherwise the pre-formatted first data row of an empty table.
"""
import logging

from ats_sync.models import TemplateFormat
from ats_sync.repositories import RowIO

logger = logging.getLogger(__name__)


async def capture_template_format(io: RowIO) -> TemplateFormat:
    last_row = await io.table.get_last_row()
    if last_row >= io.info.data_start_row:
        return TemplateFormat(kind="row", row=last_row)

    if await io.table.get_max_rows() >= io.info.data_start_row:
        try:
            saved = await io.table.get_row_format(io.info.data_start_row)
            if saved:
                return TemplateFormat(kind="saved", saved=saved)
        except Exception as e:
            logger.warning(f"Failed to capture template formatting | sheet={io.sheet} error={e}")
    return TemplateFormat(kind="none")


async def apply_template_format(io: RowIO, template: TemplateFormat, dest_row: int) -> None:
    if template.kind == "none":
        return
    try:
        if template.kind == "row" and template.row is not None:
            fmt = await io.table.get_row_format(template.row)
            if fmt:
                await io.table.set_row_format(dest_row, fmt)
        elif template.kind == "saved" and template.saved:
            await io.table.set_row_format(dest_row, template.saved)
    except Exception as e:
        logger.warning(f"Failed to apply template formatting | sheet={io.sheet} row={dest_row} error={e}")
