"""
Notification service - user-facing messages and the SYS_LOGS audit trail.

Neither notify() nor audit() raises: a broken sink must never abort the
sync operation that produced the message.
"""
import json
import logging
from collections import deque
from datetime import datetime
from typing import Any, Callable, Deque, Dict, List, Optional

from ats_sync.config import SHEET_SYS_LOG
from ats_sync.models import Notification, Severity
from ats_sync.repositories import Workbook
from ats_sync.utils import now_local

logger = logging.getLogger(__name__)

LOG_HEADERS = ["Timestamp", "Level", "Message"]

_LOG_LEVELS = {
    Severity.INFO: logging.INFO,
    Severity.WARNING: logging.WARNING,
    Severity.ERROR: logging.ERROR,
}


class NotificationService:
    """Collects toasts for the UI and appends audit rows to SYS_LOGS."""

    def __init__(
        self,
        workbook: Workbook,
        clock: Callable[[], datetime] = now_local,
        keep: int = 100,
    ):
        self.workbook = workbook
        self.clock = clock
        self._recent: Deque[Notification] = deque(maxlen=keep)

    async def notify(
        self,
        message: str,
        severity: Severity = Severity.INFO,
        title: Optional[str] = None,
    ) -> Notification:
        """Record a user-facing notification and mirror it to the audit trail."""
        notification = Notification(
            message=message,
            severity=severity,
            title=title,
            created_at=self.clock(),
        )
        self._recent.append(notification)
        logger.log(
            _LOG_LEVELS.get(severity, logging.INFO),
            f"Notification | title={title or '-'} message={message!r}"
        )
        await self.audit(severity.value.upper(), message, {"title": title} if title else None)
        return notification

    def recent(self, limit: int = 20) -> List[Notification]:
        """Most recent notifications, newest last."""
        items = list(self._recent)
        return items[-limit:]

    async def ensure_log_table(self) -> None:
        """Create SYS_LOGS with its header row if it is missing."""
        try:
            if await self.workbook.get_table(SHEET_SYS_LOG) is None:
                table = await self.workbook.create_table(SHEET_SYS_LOG)
                await table.write_range(1, 1, [LOG_HEADERS])
                logger.info(f"Created audit table | sheet={SHEET_SYS_LOG}")
        except Exception as e:
            logger.warning(f"Failed to create audit table | error={e}")

    async def audit(self, level: str, message: str, context: Optional[Dict[str, Any]] = None) -> None:
        """Append [timestamp, level, message] to SYS_LOGS when that table exists."""
        try:
            table = await self.workbook.get_table(SHEET_SYS_LOG)
            if table is None:
                return
            text = message
            if context:
                text = f"{message} | {json.dumps(context, default=str)}"
            last_row = await table.get_last_row()
            if last_row == 0:
                await table.write_range(1, 1, [LOG_HEADERS])
                last_row = 1
            await table.write_range(last_row + 1, 1, [[self.clock(), level, text]])
        except Exception as e:
            logger.warning(f"Failed to write audit log | level={level} error={e}")
