"""
Business-day and clock utilities.

Business days are Mon-Fri minus the fixed US holiday calendar below. The
clock helpers return naive local datetimes in the configured timezone, the
way the sheet stores timestamps.
"""
from datetime import date, datetime, timedelta
from typing import Any, Optional
from zoneinfo import ZoneInfo

from ats_sync.config import TIMEZONE
from ats_sync.models.cells import Hyperlink


US_HOLIDAYS = frozenset(date.fromisoformat(d) for d in (
    # 2024
    "2024-01-01", "2024-01-15", "2024-02-19", "2024-05-27", "2024-07-04",
    "2024-09-02", "2024-10-14", "2024-11-11", "2024-11-28", "2024-12-25",
    # 2025
    "2025-01-01", "2025-01-20", "2025-02-17", "2025-05-26", "2025-07-04",
    "2025-09-01", "2025-10-13", "2025-11-11", "2025-11-27", "2025-12-25",
    # 2026 (Independence Day observed on Friday the 3rd)
    "2026-01-01", "2026-01-19", "2026-02-16", "2026-05-25", "2026-07-03",
    "2026-09-07", "2026-10-12", "2026-11-11", "2026-11-26", "2026-12-25",
    # 2027 (Independence Day observed Monday the 5th, Christmas Friday the 24th)
    "2027-01-01", "2027-01-18", "2027-02-15", "2027-05-31", "2027-07-05",
    "2027-09-06", "2027-10-11", "2027-11-11", "2027-11-25", "2027-12-24",
))

# Ranges longer than this use the full-week shortcut
_SHORT_RANGE_DAYS = 14


def now_local(tz_name: str = TIMEZONE) -> datetime:
    """Current wall-clock time in the sheet timezone, without tzinfo."""
    return datetime.now(ZoneInfo(tz_name)).replace(tzinfo=None, microsecond=0)


def to_date(value: Any) -> Optional[date]:
    """Coerce a cell value (date, datetime, ISO string) to a date, or None."""
    if value is None or value == "":
        return None
    if isinstance(value, Hyperlink):
        value = value.label
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if not text:
        return None
    try:
        return datetime.fromisoformat(text).date()
    except ValueError:
        pass
    for fmt in ("%m/%d/%Y", "%m/%d/%Y %H:%M:%S", "%m/%d/%y"):
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return None


def _is_weekday(d: date) -> bool:
    return d.weekday() < 5


def business_days_between(start: Any, end: Any) -> int:
    """
    Count business days in [start, end), excluding weekends and US holidays.

    Args:
        start: Opening date (date, datetime or ISO string)
        end: End boundary (exclusive)

    Returns:
        Number of business days, 0 when either bound is missing or end <= start
    """
    s, e = to_date(start), to_date(end)
    if s is None or e is None or e <= s:
        return 0

    total_days = (e - s).days

    if total_days > _SHORT_RANGE_DAYS:
        full_weeks, remaining_days = divmod(total_days, 7)
        count = full_weeks * 5

        remainder_start = s + timedelta(days=full_weeks * 7)
        for i in range(remaining_days):
            if _is_weekday(remainder_start + timedelta(days=i)):
                count += 1

        for holiday in US_HOLIDAYS:
            if s <= holiday < e and _is_weekday(holiday):
                count -= 1
        return count

    count = 0
    current = s
    while current < e:
        if _is_weekday(current) and current not in US_HOLIDAYS:
            count += 1
        current += timedelta(days=1)
    return count
