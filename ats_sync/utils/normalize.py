"""
Normalization helpers for identities, statuses and cell values.

Email normalization folds gmail aliases only: for gmail.com / googlemail.com
dots in the local part are dropped and a +tag suffix is removed. Other
domains are only lowercased and trimmed, so john@company.com and
john+tag@company.com stay different candidates.
"""
import re
import uuid
from datetime import date, datetime
from typing import Any, Dict, Iterable

from ats_sync.models.cells import cell_text
from ats_sync.models.enums import RequisitionStatus

GMAIL_DOMAINS = ("gmail.com", "googlemail.com")

EMPTY_KEY_PREFIX = "_EMPTY_KEY_"

_NUMERIC_RE = re.compile(r"^-?\d+(\.\d+)?$")
_NON_DIGIT_RE = re.compile(r"\D")

_STATUS_LOOKUP = {s.value.lower(): s.value for s in RequisitionStatus}


def is_blank(value: Any) -> bool:
    return value is None or value == "" or (isinstance(value, str) and not value.strip())


def normalize_email(raw: Any) -> str:
    """Lowercase and trim; fold gmail dots and +tags."""
    email = cell_text(raw).lower()
    if not email or "@" not in email:
        return email

    parts = email.split("@")
    if len(parts) != 2:
        return email

    local, domain = parts
    if domain in GMAIL_DOMAINS:
        local = local.replace(".", "").split("+")[0]
        return f"{local}@gmail.com"
    return email


def normalize_phone(raw: Any) -> str:
    """Digits only."""
    return _NON_DIGIT_RE.sub("", cell_text(raw))


def composite_key(job_id: Any, email: Any) -> str:
    """Identity of a candidate-for-a-job: 'jobId|normalizedEmail'.

    Two rows with neither a job ID nor an email never share a key.
    """
    jid = cell_text(job_id)
    em = normalize_email(email)
    if not jid and not em:
        return f"{EMPTY_KEY_PREFIX}{uuid.uuid4().hex}"
    return f"{jid}|{em}"


def job_id_from_key(key: str) -> str:
    return key.split("|", 1)[0]


def canonicalize_status(raw: Any) -> str:
    """Match the status vocabulary case-insensitively; pass anything else through capitalized."""
    s = cell_text(raw).lower()
    if not s:
        return ""
    known = _STATUS_LOOKUP.get(s)
    if known:
        return known
    return s[0].upper() + s[1:]


def _as_number(value: Any):
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    text = cell_text(value)
    if _NUMERIC_RE.match(text):
        return float(text)
    return None


def values_equal(a: Any, b: Any) -> bool:
    """Loose cell equality used for diff-based writes.

    Datetimes compare by instant, numeric-looking values by number,
    everything else by trimmed text. None and '' are equal.
    """
    if isinstance(a, datetime) and isinstance(b, datetime):
        return a == b
    if isinstance(a, date) and isinstance(b, date) and not isinstance(a, datetime) and not isinstance(b, datetime):
        return a == b
    na, nb = _as_number(a), _as_number(b)
    if na is not None and nb is not None:
        return na == nb
    return cell_text(a) == cell_text(b)


def diff_fields(desired: Dict[str, Any], current: Dict[str, Any], fields: Iterable[str]) -> Dict[str, Any]:
    """Subset of `desired` whose values differ from `current`."""
    out = {}
    for field in fields:
        src = desired.get(field)
        dst = current.get(field)
        if not values_equal(src, dst):
            out[field] = "" if src is None else src
    return out
