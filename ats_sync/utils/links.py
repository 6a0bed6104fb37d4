"""
URL helpers for link columns (resume, LinkedIn, email, phone).
"""
import re
import logging
from typing import Any, Optional

from ats_sync.models.cells import Hyperlink

logger = logging.getLogger(__name__)

_ALLOWED_LINK_RE = re.compile(r"^(https?://.+|mailto:.+|tel:.+)", re.IGNORECASE)
_HTTP_RE = re.compile(r"^https?://", re.IGNORECASE)
_BARE_RE = re.compile(r"^(www\.|linkedin\.com/)", re.IGNORECASE)


def normalize_url(raw: Any) -> str:
    """Prefix https:// onto bare www. and linkedin.com/ URLs."""
    s = ("" if raw is None else str(raw)).strip()
    if s and _BARE_RE.match(s):
        return "https://" + s
    return s


def extract_url(value: Any) -> str:
    """URL held by a cell: the hyperlink target or a URL-looking text value."""
    if isinstance(value, Hyperlink):
        return normalize_url(value.url)
    if isinstance(value, str):
        text = value.strip()
        if _HTTP_RE.match(text) or _BARE_RE.match(text):
            return normalize_url(text)
    return ""


def make_hyperlink(url: Any, label: str) -> Optional[Hyperlink]:
    """Build a link cell; only http(s), mailto and tel targets are accepted."""
    u = normalize_url(url)
    if not u:
        return None
    if not _ALLOWED_LINK_RE.match(u):
        logger.warning(f"Invalid URL format, skipping hyperlink | url={u}")
        return None
    return Hyperlink(url=u, label=label)
