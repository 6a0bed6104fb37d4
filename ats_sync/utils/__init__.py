"""
Utility modules for shared functionality.
"""
from .normalize import (
    cell_text,
    is_blank,
    normalize_email,
    normalize_phone,
    composite_key,
    job_id_from_key,
    canonicalize_status,
    values_equal,
    diff_fields,
)
from .business_days import (
    US_HOLIDAYS,
    business_days_between,
    now_local,
    to_date,
)
from .links import (
    normalize_url,
    extract_url,
    make_hyperlink,
)
from .ttl_cache import (
    TTLCache,
    MuteWindow,
)

__all__ = [
    "cell_text",
    "is_blank",
    "normalize_email",
    "normalize_phone",
    "composite_key",
    "job_id_from_key",
    "canonicalize_status",
    "values_equal",
    "diff_fields",
    "US_HOLIDAYS",
    "business_days_between",
    "now_local",
    "to_date",
    "normalize_url",
    "extract_url",
    "make_hyperlink",
    "TTLCache",
    "MuteWindow",
]
