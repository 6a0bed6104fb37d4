"""
Configuration module for the ATS sync engine.
Centralizes environment variables, logging setup, and constants.
"""
import os
import logging
from dotenv import load_dotenv

# Load .env file for local development
load_dotenv()

# ============================================================================
# Environment Configuration
# ============================================================================

# Environment identifier (production, staging, development, etc.)
ENVIRONMENT = os.environ.get("ENVIRONMENT", "production")

# Version reported by the health endpoint
ATS_VERSION = "1.0.0"

# ============================================================================
# Storage Configuration
# ============================================================================

# "postgres" stores tables and sync state in PostgreSQL, "memory" keeps them in-process
STORAGE_BACKEND = os.environ.get("ATS_STORAGE_BACKEND", "postgres").strip().lower()

# Only required when STORAGE_BACKEND == "postgres" (checked when the pool is created)
DATABASE_URL = os.environ.get("DATABASE_URL")

# Must match the spreadsheet's own timezone
TIMEZONE = os.environ.get("ATS_TIMEZONE", "America/New_York")

# ============================================================================
# Logging Configuration
# ============================================================================

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

logging.basicConfig(
    level=getattr(logging, LOG_LEVEL, logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

# ============================================================================
# Sheet Names
# ============================================================================

SHEET_REQUISITIONS = "Requisitions"
SHEET_ALL = "Candidate Database"
SHEET_ACTIVE = "Active Candidates"
SHEET_SYS_LOG = "SYS_LOGS"
SHEET_SETTINGS = "Settings"

# How many rows to scan to find the header row
MAX_HEADER_SEARCH_ROWS = 20

# ============================================================================
# Timing Constants (seconds)
# ============================================================================

# Ephemeral cache TTLs
CACHE_TTL_SHORT = 15        # Recent edit guard window
CACHE_TTL_MUTATION = 120    # Header map, etc.

# Lock timeouts
LOCK_TIMEOUT_SECONDS = float(os.environ.get("ATS_LOCK_TIMEOUT_SECONDS", "5"))
LOCK_TIMEOUT_LONG_SECONDS = float(os.environ.get("ATS_LOCK_TIMEOUT_LONG_SECONDS", "8"))
LOCK_TIMEOUT_STRUCTURAL_SECONDS = 2.0
QUEUE_LOCK_TIMEOUT_SECONDS = 2.0

# Debounce delays
DEBOUNCE_RECONCILE_SECONDS = float(os.environ.get("ATS_DEBOUNCE_RECONCILE_SECONDS", "5"))
DEBOUNCE_LINK_HYGIENE_SECONDS = float(os.environ.get("ATS_DEBOUNCE_LINK_HYGIENE_SECONDS", "3"))

# Link hygiene is not rescheduled if it was scheduled less than this long ago
LINK_HYGIENE_RESCHEDULE_WINDOW_SECONDS = 2.0

# Untracked reconcile triggers older than this are considered stuck
STALE_TRIGGER_SECONDS = 5 * 60

# ============================================================================
# Validation Limits
# ============================================================================

PHONE_MIN_DIGITS = 10
PHONE_MAX_DIGITS = 15

# ============================================================================
# Durable State Keys
# ============================================================================

PROP_QUEUE_JOBIDS = "ATS:queue:jobIds"
PROP_QUEUE_SCHEDULED = "ATS:queue:scheduled"
PROP_LINK_SCHEDULED = "ATS:queue:link:scheduled"
PROP_JOBSEQ_PREFIX = "ATS:jobseq:"
PROP_SETTINGS_HASH = "ATS:settings:hash"
PROP_LINK_DIRTY_PREFIX = "ATS:linkdirty:"
PROP_RECURSION_GUARD = "recursion:guard"

# Sentinel persisted in the queue when a full-table reconcile is pending
QUEUE_ALL_SENTINEL = "all"

# Scheduler handler names
HANDLER_DEBOUNCED_RECONCILE = "debounced_reconcile"
HANDLER_DEBOUNCED_LINK_HYGIENE = "debounced_link_hygiene"

# ============================================================================
# Application Constants
# ============================================================================

SOURCE_FORM = "Career Site (Form)"
SOURCE_IMPORT = "Resume Import"
REJECTED_REASON_HIRED_OTHER = "Hired a Different Candidate"
