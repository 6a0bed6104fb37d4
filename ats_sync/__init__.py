"""
ATS sync engine: keeps Requisitions, Candidate Database and Active Candidates consistent.
"""
from ats_sync.config import ATS_VERSION

__version__ = ATS_VERSION
