"""
Workflows package - central orchestration of sync events.

This package provides:
- SyncOrchestrator: routes edit events, admin operations and scheduled workers
- get_orchestrator(): singleton accessor for the orchestrator
"""

from ats_sync.workflows.orchestrator import SyncOrchestrator, get_orchestrator, shutdown_orchestrator

__all__ = [
    "SyncOrchestrator",
    "get_orchestrator",
    "shutdown_orchestrator",
]
