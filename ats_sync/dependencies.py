"""
FastAPI dependency injection factories.

Routers get the orchestrator (and through it every sync service) from here;
tests replace get_sync_orchestrator via app.dependency_overrides.
"""
from fastapi import Depends

from ats_sync.services import NotificationService
from ats_sync.workflows import SyncOrchestrator, get_orchestrator


# =============================================================================
# Orchestrator Dependencies
# =============================================================================

async def get_sync_orchestrator() -> SyncOrchestrator:
    """Get the SyncOrchestrator instance."""
    return await get_orchestrator()


# =============================================================================
# Service Dependencies
# =============================================================================

async def get_notification_service(
    orchestrator: SyncOrchestrator = Depends(get_sync_orchestrator)
) -> NotificationService:
    """Get a NotificationService instance."""
    return orchestrator.notifier
