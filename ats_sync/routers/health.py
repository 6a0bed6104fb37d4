"""
Health check router with storage connectivity verification.
"""
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from ats_sync.config import ATS_VERSION, STORAGE_BACKEND
from ats_sync.dependencies import get_sync_orchestrator
from ats_sync.models import TableKind
from ats_sync.workflows import SyncOrchestrator

router = APIRouter(tags=["Health"])


@router.get("/health")
async def health_check(orchestrator: SyncOrchestrator = Depends(get_sync_orchestrator)):
    """Health check endpoint with storage connectivity verification.

    Returns 200 if the service can read its tables.
    Returns 503 if the storage backend is unreachable.
    """
    try:
        tables = {
            kind.value: await orchestrator.headers.get_header_info(kind) is not None
            for kind in TableKind
        }
        return {
            "status": "healthy",
            "service": "ats-sync",
            "version": ATS_VERSION,
            "storage": STORAGE_BACKEND,
            "tables": tables,
        }
    except Exception as e:
        return JSONResponse(
            status_code=503,
            content={"status": "unhealthy", "service": "ats-sync", "storage": str(e)}
        )
