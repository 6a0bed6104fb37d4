import os
import logging
from contextlib import asynccontextmanager
from dotenv import load_dotenv
load_dotenv()  # Load .env file for local development

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ats_sync.config import STORAGE_BACKEND
from ats_sync.database import close_db_pool
from ats_sync.exceptions import register_exception_handlers
from ats_sync.routers import health_router, sync_router
from ats_sync.workflows import get_orchestrator, shutdown_orchestrator

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle - wire the orchestrator on startup."""
    await get_orchestrator()
    logger.info(f"ATS sync started | storage={STORAGE_BACKEND}")
    yield
    # Cleanup on shutdown
    await shutdown_orchestrator()
    await close_db_pool()

app = FastAPI(lifespan=lifespan)

# CORS middleware for cross-origin requests from the spreadsheet front end
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Restrict in production
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["*"],
    allow_credentials=True,
)

register_exception_handlers(app)

app.include_router(health_router)
app.include_router(sync_router)


if __name__ == "__main__":
    import uvicorn
    # OperationLock is per process
    uvicorn.run(app, host="0.0.0.0", port=int(os.environ.get("PORT", 8080)), workers=1)
