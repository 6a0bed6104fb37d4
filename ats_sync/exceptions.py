"""
Custom exception classes and error handling.

This module provides custom exceptions and utilities for consistent
error handling across the sync engine and its HTTP surface.
"""
from typing import Any, Dict, Optional
from fastapi import Request, status
from fastapi.responses import JSONResponse


class AtsSyncException(Exception):
    """Base exception for all sync-engine errors."""

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


class TableNotReadyError(AtsSyncException):
    """Raised when a table or one of its required columns cannot be found."""

    def __init__(self, sheet: str, missing: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        message = f"Table not ready: {sheet}"
        if missing:
            message += f" (missing '{missing}')"
        super().__init__(message, status.HTTP_409_CONFLICT, details)
        self.sheet = sheet
        self.missing = missing


class LockBusyError(AtsSyncException):
    """Raised when the document lock could not be acquired in time."""

    def __init__(self, operation: str, timeout: float):
        message = f"Skipped {operation}: lock busy after {timeout:g}s"
        super().__init__(message, status.HTTP_423_LOCKED, {"operation": operation, "timeout": timeout})
        self.operation = operation
        self.timeout = timeout


class ImportValidationError(AtsSyncException):
    """Raised when a user-invoked import is given a malformed payload.

    The message is meant to be shown to the user as-is.
    """

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, status.HTTP_400_BAD_REQUEST, details)


# =============================================================================
# Exception Handlers
# =============================================================================

async def ats_sync_exception_handler(request: Request, exc: AtsSyncException) -> JSONResponse:
    """Handle AtsSyncException instances."""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": exc.message,
            "details": exc.details
        }
    )


def register_exception_handlers(app):
    """
    Register all custom exception handlers with the FastAPI app.

    Call this during app initialization:
        from ats_sync.exceptions import register_exception_handlers
        register_exception_handlers(app)
    """
    app.add_exception_handler(AtsSyncException, ats_sync_exception_handler)
