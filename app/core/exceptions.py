"""
Dispatch error taxonomy.

Services raise these; the FastAPI handler registered in app.main renders
them as {"error": {"code", "message", "details"}} with the class status code.
"""

import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class DispatchError(Exception):
    """Base exception for all dispatch errors."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: str = "DISPATCH_ERROR"
    message: str = "Unexpected dispatch error"

    def __init__(
        self,
        message: Optional[str] = None,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        status_code: Optional[int] = None,
    ):
        self.message = message or self.message
        if code:
            self.code = code
        if status_code:
            self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details,
            }
        }


class ValidationError(DispatchError):
    """Missing/invalid input or an entity in the wrong state. No side effects."""
    status_code = status.HTTP_400_BAD_REQUEST
    code = "VALIDATION_ERROR"
    message = "Invalid request"


class NotFoundError(DispatchError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "NOT_FOUND"
    message = "Resource not found"

    def __init__(self, resource: str, resource_id: Any):
        super().__init__(
            message=f"{resource} with ID {resource_id} not found",
            code=f"{resource.upper().replace(' ', '_')}_NOT_FOUND",
            details={"resource": resource, "id": str(resource_id)},
        )


class CapacityExceededError(DispatchError):
    """The trip cannot absorb the order. Never retried automatically."""
    status_code = status.HTTP_409_CONFLICT
    code = "CAPACITY_EXCEEDED"
    message = "Trip capacity exceeded"


class ConflictError(DispatchError):
    """Concurrent or duplicate write. Safe for the caller to retry."""
    status_code = status.HTTP_409_CONFLICT
    code = "CONFLICT"
    message = "Conflicting update"


class IntegrityViolation(DispatchError):
    """Ledger drift found by reconciliation. Reported, never auto-repaired."""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "INTEGRITY_VIOLATION"
    message = "Ledger integrity violation"


async def dispatch_error_handler(request: Request, exc: DispatchError) -> JSONResponse:
    """Render a DispatchError with its status code."""
    if isinstance(exc, IntegrityViolation):
        logger.error(f"{exc.code} on {request.url.path}: {exc.message} {exc.details}")
    else:
        logger.info(f"{exc.code} on {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def register_exception_handlers(app: FastAPI) -> None:
    """Register the dispatch exception handler with the FastAPI app."""
    app.add_exception_handler(DispatchError, dispatch_error_handler)
