"""
Domain exceptions and error handlers for consistent error responses.

Every failure of the deployment core surfaces as one of the taxonomy values
below. The global handlers turn them into the standard
``{"error_code", "message", "details"}`` body.
"""

import logging

from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from typing import Any, Dict, Iterable, Optional

logger = logging.getLogger(__name__)


class AppException(Exception):
    """Base application exception."""

    def __init__(self, message: str, error_code: str, status_code: int = 500, details: Dict[str, Any] = None):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


class ValidationError(AppException):
    """Malformed input: bad window, missing or out-of-range field."""

    def __init__(self, message: str, field: Optional[str] = None, details: Dict[str, Any] = None):
        payload = {"field": field}
        payload.update(details or {})
        super().__init__(
            message=message,
            error_code="ERR_VALIDATION_001",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            details=payload
        )


class ConflictError(AppException):
    """Raised when a requested window overlaps an active reservation."""

    def __init__(self, pool: str, resource_id: Any, conflicting_id: str, message: Optional[str] = None):
        self.pool = pool
        self.resource_id = resource_id
        self.conflicting_id = conflicting_id
        super().__init__(
            message=message or f"{pool} conflict for resource {resource_id}: overlaps {conflicting_id}",
            error_code="ERR_CONFLICT_001",
            status_code=status.HTTP_409_CONFLICT,
            details={
                "pool": pool,
                "resource_id": resource_id,
                "conflicting_id": conflicting_id
            }
        )


class InvalidTransitionError(AppException):
    """Raised when a status change is not in the transition table."""

    def __init__(self, entity: str, current_status: str, requested_status: str):
        self.current_status = current_status
        self.requested_status = requested_status
        super().__init__(
            message=f"Cannot transition {entity} from {current_status} to {requested_status}",
            error_code="ERR_TRANSITION_001",
            status_code=status.HTTP_409_CONFLICT,
            details={
                "entity": entity,
                "current_status": current_status,
                "requested_status": requested_status
            }
        )


class InvalidStateError(AppException):
    """Raised when an operation is not permitted in the current state."""

    def __init__(self, message: str, current_status: Optional[str] = None, details: Dict[str, Any] = None):
        self.current_status = current_status
        payload = {"current_status": current_status}
        payload.update(details or {})
        super().__init__(
            message=message,
            error_code="ERR_STATE_001",
            status_code=status.HTTP_409_CONFLICT,
            details=payload
        )


class NotFoundError(AppException):
    """Raised when a referenced vehicle, pilot or record is absent."""

    def __init__(self, resource: str, resource_id: Any = None, message: Optional[str] = None):
        if message is None:
            message = f"{resource} not found"
            if resource_id is not None:
                message = f"{resource} with ID {resource_id} not found"
        super().__init__(
            message=message,
            error_code="ERR_NOT_FOUND_001",
            status_code=status.HTTP_404_NOT_FOUND,
            details={"resource": resource, "id": resource_id}
        )


class ResourceBusyError(AppException):
    """Raised when a resource lock could not be acquired in time."""

    def __init__(self, keys: Iterable[str]):
        keys = list(keys)
        super().__init__(
            message=f"Resource busy, retry later: {', '.join(keys)}",
            error_code="ERR_LOCK_001",
            status_code=status.HTTP_409_CONFLICT,
            details={"resources": keys}
        )


# Global Exception Handlers

HTTP_ERROR_CODES = {
    400: "ERR_BAD_REQUEST",
    404: "ERR_NOT_FOUND",
    405: "ERR_METHOD_NOT_ALLOWED",
    409: "ERR_CONFLICT",
    500: "ERR_INTERNAL_SERVER",
}


def error_response(status_code: int, error_code: str, message: str, details: Dict[str, Any] = None) -> JSONResponse:
    """Build the ``{error_code, message, details}`` body every failure uses."""
    return JSONResponse(
        status_code=status_code,
        content={"error_code": error_code, "message": message, "details": details or {}}
    )


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Handler for custom application exceptions."""
    if exc.status_code == status.HTTP_409_CONFLICT:
        logger.info("%s on %s: %s", exc.error_code, request.url.path, exc.message)
    return error_response(exc.status_code, exc.error_code, exc.message, exc.details)


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handler for FastAPI HTTPException, mapped onto the same body."""
    error_code = HTTP_ERROR_CODES.get(exc.status_code, "ERR_UNKNOWN")
    return error_response(exc.status_code, error_code, exc.detail)


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handler for request schema errors."""
    return error_response(
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        "ERR_VALIDATION",
        "Request body failed schema validation",
        {"errors": jsonable_errors(exc)}
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handler for unhandled exceptions."""
    logger.error(
        "Unhandled exception on %s: %s: %s",
        request.url.path, type(exc).__name__, exc,
        exc_info=exc
    )
    return error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "ERR_INTERNAL_SERVER",
        "An internal server error occurred"
    )


def jsonable_errors(exc: RequestValidationError) -> list:
    """Strip non-serialisable ``ctx`` values pydantic attaches to errors."""
    errors = []
    for error in exc.errors():
        error = dict(error)
        if "ctx" in error:
            error["ctx"] = {k: str(v) for k, v in error["ctx"].items()}
        errors.append(error)
    return errors
