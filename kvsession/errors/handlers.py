"""
Exception handlers for FastAPI hosts of the session store.

A session read/write failure bubbles up from a request handler as a
SessionStoreException; these handlers convert it into a structured JSON
response. Unexpected exceptions are logged with their stack trace and
answered with a generic error that exposes no internal details.
"""

import logging
import traceback
import uuid
from typing import Any, Optional

from fastapi import Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from kvsession.errors.codes import ErrorCode
from kvsession.errors.exceptions import SessionStoreException

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


class ErrorResponse(BaseModel):
    """
    Structured error response model.

    All error responses follow this format so clients can handle
    session store failures programmatically.
    """
    error_code: str
    message: str
    details: Optional[dict[str, Any]] = None
    request_id: str


def get_request_id(request: Request) -> str:
    """
    Get the request ID for an error response.

    Looks at request.state first (set by the host's middleware), then the
    X-Request-ID header, and finally generates a new UUID.

    Args:
        request: The FastAPI request object

    Returns:
        The request ID string
    """
    if hasattr(request.state, "request_id"):
        return request.state.request_id

    header_value = request.headers.get(REQUEST_ID_HEADER) if request.headers else None
    if header_value:
        return header_value

    return str(uuid.uuid4())


async def handle_session_store_exception(
    request: Request,
    exc: SessionStoreException
) -> JSONResponse:
    """
    Handle session store exceptions and convert them to a structured response.

    Args:
        request: The FastAPI request object
        exc: The SessionStoreException that was raised

    Returns:
        JSONResponse with structured error format
    """
    request_id = get_request_id(request)

    logger.warning(
        "Session store error occurred",
        extra={
            "extra_data": {
                "error_code": exc.error_code.value,
                "error_message": exc.message,
                "status_code": exc.status_code,
                "details": exc.details,
                "request_id": request_id,
                "path": request.url.path,
                "method": request.method,
            }
        }
    )

    error_response = ErrorResponse(
        error_code=exc.error_code.value,
        message=exc.message,
        details=exc.details,
        request_id=request_id,
    )

    return JSONResponse(
        status_code=exc.status_code,
        content=error_response.model_dump(exclude_none=True),
    )


async def handle_unexpected_exception(request: Request, exc: Exception) -> JSONResponse:
    """
    Handle unexpected exceptions without exposing internal details.

    Args:
        request: The FastAPI request object
        exc: The unexpected exception that was raised

    Returns:
        JSONResponse with a generic error message
    """
    request_id = get_request_id(request)

    logger.error(
        "Unexpected error occurred",
        extra={
            "extra_data": {
                "error_code": ErrorCode.INTERNAL_ERROR.value,
                "request_id": request_id,
                "path": request.url.path,
                "method": request.method,
                "exception_type": type(exc).__name__,
                "exception_message": str(exc),
                "stack_trace": traceback.format_exc(),
            }
        },
        exc_info=True,
    )

    error_response = ErrorResponse(
        error_code=ErrorCode.INTERNAL_ERROR.value,
        message="An unexpected error occurred. Please try again later.",
        details=None,  # Never expose internal details
        request_id=request_id,
    )

    return JSONResponse(
        status_code=500,
        content=error_response.model_dump(exclude_none=True),
    )


def register_exception_handlers(app) -> None:
    """
    Register the session store exception handlers with a FastAPI application.

    Args:
        app: The FastAPI application instance
    """
    app.add_exception_handler(SessionStoreException, handle_session_store_exception)
    app.add_exception_handler(Exception, handle_unexpected_exception)

    logger.info("Exception handlers registered successfully")
