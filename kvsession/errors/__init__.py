"""
Error handling module for kvsession.

This module provides:
- ErrorCode enum for standardized error codes
- SessionStoreException and its taxonomy subclasses
- Error response model and FastAPI exception handlers
"""

from kvsession.errors.codes import ErrorCode
from kvsession.errors.exceptions import (
    DecodeError,
    EncodeError,
    DeleteError,
    NotFoundError,
    QueryError,
    SessionStoreException,
    StorageError,
)
from kvsession.errors.handlers import (
    ErrorResponse,
    handle_session_store_exception,
    handle_unexpected_exception,
    register_exception_handlers,
)

__all__ = [
    "ErrorCode",
    "SessionStoreException",
    "NotFoundError",
    "StorageError",
    "EncodeError",
    "DecodeError",
    "QueryError",
    "DeleteError",
    "ErrorResponse",
    "handle_session_store_exception",
    "handle_unexpected_exception",
    "register_exception_handlers",
]
