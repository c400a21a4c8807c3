"""
Error code catalog for the session persistence backend.

This module defines the error codes used by the session repository, the
reaper and the storage engine adapters. Each code maps to the HTTP status
code a host application returns when the error reaches a request handler.
"""

from enum import Enum


class ErrorCode(str, Enum):
    """
    Enumeration of all error codes used by kvsession.

    Codes fall into two groups:
    - CRUD path errors: surfaced to the caller of get/set/destroy
    - Reaper path errors: only ever logged, never surfaced
    """

    # CRUD path errors
    STORAGE_ERROR = "STORAGE_ERROR"
    """Storage engine transport or engine failure (HTTP 503)"""

    ENCODE_ERROR = "ENCODE_ERROR"
    """Session payload cannot be serialized to JSON (HTTP 500)"""

    DECODE_ERROR = "DECODE_ERROR"
    """Stored session value is malformed (HTTP 500)"""

    NOT_FOUND = "NOT_FOUND"
    """Storage key does not exist (HTTP 404, absorbed by the repository)"""

    # Reaper path errors
    QUERY_ERROR = "QUERY_ERROR"
    """Expiration index range query failed"""

    DELETE_ERROR = "DELETE_ERROR"
    """Deleting an expired session failed"""

    # Internal errors
    INTERNAL_ERROR = "INTERNAL_ERROR"
    """Unexpected server error (HTTP 500)"""


# Mapping of error codes to their default HTTP status codes
ERROR_CODE_STATUS_MAP: dict[ErrorCode, int] = {
    ErrorCode.STORAGE_ERROR: 503,
    ErrorCode.ENCODE_ERROR: 500,
    ErrorCode.DECODE_ERROR: 500,
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.QUERY_ERROR: 503,
    ErrorCode.DELETE_ERROR: 503,
    ErrorCode.INTERNAL_ERROR: 500,
}


def get_default_status_code(error_code: ErrorCode) -> int:
    """
    Get the default HTTP status code for an error code.

    Args:
        error_code: The error code to look up

    Returns:
        The default HTTP status code for the error code
    """
    return ERROR_CODE_STATUS_MAP.get(error_code, 500)
