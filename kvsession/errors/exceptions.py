"""
Exception classes for the session persistence backend.

SessionStoreException carries a structured error code, message, HTTP status
and optional details. The subclasses map one-to-one onto the error taxonomy:

- NotFoundError: raised by storage engines for a missing key; the repository
  turns it into a plain ``None`` result
- StorageError: transport or engine failure, propagated to CRUD callers
- DecodeError: a stored value could not be decoded, propagated from ``get``
- QueryError / DeleteError: reaper failures, logged and swallowed
"""

from typing import Any, Optional

from kvsession.errors.codes import ErrorCode, get_default_status_code


class SessionStoreException(Exception):
    """
    Base exception class for all kvsession errors.

    Example:
        raise SessionStoreException(
            error_code=ErrorCode.STORAGE_ERROR,
            message="Redis connection refused",
            details={"bucket": "_sessions", "key": "abc"}
        )
    """

    default_code: ErrorCode = ErrorCode.INTERNAL_ERROR
    default_message: str = "An unexpected error occurred"

    def __init__(
        self,
        message: Optional[str] = None,
        error_code: Optional[ErrorCode] = None,
        status_code: Optional[int] = None,
        details: Optional[dict[str, Any]] = None
    ):
        """
        Initialize a SessionStoreException.

        Args:
            message: A human-readable error message (defaults per subclass)
            error_code: The error code (defaults per subclass)
            status_code: The HTTP status code (defaults to the error code's default)
            details: Optional dictionary with additional error context
        """
        self.error_code = error_code or self.default_code
        self.message = message or self.default_message
        self.status_code = status_code or get_default_status_code(self.error_code)
        self.details = details
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """
        Convert the exception to a dictionary for JSON serialization.

        Returns:
            Dictionary containing error_code, message, and details
        """
        result = {
            "error_code": self.error_code.value,
            "message": self.message,
        }
        if self.details is not None:
            result["details"] = self.details
        return result

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(error_code={self.error_code.value!r}, "
            f"message={self.message!r}, status_code={self.status_code}, "
            f"details={self.details!r})"
        )


class NotFoundError(SessionStoreException):
    """The requested key does not exist in the storage engine."""

    default_code = ErrorCode.NOT_FOUND
    default_message = "Key not found"


class StorageError(SessionStoreException):
    """The storage engine failed to serve a request."""

    default_code = ErrorCode.STORAGE_ERROR
    default_message = "Session storage unavailable"


class EncodeError(SessionStoreException):
    """A session payload is not JSON-serializable."""

    default_code = ErrorCode.ENCODE_ERROR
    default_message = "Session payload could not be encoded"


class DecodeError(SessionStoreException):
    """A stored session value is malformed."""

    default_code = ErrorCode.DECODE_ERROR
    default_message = "Stored session value could not be decoded"


class QueryError(SessionStoreException):
    """The reaper's expiration index query failed."""

    default_code = ErrorCode.QUERY_ERROR
    default_message = "Expiration index query failed"


class DeleteError(SessionStoreException):
    """The reaper failed to delete an expired session."""

    default_code = ErrorCode.DELETE_ERROR
    default_message = "Failed to delete expired session"


def storage_error(
    message: str,
    cause: Optional[BaseException] = None,
    details: Optional[dict[str, Any]] = None
) -> StorageError:
    """Create a StorageError, recording the underlying exception type."""
    merged = dict(details or {})
    if cause is not None:
        merged.setdefault("cause", type(cause).__name__)
    return StorageError(message, details=merged or None)
