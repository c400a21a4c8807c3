"""
Session store abstraction consumed by session middleware.

This module defines the capability set a session middleware needs from a
persistence backend: get, set, destroy and touch a session by ID, plus a
health probe. It is a plain interface; implementations do not inherit from
any web framework.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional

from kvsession.session.codec import SessionRecord


class SessionStore(ABC):
    """
    Abstract base class for session storage implementations.

    All methods are async so a request handler suspends only for the
    duration of the underlying I/O.
    """

    @abstractmethod
    async def get(self, session_id: str) -> Optional[SessionRecord]:
        """
        Retrieve a session by ID.

        Args:
            session_id: Unique identifier for the session.

        Returns:
            The SessionRecord if found, None if the session does not exist.

        Raises:
            StorageError: If the underlying store fails.
            DecodeError: If the stored value is malformed.
        """

    @abstractmethod
    async def set(self, session_id: str, record: SessionRecord) -> None:
        """
        Store a session, indexing its expiration so it can be reaped.

        Args:
            session_id: Unique identifier for the session.
            record: The session payload and expiration.

        Raises:
            StorageError: If the underlying store fails.
        """

    @abstractmethod
    async def destroy(self, session_id: str) -> None:
        """
        Delete a session and its expiration index entry.

        This operation is idempotent - deleting a non-existent session
        does not raise an error.

        Raises:
            StorageError: If the underlying store fails.
        """

    @abstractmethod
    async def touch(self, session_id: str, expires_at: Optional[datetime]) -> bool:
        """
        Move the expiration of an existing session.

        Returns:
            True if the session exists and was updated, False otherwise.

        Raises:
            StorageError: If the underlying store fails.
        """

    @abstractmethod
    async def health_check(self) -> bool:
        """
        Check connectivity and health of the session store.

        Returns:
            True if the store is healthy and accessible, False otherwise.

        Note:
            This method should not raise exceptions - connectivity issues
            should be caught and result in a False return value.
        """
