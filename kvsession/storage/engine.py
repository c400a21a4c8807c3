"""
Storage engine abstraction for session persistence.

A storage engine is a bucketed key-value store that can attach secondary
index entries to a key and answer range queries over an index. Session
records are written through this interface by the repository, and expired
ones are found through it by the reaper.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional


@dataclass
class StoredObject:
    """
    A value read back from a storage engine.

    Attributes:
        value: The raw stored bytes
        metadata: Engine metadata, including the index entries of the key
    """
    value: bytes
    metadata: dict[str, Any] = field(default_factory=dict)


class StorageEngine(ABC):
    """
    Abstract base class for storage engine adapters.

    All methods are async so adapters can perform non-blocking I/O.
    Failures other than a missing key are raised as StorageError.
    """

    async def connect(self) -> None:
        """Open connections to the backing store. No-op by default."""

    async def disconnect(self) -> None:
        """Release connections to the backing store. No-op by default."""

    @abstractmethod
    async def get(self, bucket: str, key: str) -> StoredObject:
        """
        Fetch the value stored under a key.

        Raises:
            NotFoundError: If the key does not exist.
            StorageError: On any other failure.
        """

    @abstractmethod
    async def put(
        self,
        bucket: str,
        key: str,
        value: bytes,
        indexes: Optional[dict[str, str]] = None
    ) -> None:
        """
        Store a value, replacing the key's previous value and index entries.

        Args:
            bucket: Storage namespace
            key: Storage key
            value: Raw value to store
            indexes: Mapping of index name to index value; indexes absent
                from the mapping lose any entry they had for this key

        Raises:
            StorageError: If the write fails.
        """

    @abstractmethod
    async def delete(self, bucket: str, key: str) -> None:
        """
        Delete a key together with its index entries.

        Deleting a missing key is not an error.

        Raises:
            StorageError: If the delete fails.
        """

    @abstractmethod
    async def index_range_query(
        self,
        bucket: str,
        index: str,
        start: str,
        end: str
    ) -> list[Optional[str]]:
        """
        Return the keys whose index value lies within [start, end].

        Bounds are inclusive and compared lexicographically. Index entries
        whose object no longer exists are reported as None.

        Raises:
            StorageError: If the query fails.
        """

    @abstractmethod
    async def ping(self) -> bool:
        """
        Check connectivity to the backing store.

        This method should not raise; failures result in False.
        """
