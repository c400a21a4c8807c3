"""
In-process storage engine.

Keeps objects and index entries in dictionaries. Intended for development
and tests: nothing is shared between processes and nothing survives a
restart.
"""

import asyncio
from typing import Optional

from kvsession.errors.exceptions import NotFoundError
from kvsession.storage.engine import StorageEngine, StoredObject


class MemoryStorageEngine(StorageEngine):
    """
    Dictionary-backed storage engine.

    Objects live in ``_objects[bucket][key]`` and index entries in
    ``_indexes[bucket][index][key] = index_value``, so every key has at most
    one entry per index.
    """

    def __init__(self):
        self._objects: dict[str, dict[str, bytes]] = {}
        self._indexes: dict[str, dict[str, dict[str, str]]] = {}
        self._lock = asyncio.Lock()

    async def get(self, bucket: str, key: str) -> StoredObject:
        async with self._lock:
            objects = self._objects.get(bucket, {})
            if key not in objects:
                raise NotFoundError(details={"bucket": bucket, "key": key})
            indexes = {
                name: entries[key]
                for name, entries in self._indexes.get(bucket, {}).items()
                if key in entries
            }
            return StoredObject(value=objects[key], metadata={"indexes": indexes})

    async def put(
        self,
        bucket: str,
        key: str,
        value: bytes,
        indexes: Optional[dict[str, str]] = None
    ) -> None:
        indexes = indexes or {}
        async with self._lock:
            self._objects.setdefault(bucket, {})[key] = value
            bucket_indexes = self._indexes.setdefault(bucket, {})
            for entries in bucket_indexes.values():
                entries.pop(key, None)
            for name, index_value in indexes.items():
                bucket_indexes.setdefault(name, {})[key] = index_value

    async def delete(self, bucket: str, key: str) -> None:
        async with self._lock:
            self._objects.get(bucket, {}).pop(key, None)
            for entries in self._indexes.get(bucket, {}).values():
                entries.pop(key, None)

    async def index_range_query(
        self,
        bucket: str,
        index: str,
        start: str,
        end: str
    ) -> list[Optional[str]]:
        async with self._lock:
            entries = self._indexes.get(bucket, {}).get(index, {})
            objects = self._objects.get(bucket, {})
            matches = sorted(
                (index_value, key)
                for key, index_value in entries.items()
                if start <= index_value <= end
            )
            return [key if key in objects else None for _, key in matches]

    async def ping(self) -> bool:
        return True

    def __len__(self) -> int:
        return sum(len(objects) for objects in self._objects.values())
