"""
Storage engine adapters for session persistence.

The repository and the reaper only talk to the StorageEngine interface;
RedisStorageEngine serves production deployments and MemoryStorageEngine
serves development and tests.
"""

from kvsession.storage.engine import StorageEngine, StoredObject
from kvsession.storage.memory_engine import MemoryStorageEngine
from kvsession.storage.redis_engine import RedisStorageEngine

__all__ = ["StorageEngine", "StoredObject", "MemoryStorageEngine", "RedisStorageEngine"]
