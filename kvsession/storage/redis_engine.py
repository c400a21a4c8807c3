"""
Redis-based storage engine.

Layout for a bucket ``b``:

- ``b:obj:<key>``: the stored value
- ``b:meta:<key>``: hash of index name to the key's current index value
- ``b:idx:<index>``: sorted set with every member at score 0, holding
  ``<index value>\\x00<key>`` so ZRANGEBYLEX answers index range queries

Writes and deletes update all three structures in one MULTI/EXEC block,
watching the meta hash so a concurrent write to the same key cannot leave
a stale index entry behind.
"""

import logging
from typing import Optional

from kvsession.errors.exceptions import NotFoundError, StorageError, storage_error
from kvsession.storage.engine import StorageEngine, StoredObject

logger = logging.getLogger(__name__)

MEMBER_SEPARATOR = b"\x00"


def _to_bytes(value) -> bytes:
    if isinstance(value, bytes):
        return value
    return str(value).encode("utf-8")


class RedisStorageEngine(StorageEngine):
    """
    Storage engine backed by Redis through the redis.asyncio client.

    Attributes:
        redis_url: Redis connection URL (e.g., "redis://localhost:6379/0")
        client: Redis async client instance (initialized via connect()
            unless one was injected)
    """

    def __init__(self, redis_url: Optional[str] = None, client=None):
        """
        Initialize the Redis storage engine.

        Args:
            redis_url: Redis connection URL, used when no client is injected.
            client: Optional pre-built redis.asyncio client. An injected client
                is not closed by disconnect().
        """
        if redis_url is None and client is None:
            raise ValueError("RedisStorageEngine requires a redis_url or a client")
        self.redis_url = redis_url
        self.client = client
        self._owns_client = client is None

    async def connect(self) -> None:
        """
        Establish the connection to Redis.

        Must be called before any other method unless a client was injected.
        """
        if self.client is None:
            import redis.asyncio as redis
            self.client = redis.from_url(self.redis_url, decode_responses=False)
            self._owns_client = True
            logger.info("Redis storage engine connected", extra={
                "extra_data": {"redis_url": self.redis_url}
            })

    async def disconnect(self) -> None:
        """Close the Redis connection if this engine created it."""
        if self.client is not None and self._owns_client:
            await self.client.aclose()
            self.client = None

    def _require_client(self):
        if self.client is None:
            raise StorageError("Redis client not connected. Call connect() first.")
        return self.client

    @staticmethod
    def _object_key(bucket: str, key: str) -> str:
        return f"{bucket}:obj:{key}"

    @staticmethod
    def _meta_key(bucket: str, key: str) -> str:
        return f"{bucket}:meta:{key}"

    @staticmethod
    def _index_key(bucket: str, index: str) -> str:
        return f"{bucket}:idx:{index}"

    @staticmethod
    def _member(index_value, key: str) -> bytes:
        return _to_bytes(index_value) + MEMBER_SEPARATOR + key.encode("utf-8")

    async def get(self, bucket: str, key: str) -> StoredObject:
        from redis.exceptions import RedisError

        client = self._require_client()
        try:
            value = await client.get(self._object_key(bucket, key))
            if value is None:
                raise NotFoundError(details={"bucket": bucket, "key": key})
            meta = await client.hgetall(self._meta_key(bucket, key))
        except RedisError as e:
            raise storage_error(f"Redis GET failed: {e}", e, {"bucket": bucket, "key": key}) from e

        indexes = {
            _to_bytes(name).decode("utf-8"): _to_bytes(index_value).decode("utf-8")
            for name, index_value in meta.items()
        }
        return StoredObject(value=_to_bytes(value), metadata={"indexes": indexes})

    async def put(
        self,
        bucket: str,
        key: str,
        value: bytes,
        indexes: Optional[dict[str, str]] = None
    ) -> None:
        from redis.exceptions import RedisError, WatchError

        client = self._require_client()
        indexes = indexes or {}
        meta_key = self._meta_key(bucket, key)

        try:
            async with client.pipeline(transaction=True) as pipe:
                while True:
                    try:
                        await pipe.watch(meta_key)
                        previous = await pipe.hgetall(meta_key)

                        pipe.multi()
                        for name, old_value in previous.items():
                            index_name = _to_bytes(name).decode("utf-8")
                            pipe.zrem(self._index_key(bucket, index_name), self._member(old_value, key))
                        pipe.delete(meta_key)
                        pipe.set(self._object_key(bucket, key), value)
                        for name, index_value in indexes.items():
                            pipe.zadd(self._index_key(bucket, name), {self._member(index_value, key): 0})
                        if indexes:
                            pipe.hset(meta_key, mapping=indexes)
                        await pipe.execute()
                        return
                    except WatchError:
                        logger.debug("Concurrent write detected, retrying transaction", extra={
                            "extra_data": {"bucket": bucket, "key": key}
                        })
        except RedisError as e:
            raise storage_error(f"Redis PUT failed: {e}", e, {"bucket": bucket, "key": key}) from e

    async def delete(self, bucket: str, key: str) -> None:
        from redis.exceptions import RedisError, WatchError

        client = self._require_client()
        meta_key = self._meta_key(bucket, key)

        try:
            async with client.pipeline(transaction=True) as pipe:
                while True:
                    try:
                        await pipe.watch(meta_key)
                        previous = await pipe.hgetall(meta_key)

                        pipe.multi()
                        for name, old_value in previous.items():
                            index_name = _to_bytes(name).decode("utf-8")
                            pipe.zrem(self._index_key(bucket, index_name), self._member(old_value, key))
                        pipe.delete(meta_key, self._object_key(bucket, key))
                        await pipe.execute()
                        return
                    except WatchError:
                        logger.debug("Concurrent write detected, retrying transaction", extra={
                            "extra_data": {"bucket": bucket, "key": key}
                        })
        except RedisError as e:
            raise storage_error(f"Redis DELETE failed: {e}", e, {"bucket": bucket, "key": key}) from e

    async def index_range_query(
        self,
        bucket: str,
        index: str,
        start: str,
        end: str
    ) -> list[Optional[str]]:
        from redis.exceptions import RedisError

        client = self._require_client()
        # Members are "<value>\x00<key>"; "(<end>\x01" admits every member
        # whose value equals end.
        lower = b"[" + _to_bytes(start)
        upper = b"(" + _to_bytes(end) + b"\x01"

        try:
            members = await client.zrangebylex(self._index_key(bucket, index), lower, upper)
            keys = [
                _to_bytes(member).partition(MEMBER_SEPARATOR)[2].decode("utf-8")
                for member in members
            ]
            if not keys:
                return []

            async with client.pipeline(transaction=False) as pipe:
                for key in keys:
                    pipe.exists(self._object_key(bucket, key))
                present = await pipe.execute()
        except RedisError as e:
            raise storage_error(
                f"Redis index query failed: {e}", e, {"bucket": bucket, "index": index}
            ) from e

        return [key if exists else None for key, exists in zip(keys, present)]

    async def ping(self) -> bool:
        """
        Check Redis connectivity.

        Returns:
            True if Redis answered PING, False otherwise. Never raises.
        """
        if self.client is None:
            return False

        try:
            result = await self.client.ping()
            return result is True
        except Exception:
            return False
