"""
Unit tests for the Redis storage engine.

The Redis client is mocked; tests check the commands issued and how
results and failures are translated.
"""

from unittest.mock import AsyncMock, MagicMock, call, patch

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError, WatchError

from kvsession.errors.exceptions import NotFoundError, StorageError
from kvsession.storage.redis_engine import RedisStorageEngine

BUCKET = "_sessions"
INDEX = "expire_bin"
EXPIRY = "2024-01-15T10:30:00.000Z"


@pytest.fixture
def engine(mock_redis) -> RedisStorageEngine:
    return RedisStorageEngine(client=mock_redis)


class TestConnection:
    """Tests for connection management."""

    def test_requires_url_or_client(self):
        with pytest.raises(ValueError):
            RedisStorageEngine()

    @pytest.mark.asyncio
    async def test_operations_require_connection(self):
        engine = RedisStorageEngine(redis_url="redis://localhost:6379/0")

        with pytest.raises(StorageError):
            await engine.get(BUCKET, "k")

    @pytest.mark.asyncio
    async def test_connect_builds_client_from_url(self, mock_redis):
        engine = RedisStorageEngine(redis_url="redis://localhost:6379/0")

        with patch("redis.asyncio.from_url", return_value=mock_redis) as from_url:
            await engine.connect()

        from_url.assert_called_once_with("redis://localhost:6379/0", decode_responses=False)
        assert engine.client is mock_redis

        await engine.disconnect()
        mock_redis.aclose.assert_awaited_once()
        assert engine.client is None

    @pytest.mark.asyncio
    async def test_injected_client_is_not_closed(self, engine, mock_redis):
        await engine.connect()
        await engine.disconnect()

        mock_redis.aclose.assert_not_called()
        assert engine.client is mock_redis


class TestGet:
    """Tests for get."""

    @pytest.mark.asyncio
    async def test_missing_key_raises_not_found(self, engine, mock_redis):
        mock_redis.get.return_value = None

        with pytest.raises(NotFoundError):
            await engine.get(BUCKET, "k")

        mock_redis.get.assert_awaited_once_with("_sessions:obj:k")

    @pytest.mark.asyncio
    async def test_returns_value_and_index_metadata(self, engine, mock_redis):
        mock_redis.get.return_value = b'{"payload":{}}'
        mock_redis.hgetall.return_value = {b"expire_bin": EXPIRY.encode()}

        stored = await engine.get(BUCKET, "k")

        assert stored.value == b'{"payload":{}}'
        assert stored.metadata == {"indexes": {INDEX: EXPIRY}}
        mock_redis.hgetall.assert_awaited_once_with("_sessions:meta:k")

    @pytest.mark.asyncio
    async def test_redis_errors_become_storage_errors(self, engine, mock_redis):
        mock_redis.get.side_effect = RedisConnectionError("refused")

        with pytest.raises(StorageError) as exc_info:
            await engine.get(BUCKET, "k")

        assert exc_info.value.details["cause"] == "ConnectionError"


class TestPut:
    """Tests for put."""

    @pytest.mark.asyncio
    async def test_put_replaces_previous_index_entry(self, engine, mock_redis):
        pipe = mock_redis.pipe
        pipe.hgetall.return_value = {b"expire_bin": b"2024-01-01T00:00:00.000Z"}

        await engine.put(BUCKET, "k", b"value", {INDEX: EXPIRY})

        pipe.watch.assert_awaited_once_with("_sessions:meta:k")
        pipe.multi.assert_called_once()
        pipe.zrem.assert_called_once_with(
            "_sessions:idx:expire_bin", b"2024-01-01T00:00:00.000Z\x00k"
        )
        pipe.set.assert_called_once_with("_sessions:obj:k", b"value")
        pipe.zadd.assert_called_once_with(
            "_sessions:idx:expire_bin", {EXPIRY.encode() + b"\x00k": 0}
        )
        pipe.hset.assert_called_once_with("_sessions:meta:k", mapping={INDEX: EXPIRY})
        pipe.execute.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_put_without_indexes_writes_no_entry(self, engine, mock_redis):
        pipe = mock_redis.pipe

        await engine.put(BUCKET, "k", b"value")

        pipe.zadd.assert_not_called()
        pipe.hset.assert_not_called()
        pipe.delete.assert_called_once_with("_sessions:meta:k")

    @pytest.mark.asyncio
    async def test_put_retries_after_concurrent_write(self, engine, mock_redis):
        pipe = mock_redis.pipe
        pipe.execute.side_effect = [WatchError("changed"), []]

        await engine.put(BUCKET, "k", b"value", {INDEX: EXPIRY})

        assert pipe.execute.await_count == 2
        assert pipe.watch.await_count == 2

    @pytest.mark.asyncio
    async def test_put_failure_raises_storage_error(self, engine, mock_redis):
        mock_redis.pipe.execute.side_effect = RedisConnectionError("gone")

        with pytest.raises(StorageError):
            await engine.put(BUCKET, "k", b"value", {INDEX: EXPIRY})


class TestDelete:
    """Tests for delete."""

    @pytest.mark.asyncio
    async def test_delete_removes_object_meta_and_index(self, engine, mock_redis):
        pipe = mock_redis.pipe
        pipe.hgetall.return_value = {b"expire_bin": EXPIRY.encode()}

        await engine.delete(BUCKET, "k")

        pipe.zrem.assert_called_once_with("_sessions:idx:expire_bin", EXPIRY.encode() + b"\x00k")
        pipe.delete.assert_called_once_with("_sessions:meta:k", "_sessions:obj:k")
        pipe.execute.assert_awaited_once()


class TestIndexRangeQuery:
    """Tests for index_range_query."""

    @pytest.mark.asyncio
    async def test_queries_lexicographic_range_and_marks_missing(self, engine, mock_redis):
        mock_redis.zrangebylex.return_value = [
            b"2024-01-01T00:00:00.000Z\x00a",
            b"2024-01-02T00:00:00.000Z\x00b",
        ]
        mock_redis.pipe.execute.return_value = [1, 0]

        keys = await engine.index_range_query(BUCKET, INDEX, "1977-08-01T00:00:00.000Z", EXPIRY)

        assert keys == ["a", None]
        mock_redis.zrangebylex.assert_awaited_once_with(
            "_sessions:idx:expire_bin",
            b"[1977-08-01T00:00:00.000Z",
            b"(" + EXPIRY.encode() + b"\x01",
        )
        mock_redis.pipe.exists.assert_has_calls([
            call("_sessions:obj:a"),
            call("_sessions:obj:b"),
        ])

    @pytest.mark.asyncio
    async def test_empty_range_skips_existence_check(self, engine, mock_redis):
        mock_redis.zrangebylex.return_value = []

        assert await engine.index_range_query(BUCKET, INDEX, "a", "b") == []
        mock_redis.pipeline.assert_not_called()

    @pytest.mark.asyncio
    async def test_query_failure_raises_storage_error(self, engine, mock_redis):
        mock_redis.zrangebylex.side_effect = RedisConnectionError("gone")

        with pytest.raises(StorageError):
            await engine.index_range_query(BUCKET, INDEX, "a", "b")


class TestPing:
    """Tests for ping."""

    @pytest.mark.asyncio
    async def test_ping_true(self, engine):
        assert await engine.ping() is True

    @pytest.mark.asyncio
    async def test_ping_failure_returns_false(self, engine, mock_redis):
        mock_redis.ping = AsyncMock(side_effect=RedisConnectionError("down"))
        assert await engine.ping() is False

    @pytest.mark.asyncio
    async def test_ping_without_client_returns_false(self):
        engine = RedisStorageEngine(redis_url="redis://localhost:6379/0")
        assert await engine.ping() is False
