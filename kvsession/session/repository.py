"""
Session repository backed by a storage engine.

Implements the SessionStore capability set on top of any StorageEngine.
Every operation touches exactly one record's worth of engine state; there
is no caching, batching or internal retrying.
"""

import logging
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Optional

from kvsession.config.settings import DEFAULT_BUCKET, ExpirationPolicy
from kvsession.errors.exceptions import NotFoundError, SessionStoreException, storage_error
from kvsession.session import codec
from kvsession.session.codec import SessionRecord
from kvsession.session.store import SessionStore
from kvsession.storage.engine import StorageEngine

logger = logging.getLogger(__name__)

# Default TTL of 24 hours, applied only under the fixed_ttl policy
DEFAULT_SESSION_TTL = timedelta(hours=24)


class SessionRepository(SessionStore):
    """
    SessionStore implementation writing through a StorageEngine.

    Attributes:
        engine: The storage engine holding session records
        bucket: Storage namespace for session records
        expiration_policy: What set() does with records lacking an expiration
        default_ttl: TTL assigned under the fixed_ttl policy
    """

    def __init__(
        self,
        engine: StorageEngine,
        bucket: str = DEFAULT_BUCKET,
        expiration_policy: ExpirationPolicy = ExpirationPolicy.NONE,
        default_ttl: timedelta = DEFAULT_SESSION_TTL,
    ):
        self.engine = engine
        self.bucket = bucket
        self.expiration_policy = ExpirationPolicy(expiration_policy)
        self.default_ttl = default_ttl

    def _effective_expiration(self, record: SessionRecord) -> Optional[datetime]:
        expires_at = codec.parse_expiration(record.expires_at)
        if expires_at is not None:
            return expires_at
        if self.expiration_policy == ExpirationPolicy.FIXED_TTL:
            return datetime.now(timezone.utc) + self.default_ttl
        return None

    async def get(self, session_id: str) -> Optional[SessionRecord]:
        key = codec.encode_key(session_id)
        try:
            stored = await self.engine.get(self.bucket, key)
        except NotFoundError:
            return None
        except SessionStoreException:
            raise
        except Exception as e:
            raise storage_error(f"Failed to read session: {e}", e, {"session_id": session_id}) from e

        return codec.decode(stored.value)

    async def set(self, session_id: str, record: SessionRecord) -> None:
        expires_at = self._effective_expiration(record)
        if expires_at is None:
            logger.debug("Storing session without expiration index entry", extra={
                "extra_data": {"session_id": session_id, "policy": self.expiration_policy.value}
            })

        value, index_key = codec.encode(replace(record, expires_at=expires_at))
        indexes = {codec.EXPIRE_INDEX: index_key} if index_key is not None else {}

        try:
            await self.engine.put(self.bucket, codec.encode_key(session_id), value, indexes)
        except SessionStoreException:
            raise
        except Exception as e:
            raise storage_error(f"Failed to write session: {e}", e, {"session_id": session_id}) from e

    async def destroy(self, session_id: str) -> None:
        try:
            await self.engine.delete(self.bucket, codec.encode_key(session_id))
        except NotFoundError:
            return
        except SessionStoreException:
            raise
        except Exception as e:
            raise storage_error(f"Failed to delete session: {e}", e, {"session_id": session_id}) from e

    async def touch(self, session_id: str, expires_at: Optional[datetime]) -> bool:
        record = await self.get(session_id)
        if record is None:
            return False

        await self.set(session_id, replace(record, expires_at=expires_at))
        return True

    async def health_check(self) -> bool:
        try:
            return await self.engine.ping()
        except Exception:
            return False
