"""
Record codec for session persistence.

Translates between SessionRecord objects and what the storage engine keeps:
a JSON value blob plus an expiration index key. Index keys are ISO-8601 UTC
timestamps with millisecond precision (``2024-01-15T10:30:00.000Z``), which
sort lexicographically in time order so the expiration index can be range
queried.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional, Tuple
from urllib.parse import quote, unquote

from kvsession.errors.exceptions import DecodeError, EncodeError

EXPIRE_INDEX = "expire_bin"

# Lower bound of every sweep; expirations before it are never reaped.
EPOCH_FLOOR = "1977-08-01T00:00:00.000Z"


@dataclass
class SessionRecord:
    """
    The stored unit of session state.

    Attributes:
        payload: Application session state, opaque to the store
        expires_at: Moment after which the record may be reaped, or None
    """
    payload: dict[str, Any] = field(default_factory=dict)
    expires_at: Optional[datetime] = None


def parse_expiration(value: Any) -> Optional[datetime]:
    """
    Interpret an expiration value as an aware UTC datetime.

    Accepts datetimes (naive ones are taken as UTC), ISO-8601 strings and
    epoch seconds. Returns None for anything absent or unparsable.
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None

    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            return parse_expiration(datetime.fromisoformat(text))
        except ValueError:
            return None

    return None


def format_index_key(moment: datetime) -> str:
    """Render a datetime as a sortable ISO-8601 UTC index key."""
    moment = parse_expiration(moment)
    # strftime("%Y") does not zero-pad years before 1000 on every platform
    return (
        f"{moment.year:04d}-{moment.month:02d}-{moment.day:02d}T"
        f"{moment.hour:02d}:{moment.minute:02d}:{moment.second:02d}."
        f"{moment.microsecond // 1000:03d}Z"
    )


def encode_key(session_id: str) -> str:
    """URL-encode a session ID for use as a storage key."""
    return quote(session_id, safe="")


def decode_key(storage_key: str) -> str:
    """Inverse of encode_key."""
    return unquote(storage_key)


def encode(record: SessionRecord) -> Tuple[bytes, Optional[str]]:
    """
    Encode a record into a storage value and an expiration index key.

    The index key is None when the record has no expiration.

    Raises:
        EncodeError: If the payload is not JSON-serializable.
    """
    expires_at = parse_expiration(record.expires_at)
    index_key = format_index_key(expires_at) if expires_at is not None else None

    document = {
        "payload": record.payload,
        "expires_at": index_key,
    }
    try:
        value = json.dumps(document, sort_keys=True, separators=(",", ":")).encode("utf-8")
    except (TypeError, ValueError) as e:
        raise EncodeError(
            "Session payload is not JSON-serializable",
            details={"cause": str(e)}
        ) from e
    return value, index_key


def decode(storage_value: Any) -> SessionRecord:
    """
    Decode a storage value back into a SessionRecord.

    Raises:
        DecodeError: If the value is not a well-formed session document.
    """
    if isinstance(storage_value, (bytes, bytearray)):
        try:
            storage_value = storage_value.decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecodeError("Stored session value is not valid UTF-8") from e

    if not isinstance(storage_value, str):
        raise DecodeError(
            "Stored session value has an unexpected type",
            details={"type": type(storage_value).__name__}
        )

    try:
        document = json.loads(storage_value)
    except ValueError as e:
        raise DecodeError("Stored session value is not valid JSON") from e

    if not isinstance(document, dict) or "payload" not in document:
        raise DecodeError("Stored session value is missing its payload")

    raw_expiration = document.get("expires_at")
    expires_at = parse_expiration(raw_expiration)
    if raw_expiration is not None and expires_at is None:
        raise DecodeError(
            "Stored session value has an invalid expiration",
            details={"expires_at": str(raw_expiration)}
        )

    return SessionRecord(payload=document["payload"], expires_at=expires_at)


def _is_not_found_marker(entry: Any) -> bool:
    if entry is None:
        return True
    if isinstance(entry, dict):
        return "not_found" in entry or "notfound" in entry
    if isinstance(entry, str):
        return not entry
    return False


def decode_index_result(raw_keys: Any) -> list[str]:
    """
    Turn a raw index range query result into the IDs eligible for removal.

    Not-found markers are dropped and duplicates removed, keeping the order
    of first appearance. Anything other than a list or tuple means there is
    nothing to reap.
    """
    if not isinstance(raw_keys, (list, tuple)):
        return []

    seen: set[str] = set()
    ids: list[str] = []
    for entry in raw_keys:
        # Map-phase rows come back as [key, ...]
        if isinstance(entry, (list, tuple)):
            entry = entry[0] if entry else None
        if isinstance(entry, bytes):
            entry = entry.decode("utf-8", errors="replace")
        if _is_not_found_marker(entry) or not isinstance(entry, str):
            continue

        session_id = decode_key(entry)
        if session_id in seen:
            continue
        seen.add(session_id)
        ids.append(session_id)

    return ids
