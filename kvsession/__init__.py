"""
kvsession: session persistence in a key-value store with an expiration
index, and a periodic reaper that removes expired sessions.
"""

from kvsession.session import (
    Reaper,
    SessionRecord,
    SessionRepository,
    SessionStore,
)

__version__ = "1.0.0"

__all__ = ["Reaper", "SessionRecord", "SessionRepository", "SessionStore", "__version__"]
