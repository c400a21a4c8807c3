"""
Session lifecycle management.

This package provides the session store interface, the repository that
implements it on top of a storage engine, the record codec, and the reaper
that removes expired sessions under the control of an election guard.
"""

from kvsession.session.codec import SessionRecord
from kvsession.session.election import (
    ElectionGuard,
    LockFileElectionGuard,
    StaticElectionGuard,
    create_election_guard,
)
from kvsession.session.reaper import Reaper, ReaperState, SweepResult, SweepWindow
from kvsession.session.repository import DEFAULT_SESSION_TTL, SessionRepository
from kvsession.session.store import SessionStore

__all__ = [
    "SessionRecord",
    "SessionStore",
    "SessionRepository",
    "DEFAULT_SESSION_TTL",
    "Reaper",
    "ReaperState",
    "SweepResult",
    "SweepWindow",
    "ElectionGuard",
    "LockFileElectionGuard",
    "StaticElectionGuard",
    "create_election_guard",
]
