"""
Shared pytest fixtures and configuration for all tests.
"""
import os
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, AsyncMock

import pytest
from hypothesis import settings, Verbosity, Phase

from kvsession.config.settings import ExpirationPolicy
from kvsession.session.election import StaticElectionGuard
from kvsession.session.reaper import Reaper
from kvsession.session.repository import SessionRepository
from kvsession.storage.memory_engine import MemoryStorageEngine

# Default profile: balanced for local development
settings.register_profile(
    "default",
    max_examples=100,
    verbosity=Verbosity.normal,
    deadline=None,  # Disable deadline for async tests
    print_blob=True,
)

# CI profile: more thorough testing for continuous integration
settings.register_profile(
    "ci",
    max_examples=200,
    verbosity=Verbosity.verbose,
    deadline=None,
    print_blob=True,
    derandomize=True,
)

# Debug profile: minimal examples for quick debugging
settings.register_profile(
    "debug",
    max_examples=10,
    verbosity=Verbosity.verbose,
    deadline=None,
    print_blob=True,
    phases=[Phase.explicit, Phase.reuse, Phase.generate],  # Skip shrinking for speed
)

settings.load_profile(os.getenv("HYPOTHESIS_PROFILE", "default"))


BUCKET = "_sessions"


@pytest.fixture
def now() -> datetime:
    """Current UTC time."""
    return datetime.now(timezone.utc)


@pytest.fixture
def past(now) -> datetime:
    """One hour ago."""
    return now - timedelta(hours=1)


@pytest.fixture
def future(now) -> datetime:
    """One hour from now."""
    return now + timedelta(hours=1)


@pytest.fixture
def memory_engine() -> MemoryStorageEngine:
    """Fresh in-memory storage engine."""
    return MemoryStorageEngine()


@pytest.fixture
def repository(memory_engine) -> SessionRepository:
    """Repository over the in-memory engine with the 'none' expiration policy."""
    return SessionRepository(memory_engine, bucket=BUCKET, expiration_policy=ExpirationPolicy.NONE)


@pytest.fixture
def reaper(memory_engine) -> Reaper:
    """Eligible reaper over the in-memory engine with a short interval."""
    return Reaper(memory_engine, bucket=BUCKET, interval_ms=10, guard=StaticElectionGuard(True))


@pytest.fixture
def mock_redis() -> MagicMock:
    """Create a mock Redis client for unit tests."""
    mock = MagicMock()
    mock.get = AsyncMock(return_value=None)
    mock.hgetall = AsyncMock(return_value={})
    mock.zrangebylex = AsyncMock(return_value=[])
    mock.ping = AsyncMock(return_value=True)
    mock.aclose = AsyncMock()

    pipe = MagicMock()
    pipe.__aenter__.return_value = pipe
    pipe.__aexit__.return_value = False
    pipe.watch = AsyncMock()
    pipe.hgetall = AsyncMock(return_value={})
    pipe.execute = AsyncMock(return_value=[])
    mock.pipeline = MagicMock(return_value=pipe)
    mock.pipe = pipe
    return mock


@pytest.fixture
def sample_payload() -> dict:
    """Sample session payload for testing."""
    return {
        "user_id": "user-42",
        "cart": ["sku-1", "sku-2"],
        "cookie": {"path": "/", "httpOnly": True},
    }
