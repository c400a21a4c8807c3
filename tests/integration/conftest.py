"""
Integration test configuration and fixtures.

Integration tests run the repository, reaper and application wiring
together over the in-memory storage engine.
"""
import os
from unittest.mock import patch

import pytest

from kvsession.config.settings import Settings, clear_settings_cache


@pytest.fixture
def make_settings():
    """Build Settings from an explicit environment, ignoring .env files."""
    def _make(**env) -> Settings:
        env_vars = {key.upper(): str(value) for key, value in env.items()}
        with patch.dict(os.environ, env_vars, clear=True):
            return Settings(_env_file=None)
    yield _make
    clear_settings_cache()
