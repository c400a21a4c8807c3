# Configuration module for kvsession
from .settings import (
    ConfigurationError,
    Environment,
    ExpirationPolicy,
    ReaperRole,
    Settings,
    get_settings,
    validate_startup,
)

__all__ = [
    "ConfigurationError",
    "Environment",
    "ExpirationPolicy",
    "ReaperRole",
    "Settings",
    "get_settings",
    "validate_startup",
]
