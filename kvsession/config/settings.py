"""
Configuration management for kvsession.

This module provides centralized configuration loading and validation using
Pydantic settings. Values come from environment variables or .env files; the
ENVIRONMENT variable selects an additional environment-specific .env file.
"""

import os
from enum import Enum
from pathlib import Path
from typing import Optional, List, Tuple

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    """Supported deployment environments."""
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class ExpirationPolicy(str, Enum):
    """
    What ``set`` does with a record that carries no usable expiration.

    NONE writes the record without an expiration index entry, so the reaper
    never removes it. FIXED_TTL assigns ``now + session_ttl_hours``.
    """
    NONE = "none"
    FIXED_TTL = "fixed_ttl"


class ReaperRole(str, Enum):
    """Role of this process with respect to running the reaper."""
    AUTO = "auto"
    COORDINATOR = "coordinator"
    WORKER = "worker"


DEFAULT_BUCKET = "_sessions"


def _detect_environment() -> Environment:
    """
    Detect the current environment from the ENVIRONMENT variable.

    Returns:
        Environment: The detected environment, defaults to DEVELOPMENT if not set.
    """
    env_value = os.environ.get("ENVIRONMENT", "development").lower().strip()
    try:
        return Environment(env_value)
    except ValueError:
        return Environment.DEVELOPMENT


def _get_env_files(environment: Environment) -> Tuple[str, ...]:
    """
    Get the list of .env files to load for the given environment.

    The base .env file is loaded first, then the environment-specific file
    overrides it.
    """
    env_file_map = {
        Environment.DEVELOPMENT: ".env.development",
        Environment.STAGING: ".env.staging",
        Environment.PRODUCTION: ".env.production",
    }
    env_specific_file = env_file_map.get(environment, ".env.development")

    return (".env", env_specific_file)


class Settings(BaseSettings):
    """
    Session store settings loaded from environment variables.

    Storage client connection parameters (redis_url) are passed through to
    the client untouched.
    """

    # Environment
    environment: Environment = Field(
        default=Environment.DEVELOPMENT,
        description="Deployment environment (development, staging, production)"
    )

    # Session Store Configuration
    session_bucket: str = Field(
        default=DEFAULT_BUCKET,
        description="Storage namespace holding session records"
    )
    session_storage_type: str = Field(
        default="memory",
        description="Storage engine type: 'memory' or 'redis'"
    )
    redis_url: Optional[str] = Field(
        default=None,
        description="Redis connection URL for the storage engine"
    )
    session_reap_interval_ms: int = Field(
        default=0,
        ge=0,
        description="Interval between reaper sweeps in milliseconds, 0 disables reaping"
    )
    session_default_expiration_policy: ExpirationPolicy = Field(
        default=ExpirationPolicy.NONE,
        description="Policy for sessions written without an expiration: 'none' or 'fixed_ttl'"
    )
    session_ttl_hours: int = Field(
        default=24,
        ge=1,
        le=168,  # Max 1 week
        description="Session time-to-live in hours used by the 'fixed_ttl' policy"
    )
    reaper_role: ReaperRole = Field(
        default=ReaperRole.AUTO,
        description="Reaper election role: 'auto', 'coordinator' or 'worker'"
    )
    reaper_lock_path: Optional[str] = Field(
        default=None,
        description="Lock file electing the reaper under the 'auto' role, one per bucket in the temp directory by default"
    )

    # Observability Configuration
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )
    otel_endpoint: Optional[str] = Field(
        default=None,
        description="OpenTelemetry collector endpoint URL"
    )
    otel_service_name: str = Field(
        default="kvsession",
        description="Service name for OpenTelemetry traces"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("session_bucket")
    @classmethod
    def validate_session_bucket(cls, v: str) -> str:
        """Validate that session_bucket is not empty and contains no separator."""
        if not v or not v.strip():
            raise ValueError("session_bucket cannot be empty")
        v = v.strip()
        if ":" in v:
            raise ValueError("session_bucket must not contain ':'")
        return v

    @field_validator("session_storage_type")
    @classmethod
    def validate_session_storage_type(cls, v: str) -> str:
        """Validate that session_storage_type is either 'memory' or 'redis'."""
        v = v.strip().lower()
        if v not in {"memory", "redis"}:
            raise ValueError("session_storage_type must be 'memory' or 'redis'")
        return v

    @field_validator("redis_url")
    @classmethod
    def validate_redis_url(cls, v: Optional[str]) -> Optional[str]:
        """Validate the Redis URL scheme when one is configured."""
        if v is None or not v.strip():
            return None
        v = v.strip()
        if not v.startswith(("redis://", "rediss://", "unix://")):
            raise ValueError("redis_url must start with redis://, rediss:// or unix://")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate that log_level is a valid logging level."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v = v.strip().upper()
        if v not in valid_levels:
            raise ValueError(f"log_level must be one of: {', '.join(sorted(valid_levels))}")
        return v

    @model_validator(mode="after")
    def validate_storage_config(self) -> "Settings":
        """Validate that a Redis URL is provided when the Redis engine is selected."""
        if self.session_storage_type == "redis" and not self.redis_url:
            if self.environment != Environment.DEVELOPMENT:
                raise ValueError(
                    "redis_url is required when session_storage_type is 'redis' "
                    "in non-development environments"
                )
        return self

    @property
    def reap_interval_seconds(self) -> float:
        """Reaper interval converted to seconds."""
        return self.session_reap_interval_ms / 1000.0


class ConfigurationError(Exception):
    """Exception raised when configuration validation fails."""

    def __init__(self, message: str, missing_fields: Optional[List[str]] = None,
                 invalid_fields: Optional[dict] = None):
        self.message = message
        self.missing_fields = missing_fields or []
        self.invalid_fields = invalid_fields or {}
        super().__init__(self.format_error_message())

    def format_error_message(self) -> str:
        """Format a descriptive error message listing all issues."""
        parts = [self.message]

        if self.missing_fields:
            parts.append(f"\nMissing required fields: {', '.join(self.missing_fields)}")

        if self.invalid_fields:
            invalid_parts = [f"  - {field}: {error}" for field, error in self.invalid_fields.items()]
            parts.append("\nInvalid field values:\n" + "\n".join(invalid_parts))

        return "".join(parts)


def create_settings_for_environment(environment: Optional[Environment] = None) -> Settings:
    """
    Create Settings for a specific environment.

    Args:
        environment: Optional environment override. If not provided, detected
            from the ENVIRONMENT variable.

    Returns:
        Settings: Validated settings for the specified environment.

    Raises:
        ConfigurationError: If settings are missing or invalid.
    """
    if environment is None:
        environment = _detect_environment()

    env_files = _get_env_files(environment)
    existing_env_files = [env_file for env_file in env_files if Path(env_file).exists()]
    if not existing_env_files:
        existing_env_files = list(env_files)

    try:
        class EnvironmentSettings(Settings):
            model_config = SettingsConfigDict(
                env_file=tuple(existing_env_files),
                env_file_encoding="utf-8",
                case_sensitive=False,
                extra="ignore"
            )

        return EnvironmentSettings()
    except Exception as e:
        missing_fields = []
        invalid_fields = {}

        # Extract field-level errors from Pydantic ValidationError
        if hasattr(e, "errors"):
            for error in e.errors():
                field_name = ".".join(str(loc) for loc in error.get("loc", []))
                error_type = error.get("type", "")
                error_msg = error.get("msg", str(error))

                if error_type == "missing":
                    missing_fields.append(field_name)
                else:
                    invalid_fields[field_name or "settings"] = error_msg

        raise ConfigurationError(
            f"Failed to load configuration for environment '{environment.value}'",
            missing_fields=missing_fields,
            invalid_fields=invalid_fields
        ) from e


# Global settings cache
_settings_cache: Optional[Settings] = None


def get_settings() -> Settings:
    """
    Get the settings singleton, loading it on first use.

    Raises:
        ConfigurationError: If settings are missing or invalid.
    """
    global _settings_cache

    if _settings_cache is None:
        _settings_cache = create_settings_for_environment()

    return _settings_cache


def clear_settings_cache() -> None:
    """Clear the settings cache so the next get_settings() reloads."""
    global _settings_cache
    _settings_cache = None


def validate_startup(settings: Optional[Settings] = None) -> None:
    """
    Validate cross-field settings at application startup.

    Args:
        settings: Settings to validate, defaults to get_settings().

    Raises:
        ConfigurationError: If any settings are inconsistent.
    """
    settings = settings or get_settings()

    validation_errors = {}

    # The memory engine is process-local, so sessions would not be shared
    # between workers and would vanish on restart.
    if settings.environment == Environment.PRODUCTION and settings.session_storage_type == "memory":
        validation_errors["session_storage_type"] = (
            "The in-memory storage engine is not allowed in production. "
            "Configure session_storage_type='redis' and redis_url."
        )

    if settings.reaper_role == ReaperRole.COORDINATOR and settings.session_reap_interval_ms == 0:
        validation_errors["session_reap_interval_ms"] = (
            "reaper_role is 'coordinator' but reaping is disabled; "
            "set session_reap_interval_ms to a positive value."
        )

    if validation_errors:
        raise ConfigurationError(
            "Configuration validation failed during startup",
            invalid_fields=validation_errors
        )


def get_environment_info() -> dict:
    """
    Get information about the current environment configuration.

    Returns:
        dict: The detected environment and the config files checked and loaded.
    """
    environment = _detect_environment()
    env_files = _get_env_files(environment)

    existing_files = [f for f in env_files if Path(f).exists()]

    return {
        "environment": environment.value,
        "env_files_checked": list(env_files),
        "env_files_loaded": existing_files,
    }
