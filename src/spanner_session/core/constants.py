"""
Constants and configuration for the session and transaction layer.
Centralizes protocol constants and tunables.
Includes Pydantic validation for environment variables.
"""

from __future__ import annotations

import threading

from typing import Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# ============================================================================
# Session Configuration
# ============================================================================

#: Age in seconds after which a multiplexed session is replaced (7 days).
#: Staleness is a soft TTL: a handle handed out just before the threshold
#: may still be used by the operation that received it.
SESSION_REFRESH_SEC = 7 * 24 * 3600

# ============================================================================
# Streaming Resume Configuration
# ============================================================================

#: Status codes that mark a broken stream as safe to resume.
RETRIABLE_STATUS_CODES = frozenset({"UNAVAILABLE"})

#: INTERNAL errors are only retriable when the message shows the HTTP/2
#: stream was torn down underneath the call.
RETRIABLE_INTERNAL_MESSAGES = (
    "Received unexpected EOS on DATA frame from server",
    "RST_STREAM",
)

#: Maximum rows held back since the last resume token. Past this bound the
#: rows are released and the stream cannot be resumed until the server
#: sends a new resume token.
DEFAULT_MAX_BUFFERED_ROWS = 1024

#: Initial and maximum delay (seconds) between resume attempts.
DEFAULT_RESUME_BACKOFF = 0.05
DEFAULT_RESUME_MAX_BACKOFF = 2.0

# ============================================================================
# Logging Configuration
# ============================================================================

#: Maximum size in bytes for the JSON error log before rotation (10MB).
LOG_MAX_SIZE = 10 * 1024 * 1024

#: Number of error log backups to retain during rotation.
LOG_BACKUP_COUNT_ERRORS = 3

#: Logger name shared by every module in the package.
LOGGER_NAME = "spanner-session"

LogFormat = Literal["console", "json"]


def database_path(project_id: str, instance_id: str, database_id: str) -> str:
    """Build the fully-qualified database resource name."""
    return f"projects/{project_id}/instances/{instance_id}/databases/{database_id}"


def session_path(project_id: str, instance_id: str, database_id: str, session_id: str) -> str:
    """Build the fully-qualified session resource name."""
    return f"{database_path(project_id, instance_id, database_id)}/sessions/{session_id}"


class Settings(BaseSettings):
    """Environment settings for the session and transaction layer.

    Configuration priority (highest to lowest):
    1. Values passed to Settings() constructor
    2. Environment variables prefixed with ``SPANNER_``
    3. ``.env`` file in the working directory

    Validates at load time to fail fast on configuration errors.
    """

    # Database identity
    project_id: str | None = Field(default=None, description="Project that owns the instance")
    instance_id: str | None = Field(default=None, description="Instance that hosts the database")
    database_id: str | None = Field(default=None, description="Database to open sessions against")

    # Session cache
    session_refresh_sec: int = Field(
        default=SESSION_REFRESH_SEC, description="Replace the multiplexed session once it is this old (seconds)"
    )
    session_labels: dict[str, str] = Field(default_factory=dict, description="Labels attached to created sessions")

    # Streaming resume
    stream_max_resumes: int | None = Field(
        default=None, description="Maximum resumes per stream (None leaves it to the transport retry policy)"
    )
    stream_resume_backoff: float = Field(
        default=DEFAULT_RESUME_BACKOFF, description="Initial delay before re-issuing a broken stream (seconds)"
    )
    stream_resume_max_backoff: float = Field(
        default=DEFAULT_RESUME_MAX_BACKOFF, description="Upper bound for the resume delay (seconds)"
    )
    stream_max_buffered_rows: int = Field(
        default=DEFAULT_MAX_BUFFERED_ROWS, description="Rows held back since the last resume token"
    )

    # Debug and logging
    debug: bool = Field(default=False, description="Enable debug logging")
    log_format: LogFormat = Field(default="console", description="Console output format: 'console' or 'json'")
    log_dir: str | None = Field(default=None, description="Directory for the rotating JSON error log")

    model_config = SettingsConfigDict(
        env_prefix="SPANNER_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("session_refresh_sec", "stream_max_buffered_rows")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        """Reject zero or negative thresholds."""
        if v <= 0:
            raise ValueError("value must be greater than zero")
        return v

    @field_validator("stream_max_resumes")
    @classmethod
    def validate_max_resumes(cls, v: int | None) -> int | None:
        if v is not None and v < 0:
            raise ValueError("stream_max_resumes must be >= 0 or unset")
        return v

    @field_validator("log_format", mode="before")
    @classmethod
    def normalize_log_format(cls, v: str | None) -> str:
        if v is None:
            return "console"
        return str(v).lower()

    @model_validator(mode="after")
    def validate_backoff(self) -> Settings:
        """Backoff bounds must be non-negative and ordered."""
        if self.stream_resume_backoff < 0 or self.stream_resume_max_backoff < 0:
            raise ValueError("Configuration Error: resume backoff values must be non-negative.")
        if self.stream_resume_backoff > self.stream_resume_max_backoff:
            raise ValueError(
                "Configuration Error: stream_resume_backoff must not exceed stream_resume_max_backoff.\n"
                "Set SPANNER_STREAM_RESUME_MAX_BACKOFF to at least the initial backoff."
            )
        return self

    @property
    def database_path(self) -> str | None:
        """Fully-qualified database name, or None when identity is incomplete."""
        if not (self.project_id and self.instance_id and self.database_id):
            return None
        return database_path(self.project_id, self.instance_id, self.database_id)


# ============================================================================
# Settings Management (Thread-safe)
# ============================================================================


class _SettingsManager:
    """Thread-safe lazily-loaded settings singleton."""

    __slots__ = ("_instance", "_lock")

    def __init__(self) -> None:
        self._instance: Settings | None = None
        self._lock = threading.Lock()

    def get(self) -> Settings:
        """Get the cached settings, loading them on first use.

        Raises:
            ValueError: If configuration is invalid.
        """
        if self._instance is not None:
            return self._instance

        with self._lock:
            # Double-check after acquiring lock
            if self._instance is not None:
                return self._instance
            self._instance = Settings()
            return self._instance

    def reload(self) -> Settings:
        """Force reload settings from the environment."""
        with self._lock:
            self._instance = Settings()
            return self._instance

    def clear(self) -> None:
        """Clear cached settings instance."""
        with self._lock:
            self._instance = None


# Module-level singleton manager
_settings_manager = _SettingsManager()


def get_settings() -> Settings:
    """Get the validated, cached settings instance.

    Raises:
        ValueError: If required configuration is missing or invalid.
    """
    return _settings_manager.get()


def reload_settings() -> Settings:
    """Force reload settings from the environment."""
    return _settings_manager.reload()


def clear_settings_cache() -> None:
    """Clear cached settings instance.

    Primarily useful for testing to ensure fresh settings on each test.
    """
    _settings_manager.clear()
