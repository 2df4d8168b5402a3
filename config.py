"""
Configuration settings for the learnsync progress engine.

Uses Pydantic Settings for environment variable management with .env file support.
"""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================
    # Local (guest) store
    # ========================================
    local_db_path: Path = Field(
        default=Path.home() / ".learnsync" / "state.db",
        description="SQLite file backing the device-local store",
    )

    # ========================================
    # Remote (authoritative) store
    # ========================================
    remote_url: str | None = Field(
        default=None,
        description="Base URL of the remote tabular REST API (unset = local only)",
    )
    remote_api_key: str | None = Field(
        default=None,
        description="API key sent with every remote request",
    )
    remote_timeout_ms: int = Field(
        default=10000,
        description="Remote request timeout in milliseconds",
    )
    remote_retry_attempts: int = Field(
        default=1,
        ge=1,
        description="Attempts per remote request before it counts as failed",
    )
    remote_retry_backoff_seconds: float = Field(
        default=1.0,
        ge=0.0,
        description="Base for exponential backoff between request attempts",
    )

    # ========================================
    # Identity
    # ========================================
    user_id: str | None = Field(
        default=None,
        description="Authenticated user id (unset = guest)",
    )
    guest_mode: bool = Field(
        default=False,
        description="Force guest mode even when a user id is set",
    )

    # ========================================
    # Sync & Migration
    # ========================================
    queue_max_retries: int = Field(
        default=3,
        ge=1,
        description="Failed drains after which a queued write is dropped",
    )
    identity_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Upper bound on identity resolution during a drain",
    )
    migration_batch_size: int = Field(
        default=100,
        ge=1,
        description="Records per remote write during guest migration",
    )
    history_limit: int = Field(
        default=1000,
        ge=1,
        description="Question history entries kept locally / read for stats",
    )

    # ========================================
    # Logging
    # ========================================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging level",
    )
    log_file: str | None = Field(
        default=None,
        description="Optional log file path",
    )

    def has_remote_configured(self) -> bool:
        """Check if the remote store is configured."""
        return bool(self.remote_url)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
