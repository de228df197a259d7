"""Configuration management for mailsift.

This module handles application configuration using Pydantic settings.
Configuration can be loaded from environment variables or .env files.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable support.

    All settings can be overridden via environment variables with
    the MAILSIFT_ prefix (e.g., MAILSIFT_SYNC_LOOKBACK_DAYS).
    """

    model_config = SettingsConfigDict(
        env_prefix="MAILSIFT_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Gmail Configuration
    gmail_scope: str = Field(
        default="https://www.googleapis.com/auth/gmail.readonly",
        description="OAuth scope requested during authorization",
    )
    gmail_user_id: str = Field(
        default="me",
        description="Gmail user id used for API calls",
    )
    oauth_redirect_uri: str = Field(
        default="http://localhost:8080/oauth2callback",
        description="Redirect URI registered for the OAuth client",
    )
    token_refresh_margin_seconds: int = Field(
        default=300,
        description="Refresh the access token when it expires within this many seconds",
    )
    http_timeout_seconds: float = Field(
        default=30.0,
        description="Timeout applied to every upstream HTTP call",
    )

    # Storage Configuration
    db_path: Path = Field(
        default=Path("mailsift.sqlite3"),
        description="Path to the SQLite database holding credentials and the message corpus",
    )

    # Sync Configuration
    sync_lookback_days: int = Field(
        default=2,
        description="How many days back the candidate query looks (clamped to 1..30)",
    )
    sync_include_read: bool = Field(
        default=False,
        description="Include already-read messages in the candidate query",
    )
    sync_extra_query: str | None = Field(
        default=None,
        description="Extra Gmail search terms appended to the candidate query",
    )
    sync_max_candidates: int = Field(
        default=100,
        description="Maximum number of candidate ids listed per cycle",
    )
    fetch_concurrency: int = Field(
        default=50,
        description="Maximum number of message detail fetches in flight",
    )
    sync_interval_seconds: int = Field(
        default=300,
        description="Interval between scheduled sync cycles",
    )
    sync_cycle_timeout_seconds: float = Field(
        default=240.0,
        description="Wall-clock time limit for one sync cycle before it is abandoned",
    )

    # Search Configuration
    known_sender_domains: list[str] = Field(
        default_factory=list,
        description="Sender domains whose patterns also match against the From header",
    )
    search_default_limit: int = Field(
        default=50,
        description="Default number of search results shown by the CLI",
    )
    sanitizer_min_markup_chars: int = Field(
        default=20,
        description="Sanitized markup shorter than this (without images or visible text) gets the fallback view",
    )

    # Application Configuration
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    debug: bool = Field(
        default=False,
        description="Enable debug mode",
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings.

    Returns:
        Settings: Application settings instance.
    """
    return Settings()
