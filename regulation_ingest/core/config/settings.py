"""
Application settings for the regulation ingestion pipeline.

Settings are loaded from environment variables and an optional ``.env`` file.
Every field can be overridden by an environment variable of the same name.

Usage:
    >>> from regulation_ingest.core.config.settings import settings
    >>> settings.RETRY_MAX_ATTEMPTS
    3
"""
from functools import lru_cache
from typing import Any, Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from regulation_ingest.core.constants import (
    APP_NAME,
    DEFAULT_CHECKPOINT_INTERVAL,
    DEFAULT_DB_MAX_OVERFLOW,
    DEFAULT_DB_POOL_SIZE,
    DEFAULT_MAX_CONCURRENT_EDITIONS,
    DEFAULT_MAX_RETRY_ATTEMPTS,
    DEFAULT_PLACEHOLDER_TITLE,
    DEFAULT_RETRY_DELAY_BASE,
)
from regulation_ingest.core.version import __version__


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    """

    # =========================================================================
    # ENVIRONMENT
    # =========================================================================

    ENVIRONMENT: Literal["development", "test", "staging", "production"] = Field(
        default="development",
        description="Application environment",
    )

    DEBUG: bool = Field(
        default=False,
        description="Enable debug mode",
    )

    APP_NAME: str = Field(
        default=APP_NAME,
        description="Application name",
    )

    APP_VERSION: str = Field(
        default=__version__,
        description="Application version",
    )

    # =========================================================================
    # LOGGING
    # =========================================================================

    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )

    LOG_FORMAT: Literal["json", "text"] = Field(
        default="text",
        description="Console log format",
    )

    LOG_FILE_ENABLED: bool = Field(
        default=False,
        description="Also write JSON logs to a rotating file",
    )

    LOG_FILE_PATH: str = Field(
        default="./log/regulation_ingest.log",
        description="Log file path",
    )

    LOG_FILE_MAX_BYTES: int = Field(
        default=10 * 1024 * 1024,
        description="Rotate the log file after this many bytes",
        ge=1024,
    )

    LOG_FILE_BACKUP_COUNT: int = Field(
        default=5,
        description="Number of rotated log files to keep",
        ge=0,
    )

    # =========================================================================
    # DATABASE
    # =========================================================================

    DATABASE_URL: str = Field(
        default="sqlite+aiosqlite:///./regulations.db",
        description="Async SQLAlchemy database URL",
    )

    DATABASE_ECHO: bool = Field(
        default=False,
        description="Echo SQL statements",
    )

    DATABASE_POOL_SIZE: int = Field(
        default=DEFAULT_DB_POOL_SIZE,
        description="Connection pool size (server databases only)",
        ge=1,
        le=100,
    )

    DATABASE_MAX_OVERFLOW: int = Field(
        default=DEFAULT_DB_MAX_OVERFLOW,
        description="Maximum overflow connections (server databases only)",
        ge=0,
        le=50,
    )

    # =========================================================================
    # PARSER
    # =========================================================================

    PARSER_FILE_ENCODING: str = Field(
        default="utf-8",
        description="Encoding of regulation text files",
    )

    PARSER_PLACEHOLDER_TITLE: str = Field(
        default=DEFAULT_PLACEHOLDER_TITLE,
        description="Title given to synthesized parents of orphaned nodes",
        min_length=1,
    )

    PARSER_EXTRA_NOISE_PATTERNS: list[str] = Field(
        default_factory=list,
        description="Additional noise regexes (JSON array in the environment)",
    )

    PARSER_NOISE_PATTERNS_FILE: str | None = Field(
        default=None,
        description="File with one additional noise regex per line",
    )

    # =========================================================================
    # BENCHMARK
    # =========================================================================

    BENCHMARK_CHECKPOINT_INTERVAL: int = Field(
        default=DEFAULT_CHECKPOINT_INTERVAL,
        description="Lines between benchmark checkpoints",
        ge=1,
    )

    # =========================================================================
    # IMPORT / RETRY
    # =========================================================================

    IMPORT_MAX_CONCURRENT_EDITIONS: int = Field(
        default=DEFAULT_MAX_CONCURRENT_EDITIONS,
        description="Editions imported concurrently (1 = sequential)",
        ge=1,
        le=32,
    )

    RETRY_MAX_ATTEMPTS: int = Field(
        default=DEFAULT_MAX_RETRY_ATTEMPTS,
        description="Attempts per failed record before it becomes permanent",
        ge=1,
    )

    RETRY_DELAY_BASE: float = Field(
        default=DEFAULT_RETRY_DELAY_BASE,
        description="Backoff base; the n-th retry waits base ** n seconds",
        ge=0.0,
    )

    REPORT_DIR: str = Field(
        default="./tmp",
        description="Directory for error logs, retry and import reports",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
        validate_default=True,
    )

    @field_validator("DATABASE_URL")
    @classmethod
    def validate_database_url(cls, v: str) -> str:
        """Require an async driver URL."""
        if not v.startswith(("sqlite+aiosqlite://", "postgresql+asyncpg://")):
            raise ValueError(
                "DATABASE_URL must use sqlite+aiosqlite:// or postgresql+asyncpg://"
            )
        return v

    @field_validator("PARSER_EXTRA_NOISE_PATTERNS", mode="before")
    @classmethod
    def parse_noise_patterns(cls, v: Any) -> list[str]:
        """Accept a single pattern string as a one-element list."""
        if isinstance(v, str):
            return [v] if v.strip() else []
        return v

    @model_validator(mode="after")
    def validate_environment_config(self) -> "Settings":
        """Validate environment-specific configuration."""
        if self.ENVIRONMENT == "production":
            if self.DEBUG:
                raise ValueError("DEBUG must be False in production")
            if self.DATABASE_ECHO:
                raise ValueError("DATABASE_ECHO must be False in production")
        return self

    # =========================================================================
    # COMPUTED PROPERTIES
    # =========================================================================

    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.ENVIRONMENT == "production"

    @property
    def is_sqlite(self) -> bool:
        """Check if the configured database is SQLite."""
        return self.DATABASE_URL.startswith("sqlite")


# =============================================================================
# SETTINGS INSTANCE (Singleton)
# =============================================================================

@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Returns:
        Settings: Validated settings instance
    """
    return Settings()


settings = get_settings()


__all__ = [
    "Settings",
    "settings",
    "get_settings",
]
