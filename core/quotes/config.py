"""
Configuration settings for the quote engine.

Uses Pydantic Settings to load tunables from BROBBOT_QUOTE_* environment
variables (or a .env file) and turns them into an explicit QuoteConfig
that is passed to each component at construction.
"""

import logging
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .schemas import QuoteConfig


class QuoteSettings(BaseSettings):
    """
    Quote engine settings loaded from environment variables.

    Attributes:
        cache_size: Cached (not yet remembered) messages kept per author
        db: Path to the SQLite database file
        mash_limit: Quotes returned by the *mash commands
        busy_timeout_ms: How long a write waits for the database lock
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """

    model_config = SettingsConfigDict(
        env_prefix="BROBBOT_QUOTE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    cache_size: int = Field(default=25, ge=1)
    db: str = Field(default="./data/quotes.db")
    mash_limit: int = Field(default=10, ge=1)
    busy_timeout_ms: int = Field(default=5000, ge=0)
    log_level: str = Field(default="INFO")


@lru_cache()
def get_settings() -> QuoteSettings:
    """Get cached settings instance."""
    return QuoteSettings()


def load_quote_config(settings: QuoteSettings | None = None) -> QuoteConfig:
    """Build the engine configuration from settings."""
    settings = settings or get_settings()
    return QuoteConfig(
        db_path=settings.db,
        cache_size=settings.cache_size,
        mash_limit=settings.mash_limit,
        busy_timeout_ms=settings.busy_timeout_ms,
    )


def configure_logging(level: str | None = None) -> None:
    """Configure root logging with the service's format."""
    level = level or get_settings().log_level
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
