"""Configuration via pydantic-settings with .env support."""

from __future__ import annotations

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class ImapIndexerSettings(BaseSettings):
    """Application settings loaded from environment variables and .env file."""

    model_config = SettingsConfigDict(
        env_prefix="IMAP_INDEXER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # IMAP account
    host: str = "localhost"
    port: int = 993
    username: str = ""
    password: SecretStr = SecretStr("")
    use_ssl: bool = True

    # Crawl
    threads: int = Field(default=5, gt=0)
    batch_size: int = Field(default=200, gt=0)
    drain_timeout_seconds: float = Field(default=3600.0, gt=0)
    progress_interval_seconds: float = Field(default=1.0, gt=0)

    # Logging
    log_level: str = "INFO"
