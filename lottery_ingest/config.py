"""
Configuration settings for the lottery result ingestion system.
Uses Pydantic Settings for type-safe environment variable loading.
"""
from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=str(Path(__file__).parent.parent / ".env"),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ==========================================================================
    # DATABASE CONFIGURATION
    # ==========================================================================
    database_url: Optional[str] = Field(
        default=None,
        description="PostgreSQL DSN. When unset, scheduling and ingestion are disabled.",
    )
    db_pool_min_size: int = Field(default=1, ge=1, le=20)
    db_pool_max_size: int = Field(default=10, ge=1, le=100)

    @property
    def database_configured(self) -> bool:
        return bool(self.database_url)

    @property
    def database_requires_ssl(self) -> bool:
        """Remote databases are reached over SSL, local ones are not."""
        if not self.database_url:
            return False
        return "localhost" not in self.database_url and "127.0.0.1" not in self.database_url

    # ==========================================================================
    # PRIMARY SOURCE (Minh Ngoc live script)
    # ==========================================================================
    minhngoc_base_url: str = Field(
        default="https://dc.minhngoc.net/O0O/0/xstt",
        description="Base URL of the per-region live result scripts",
    )

    # ==========================================================================
    # SECONDARY SOURCE (xoso188 per-game history)
    # ==========================================================================
    xoso188_base_url: str = Field(
        default="https://xoso188.net",
        description="xoso188 site root (history endpoint is appended)",
    )
    xoso188_proxy: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("xoso188_proxy", "http_proxy"),
        description="Relay endpoint for xoso188 requests",
    )
    auto_proxy_enabled: bool = Field(
        default=False,
        description="Rotate through a public proxy list when no relay is configured",
    )
    proxy_list_url: str = Field(
        default=(
            "https://api.proxyscrape.com/v2/?request=displayproxies"
            "&protocol=http&timeout=10000&country=all"
        ),
    )
    proxy_refresh_hours: float = Field(default=8.0, gt=0, le=72)

    # ==========================================================================
    # GENERAL API SETTINGS
    # ==========================================================================
    api_timeout_seconds: int = Field(default=20, ge=1, le=300)
    secondary_max_attempts: int = Field(default=5, ge=1, le=20)
    secondary_limit_num: int = Field(default=15, ge=1, le=500)
    per_game_delay_seconds: float = Field(
        default=0.3,
        ge=0.0,
        le=10.0,
        description="Pause between consecutive per-game calls",
    )

    # ==========================================================================
    # POLLING CONFIGURATION
    # ==========================================================================
    poll_interval_seconds: float = Field(default=5.0, gt=0, le=300)
    max_poll_duration_seconds: float = Field(default=25 * 60, gt=0, le=6 * 3600)
    schedule_timezone: str = Field(default="Asia/Ho_Chi_Minh")

    # ==========================================================================
    # BACKFILL CONFIGURATION
    # ==========================================================================
    backfill_days: int = Field(
        default=7,
        ge=1,
        le=60,
        description="Size of the audited window, today included",
    )
    audit_hour: int = Field(default=22, ge=0, le=23)
    audit_minute: int = Field(default=0, ge=0, le=59)
    run_audit_on_startup: bool = Field(default=True)

    # ==========================================================================
    # LOGGING
    # ==========================================================================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO")
    log_format: Literal["json", "console"] = Field(default="json")
    debug: bool = Field(default=False)

    @field_validator("log_level", mode="before")
    @classmethod
    def _upper_log_level(cls, v):
        return v.upper() if isinstance(v, str) else v

    @field_validator("xoso188_base_url", "minhngoc_base_url")
    @classmethod
    def _strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @property
    def masked_database_url(self) -> str:
        """DSN with the password hidden, for display."""
        if not self.database_url:
            return "(not configured)"
        url = self.database_url
        if "@" in url:
            prefix, host = url.rsplit("@", 1)
            if prefix.count(":") >= 2:
                prefix = prefix.rsplit(":", 1)[0] + ":****"
            return f"{prefix}@{host}"
        return url


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
