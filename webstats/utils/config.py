# ==============================================================================
# Application Configuration
# ==============================================================================
"""
Configuration management using pydantic-settings.

All configuration is loaded from environment variables, with support for
.env files via python-dotenv.
"""

from datetime import datetime, timezone
from functools import lru_cache
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load .env file before any settings are instantiated
load_dotenv()


class PostgresSettings(BaseSettings):
    """PostgreSQL connection settings."""

    model_config = SettingsConfigDict(env_prefix="PG_")

    host: str = Field(default="localhost", description="PostgreSQL host")
    port: int = Field(default=5432, description="PostgreSQL port")
    user: str = Field(default="postgres", description="PostgreSQL username")
    password: str = Field(default="postgres", description="PostgreSQL password")
    database: str = Field(default="webstats", description="Database name")
    schema_name: str = Field(default="webstats", description="Schema name")
    sslmode: str = Field(default="prefer", description="SSL mode")
    statement_timeout_ms: int = Field(
        default=30000, description="Server-side statement timeout in milliseconds (0 = none)"
    )

    @property
    def connection_string(self) -> str:
        """Build PostgreSQL connection string."""
        return (
            f"postgresql://{self.user}:{self.password}@"
            f"{self.host}:{self.port}/{self.database}?sslmode={self.sslmode}"
        )


class ValkeySettings(BaseSettings):
    """Valkey (Redis-compatible) connection settings for live visitor tracking."""

    model_config = SettingsConfigDict(env_prefix="VALKEY_")

    enabled: bool = Field(default=False, description="Track live visitors in Valkey")
    host: str = Field(default="localhost", description="Valkey host")
    port: int = Field(default=6379, description="Valkey port")
    password: Optional[str] = Field(default=None, description="Valkey password")
    db: int = Field(default=0, description="Valkey database number")
    ssl: bool = Field(default=False, description="Use SSL/TLS connection")

    @property
    def url(self) -> str:
        """Build Valkey connection URL."""
        scheme = "rediss" if self.ssl else "redis"
        if self.password:
            return f"{scheme}://:{self.password}@{self.host}:{self.port}/{self.db}"
        return f"{scheme}://{self.host}:{self.port}/{self.db}"


class GeoSettings(BaseSettings):
    """Geo-IP lookup settings."""

    model_config = SettingsConfigDict(env_prefix="GEO_")

    database_path: Optional[Path] = Field(
        default=None, description="Path to a MaxMind GeoLite2/GeoIP2 City database (.mmdb)"
    )

    @property
    def is_configured(self) -> bool:
        return self.database_path is not None


class SessionSettings(BaseSettings):
    """Session stitching settings."""

    model_config = SettingsConfigDict(env_prefix="SESSION_")

    timeout_minutes: int = Field(
        default=30,
        description="Session inactivity timeout in minutes",
    )


class AnalyticsSettings(BaseSettings):
    """Query and identity settings."""

    model_config = SettingsConfigDict(env_prefix="ANALYTICS_")

    launch_date: datetime = Field(
        default=datetime(2024, 1, 1, tzinfo=timezone.utc),
        description="Origin of the 'all' period",
    )
    live_window_seconds: int = Field(
        default=60, description="Trailing window for live visitor counts"
    )
    identity_salt: str = Field(
        default="", description="Secret prepended to the daily visitor id key"
    )
    default_period: str = Field(default="7d", description="Period used when none is given")


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        extra="ignore",
    )

    # Nested settings
    postgres: PostgresSettings = Field(default_factory=PostgresSettings)
    valkey: ValkeySettings = Field(default_factory=ValkeySettings)
    geo: GeoSettings = Field(default_factory=GeoSettings)
    session: SessionSettings = Field(default_factory=SessionSettings)
    analytics: AnalyticsSettings = Field(default_factory=AnalyticsSettings)

    # General settings
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Logging level")


@lru_cache
def get_settings() -> Settings:
    """
    Get cached application settings.

    Settings are loaded once and cached for subsequent calls.
    """
    return Settings()
