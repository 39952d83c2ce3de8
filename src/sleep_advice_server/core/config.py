"""Application configuration."""

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # Allow extra env vars without error
    )

    # API
    api_host: str = Field(default="0.0.0.0", description="API host")
    api_port: int = Field(default=8000, description="API port")
    api_prefix: str = Field(default="/api", description="API prefix")

    # Database
    database_url: str = Field(
        default="sqlite+aiosqlite:///./sleep_advice.db",
        description="SQLAlchemy async database URL",
    )

    # Generation provider (Google Gemini REST API)
    gemini_api_key: str | None = Field(
        default=None,
        description="API key for the Gemini generative language API",
    )
    gemini_model: str = Field(default="gemma-3-1b-it", description="Model used for advice")
    gemini_base_url: str = Field(
        default="https://generativelanguage.googleapis.com/v1beta",
        description="Base URL of the generative language API",
    )
    upstream_connect_timeout_seconds: float = Field(
        default=10.0,
        description="Connect timeout for the generation API",
    )
    upstream_read_timeout_seconds: float = Field(
        default=60.0,
        description="Maximum wait between two bytes of the generation stream",
    )

    # Advice streaming
    advice_temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    advice_max_output_tokens: int = Field(default=1000, ge=1)
    advice_timeout_seconds: float = Field(
        default=120.0,
        gt=0,
        description="Wall-clock budget of one advice stream",
    )
    sse_heartbeat_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Idle interval after which a heartbeat comment is sent",
    )

    # Statistics
    stats_window_days: int = Field(
        default=7,
        ge=1,
        description="Trailing window (calendar days, today included) for weekly stats",
    )

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Log level",
    )


# Global settings instance
settings = Settings()
