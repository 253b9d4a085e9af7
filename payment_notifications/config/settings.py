"""Application settings using Pydantic for environment-based configuration."""
from functools import lru_cache
from typing import Any, Callable, Optional

from pydantic import Field, ImportString, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database Configuration
    database_url: str = Field(..., description="Async database connection URL")
    database_pool_size: int = Field(default=20, description="Database connection pool size")
    database_max_overflow: int = Field(default=50, description="Max database connection overflow")
    database_echo: bool = Field(default=False, description="Echo SQL queries (debug)")

    # Redis Configuration
    redis_url: Optional[str] = Field(
        default=None, description="Redis connection URL (required for the redis event sink)"
    )

    # Event Sink Configuration
    event_sink: str = Field(default="log", description="Event sink backend (log/redis)")
    event_stream_name: str = Field(
        default="order_events", description="Redis stream receiving order events"
    )
    event_stream_maxlen: int = Field(
        default=100_000, description="Approximate cap on the Redis event stream length"
    )

    # Gateway signature primitives, as dotted import strings
    alipay_signature_check: Optional[ImportString[Callable[..., Any]]] = Field(
        default=None, description="Callable verifying an Alipay notification signature"
    )
    wechat_signature_check: Optional[ImportString[Callable[..., Any]]] = Field(
        default=None, description="Callable verifying a WeChat Pay notification signature"
    )
    wechat_refund_decrypt: Optional[ImportString[Callable[..., Any]]] = Field(
        default=None, description="Callable decrypting a WeChat Pay refund req_info field"
    )
    alipay_app_id: Optional[str] = Field(
        default=None, description="Expected Alipay app_id on notifications (unchecked if unset)"
    )

    # Application Configuration
    app_name: str = Field(default="payment-notifications", description="Application name")
    app_env: str = Field(default="development", description="Environment (development/production)")
    log_level: str = Field(default="INFO", description="Logging level")
    debug: bool = Field(default=False, description="Debug mode")

    # API Configuration
    api_host: str = Field(default="0.0.0.0", description="API host")
    api_port: int = Field(default=8000, description="API port")
    api_workers: int = Field(default=4, description="Number of API workers")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level. Must be one of: {valid_levels}")
        return v.upper()

    @field_validator("event_sink")
    @classmethod
    def validate_event_sink(cls, v: str) -> str:
        """Validate event sink backend."""
        valid_sinks = ["log", "redis"]
        if v.lower() not in valid_sinks:
            raise ValueError(f"Invalid event sink. Must be one of: {valid_sinks}")
        return v.lower()


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    """
    return Settings()
