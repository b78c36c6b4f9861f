"""Application settings using Pydantic BaseSettings."""

import os
from functools import lru_cache

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _get_default_db_path() -> str:
    """Get absolute path to default SQLite database."""
    config_dir = os.path.dirname(os.path.abspath(__file__))
    package_dir = os.path.dirname(config_dir)
    db_path = os.path.join(package_dir, "data", "resumegate.db")
    return f"sqlite:///{db_path}"


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Server
    host: str = Field(default="127.0.0.1")
    port: int = Field(default=8000)
    environment: str = Field(default="development")
    debug: bool = Field(default=False)
    log_level: str = Field(default="INFO")
    log_file: str | None = Field(default=None)

    # Shared counter store
    # "memory" = in-process (single worker, tests, local dev)
    # "redis" = distributed, required for multi-worker deployments
    limits_backend: str = Field(default="memory")
    redis_url: str = Field(default="")
    # Round-trips slower than this are treated as store failures
    redis_socket_timeout_seconds: float = Field(default=0.5)

    # Database
    database_url: str = Field(default_factory=_get_default_db_path)

    # Authentication
    session_cookie_name: str = Field(default="rg_session")
    session_ttl_seconds: int = Field(default=604800)

    # Permission cache
    permission_cache_ttl_seconds: int = Field(default=1800)

    # Abuse detection
    suspicious_ttl_seconds: int = Field(default=86400)
    burst_interval_ms: int = Field(default=100)
    track_size: int = Field(default=10)
    suspicious_divisor: int = Field(default=3)
    block_threshold: int = Field(default=3)
    block_ttl_seconds: int = Field(default=86400)

    # Route-level volume limits
    general_rate_limit_rpm: int = Field(default=120)
    premium_rate_limit_rpm: int = Field(default=600)
    ai_rate_limit_free: int = Field(default=10)
    ai_rate_limit_premium: int = Field(default=100)
    ai_rate_limit_window_seconds: int = Field(default=86400)

    # Subscriptions
    trial_duration_days: int = Field(default=14)

    # Premium access log
    premium_access_log_size: int = Field(default=100)
    premium_access_log_ttl_seconds: int = Field(default=30 * 24 * 60 * 60)

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.environment == "production"

    @property
    def is_test(self) -> bool:
        """Check if running in test mode."""
        return self.environment == "test"

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        upper = v.upper()
        if upper not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return upper

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        vv = (v or "").strip().lower()
        if vv not in {"development", "staging", "production", "test"}:
            raise ValueError("ENVIRONMENT must be one of: development, staging, production, test")
        return vv

    @field_validator("limits_backend")
    @classmethod
    def validate_limits_backend(cls, v: str) -> str:
        vv = (v or "").strip().lower()
        if vv not in {"memory", "redis"}:
            raise ValueError("LIMITS_BACKEND must be one of: memory, redis")
        return vv

    @model_validator(mode="after")
    def validate_cross_field_constraints(self) -> "Settings":
        if self.limits_backend == "redis" and not self.redis_url:
            raise ValueError("REDIS_URL is required when LIMITS_BACKEND=redis")
        if self.suspicious_divisor < 1:
            raise ValueError("SUSPICIOUS_DIVISOR must be at least 1")
        if self.track_size < 2:
            raise ValueError("TRACK_SIZE must be at least 2 for burst detection")
        return self


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
