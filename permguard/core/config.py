"""
Application configuration using Pydantic Settings.
"""

from functools import lru_cache
from pydantic import Field, field_validator, RedisDsn
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    """Database configuration."""

    model_config = SettingsConfigDict(env_prefix="DB_")

    url: str = Field(
        default="sqlite+aiosqlite:///./permguard.db",
        description="SQLAlchemy async connection URL",
    )
    pool_size: int = Field(default=5, ge=1, le=100)
    pool_overflow: int = Field(default=10, ge=0, le=100)
    pool_timeout: int = Field(default=30, ge=1)
    echo: bool = Field(default=False, description="Echo SQL queries")


class RedisSettings(BaseSettings):
    """Redis configuration."""

    model_config = SettingsConfigDict(env_prefix="REDIS_")

    url: RedisDsn = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL",
    )
    max_connections: int = Field(default=10, ge=1)


class PermissionSettings(BaseSettings):
    """
    Permission engine configuration.

    The cache only ever holds derived per-user permission sets, so
    switching backends (or flushing the cache) never affects correctness.
    """

    model_config = SettingsConfigDict(env_prefix="PERMISSION_")

    cache_backend: str = Field(
        default="memory",
        description="Resolved-permission cache backend: memory, redis",
    )
    cache_ttl: int = Field(default=3600, ge=1, description="Seconds")
    cache_key_prefix: str = Field(default="user_permissions:")

    # Synthesized per-user role
    custom_role_prefix: str = Field(default="CUSTOM_")
    custom_role_default_scope: str = Field(default="personal")
    custom_role_max_retries: int = Field(default=3, ge=1, le=20)

    # Target record field names used by scope checks
    owner_field: str = Field(default="created_by")
    department_field: str = Field(default="department")

    max_expression_length: int = Field(default=500, ge=10)
    max_expression_depth: int = Field(default=32, ge=1, le=64)

    @field_validator("cache_backend")
    @classmethod
    def validate_cache_backend(cls, v: str) -> str:
        allowed = {"memory", "redis"}
        if v not in allowed:
            raise ValueError(f"cache_backend must be one of {allowed}")
        return v


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="Permission Engine")
    app_version: str = Field(default="0.1.0")
    debug: bool = Field(default=False)
    environment: str = Field(default="development")

    # Logging
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json", description="json or text")

    # Nested settings
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    permissions: PermissionSettings = Field(default_factory=PermissionSettings)

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        allowed = {"development", "staging", "production", "testing"}
        if v not in allowed:
            raise ValueError(f"environment must be one of {allowed}")
        return v

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def is_development(self) -> bool:
        return self.environment == "development"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Shorthand
settings = get_settings()
