#!/usr/bin/env python3
"""
Centralized Configuration Module using Pydantic Settings

This module provides type-safe, environment-based configuration for the
query result cache. All configuration is centralized here to ensure
consistency across modules.

Architectural Decision: Pydantic Settings for type safety and validation
- Environment variable loading with .env support
- Type validation at startup (fail fast on misconfiguration)
- Easy testing with override mechanisms (reload_settings)
"""

from typing import Literal

from pydantic import Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from query_cache.core.config.constants import (
    DEFAULT_CACHE_NAMESPACE,
    DEFAULT_EVICTION_POLICY,
    DEFAULT_STATS_KEY_LIMIT,
    LOCAL_CACHE_MAX_SIZE,
    SHARED_CACHE_DEFAULT_TTL,
)
from query_cache.core.exceptions.base import ConfigurationError


class RedisSettings(BaseSettings):
    """
    Redis configuration for the shared cache backend.

    STAGE-0.1: Redis connection configuration

    REDIS_URL takes precedence over host/port when set.
    """

    REDIS_URL: str | None = Field(default=None, description="Redis URL (overrides host/port)")
    REDIS_HOST: str = Field(default="localhost", description="Redis server host")
    REDIS_PORT: int = Field(default=6379, description="Redis server port")
    REDIS_DB: int = Field(default=0, description="Redis database number")
    REDIS_PASSWORD: str | None = Field(default=None, description="Redis password (if required)")

    REDIS_MAX_CONNECTIONS: int = Field(default=50, description="Maximum pooled connections")
    REDIS_SOCKET_TIMEOUT: float = Field(default=5, description="Per-command timeout in seconds")
    REDIS_SOCKET_CONNECT_TIMEOUT: float = Field(default=5, description="Connection timeout in seconds")
    REDIS_HEALTH_CHECK_INTERVAL: float = Field(default=30, description="Watcher ping interval in seconds")
    REDIS_CONNECT_RETRIES: int = Field(default=3, description="Retries after the first failed connect")
    REDIS_RETRY_MAX_DELAY: float = Field(default=3.0, description="Cap on the connect back-off in seconds")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class CacheSettings(BaseSettings):
    """
    Cache behaviour configuration.

    STAGE-2: Capacity, TTL and eviction defaults
    """

    CACHE_MAX_SIZE: int = Field(default=LOCAL_CACHE_MAX_SIZE, description="Max entries per backend")
    CACHE_DEFAULT_TTL: int = Field(default=SHARED_CACHE_DEFAULT_TTL, description="Default TTL (seconds)")
    CACHE_DEFAULT_POLICY: str = Field(default=DEFAULT_EVICTION_POLICY, description="fcfs | lru | roundrobin")
    CACHE_NAMESPACE: str = Field(default=DEFAULT_CACHE_NAMESPACE, description="Cache key namespace tag")
    CACHE_STATS_KEY_LIMIT: int = Field(default=DEFAULT_STATS_KEY_LIMIT, description="Keys listed by stats")
    ENABLE_SHARED_CACHE: bool = Field(default=True, description="Attempt to use Redis at all")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class LoggingSettings(BaseSettings):
    """
    Logging configuration for structured logging.

    STAGE-L: Logging configuration
    """

    LOG_LEVEL: str = Field(default="INFO", description="Logging level")
    LOG_FORMAT: Literal["json", "console"] = Field(default="json", description="Log output format")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class ApplicationSettings(BaseSettings):
    """General application settings."""

    ENVIRONMENT: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Application environment"
    )
    APP_NAME: str = Field(default="Snowflake Query Cache", description="Application name")
    APP_VERSION: str = Field(default="1.0.0", description="Application version")
    API_HOST: str = Field(default="0.0.0.0", description="API host")
    API_PORT: int = Field(default=3000, description="API port")
    CORS_ORIGINS: list[str] = Field(default=["*"], description="Allowed CORS origins")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class Settings(BaseSettings):
    """
    Main settings class that aggregates all configuration sections.

    STAGE-0: Centralized configuration initialization

    Usage:
        from query_cache.core.config.settings import get_settings

        settings = get_settings()
        max_size = settings.cache.CACHE_MAX_SIZE
        redis_host = settings.redis.REDIS_HOST
    """

    # Redis settings
    REDIS_URL: str | None = Field(default=None, description="Redis URL (overrides host/port)")
    REDIS_HOST: str = Field(default="localhost", description="Redis server host")
    REDIS_PORT: int = Field(default=6379, description="Redis server port")
    REDIS_DB: int = Field(default=0, description="Redis database number")
    REDIS_PASSWORD: str | None = Field(default=None, description="Redis password (if required)")
    REDIS_MAX_CONNECTIONS: int = Field(default=50, description="Maximum pooled connections")
    REDIS_SOCKET_TIMEOUT: float = Field(default=5, description="Per-command timeout in seconds")
    REDIS_SOCKET_CONNECT_TIMEOUT: float = Field(default=5, description="Connection timeout in seconds")
    REDIS_HEALTH_CHECK_INTERVAL: float = Field(default=30, description="Watcher ping interval in seconds")
    REDIS_CONNECT_RETRIES: int = Field(default=3, description="Retries after the first failed connect")
    REDIS_RETRY_MAX_DELAY: float = Field(default=3.0, description="Cap on the connect back-off in seconds")

    # Cache settings
    CACHE_MAX_SIZE: int = Field(default=LOCAL_CACHE_MAX_SIZE, description="Max entries per backend")
    CACHE_DEFAULT_TTL: int = Field(default=SHARED_CACHE_DEFAULT_TTL, description="Default TTL (seconds)")
    CACHE_DEFAULT_POLICY: str = Field(default=DEFAULT_EVICTION_POLICY, description="fcfs | lru | roundrobin")
    CACHE_NAMESPACE: str = Field(default=DEFAULT_CACHE_NAMESPACE, description="Cache key namespace tag")
    CACHE_STATS_KEY_LIMIT: int = Field(default=DEFAULT_STATS_KEY_LIMIT, description="Keys listed by stats")
    ENABLE_SHARED_CACHE: bool = Field(default=True, description="Attempt to use Redis at all")

    # Logging settings
    LOG_LEVEL: str = Field(default="INFO", description="Logging level")
    LOG_FORMAT: Literal["json", "console"] = Field(default="json", description="Log output format")

    # Application settings
    ENVIRONMENT: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Application environment"
    )
    APP_NAME: str = Field(default="Snowflake Query Cache", description="Application name")
    APP_VERSION: str = Field(default="1.0.0", description="Application version")
    API_HOST: str = Field(default="0.0.0.0", description="API host")
    API_PORT: int = Field(default=3000, description="API port")
    CORS_ORIGINS: list[str] = Field(default=["*"], description="Allowed CORS origins")

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"LOG_LEVEL must be one of {valid_levels}")
        return v.upper()

    @field_validator("CACHE_DEFAULT_POLICY")
    @classmethod
    def validate_default_policy(cls, v):
        """Validate the default eviction policy name."""
        normalized = v.strip().lower().replace("_", "").replace("-", "")
        valid_policies = ["fcfs", "lru", "roundrobin"]
        if normalized not in valid_policies:
            raise ValueError(f"CACHE_DEFAULT_POLICY must be one of {valid_policies}")
        return normalized

    @field_validator("CACHE_MAX_SIZE", "CACHE_DEFAULT_TTL")
    @classmethod
    def validate_positive(cls, v, info):
        """Capacity and TTL must be positive."""
        if v <= 0:
            raise ValueError(f"{info.field_name} must be positive")
        return v

    @model_validator(mode="after")
    def validate_namespace(self):
        """The namespace is joined with ':' and must not contain it."""
        if not self.CACHE_NAMESPACE or ":" in self.CACHE_NAMESPACE:
            raise ValueError("CACHE_NAMESPACE must be non-empty and must not contain ':'")
        return self

    # Nested configuration views
    @property
    def redis(self) -> "RedisSettings":
        """Get Redis settings."""
        return RedisSettings(
            REDIS_URL=self.REDIS_URL,
            REDIS_HOST=self.REDIS_HOST,
            REDIS_PORT=self.REDIS_PORT,
            REDIS_DB=self.REDIS_DB,
            REDIS_PASSWORD=self.REDIS_PASSWORD,
            REDIS_MAX_CONNECTIONS=self.REDIS_MAX_CONNECTIONS,
            REDIS_SOCKET_TIMEOUT=self.REDIS_SOCKET_TIMEOUT,
            REDIS_SOCKET_CONNECT_TIMEOUT=self.REDIS_SOCKET_CONNECT_TIMEOUT,
            REDIS_HEALTH_CHECK_INTERVAL=self.REDIS_HEALTH_CHECK_INTERVAL,
            REDIS_CONNECT_RETRIES=self.REDIS_CONNECT_RETRIES,
            REDIS_RETRY_MAX_DELAY=self.REDIS_RETRY_MAX_DELAY,
        )

    @property
    def cache(self) -> "CacheSettings":
        """Get cache settings."""
        return CacheSettings(
            CACHE_MAX_SIZE=self.CACHE_MAX_SIZE,
            CACHE_DEFAULT_TTL=self.CACHE_DEFAULT_TTL,
            CACHE_DEFAULT_POLICY=self.CACHE_DEFAULT_POLICY,
            CACHE_NAMESPACE=self.CACHE_NAMESPACE,
            CACHE_STATS_KEY_LIMIT=self.CACHE_STATS_KEY_LIMIT,
            ENABLE_SHARED_CACHE=self.ENABLE_SHARED_CACHE,
        )

    @property
    def logging(self) -> "LoggingSettings":
        """Get logging settings."""
        return LoggingSettings(LOG_LEVEL=self.LOG_LEVEL, LOG_FORMAT=self.LOG_FORMAT)

    @property
    def app(self) -> "ApplicationSettings":
        """Get application settings."""
        return ApplicationSettings(
            ENVIRONMENT=self.ENVIRONMENT,
            APP_NAME=self.APP_NAME,
            APP_VERSION=self.APP_VERSION,
            API_HOST=self.API_HOST,
            API_PORT=self.API_PORT,
            CORS_ORIGINS=self.CORS_ORIGINS,
        )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )


# Global settings instance (singleton pattern)
_settings: Settings | None = None


def _load_settings() -> Settings:
    try:
        return Settings()
    except ValidationError as e:
        invalid = [".".join(str(part) for part in err["loc"]) or "settings" for err in e.errors()]
        raise ConfigurationError(
            f"Invalid configuration: {', '.join(invalid)}",
            details={"invalid_fields": invalid, "errors": str(e)},
        ) from e


def get_settings() -> Settings:
    """
    Get the global settings instance (singleton).

    STAGE-0.3: Settings initialization

    Returns:
        Settings: Global settings instance
    """
    global _settings

    if _settings is None:
        _settings = _load_settings()

    return _settings


def reload_settings() -> Settings:
    """
    Reload settings (useful for testing).

    Returns:
        Settings: New settings instance
    """
    global _settings
    _settings = _load_settings()
    return _settings
