"""
Configuration and settings for the Splan backend.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-backed settings for the FastAPI service."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    api_prefix: str = Field(default="/api/v1")
    environment: str = Field(
        default="development",
        validation_alias=AliasChoices("NODE_ENV", "APP_ENV", "environment"),
    )

    # Database (Postgres expected, any SQLAlchemy URL works)
    database_url: Optional[str] = Field(default=None)

    # Optional cache (Redis)
    redis_url: Optional[str] = Field(default=None)
    redis_socket_timeout: float = Field(default=5.0)
    cache_key_prefix: str = Field(default="splan")
    cache_ttl_seconds: int = Field(default=300)

    # Development toggles
    use_in_memory_backends: bool = Field(
        default=False,
        validation_alias=AliasChoices(
            "SPLAN_USE_IN_MEMORY_BACKENDS", "use_in_memory_backends"
        ),
    )

    # Auth
    jwt_secret: str = Field(default="splan-development-secret")
    jwt_expires_days: int = Field(default=7)

    # LLM / Gemini
    gemini_api_key: Optional[str] = Field(default=None)
    gemini_model: str = Field(default="gemini-2.5-flash")
    ai_max_requests_per_minute: int = Field(default=10)

    # HTTP surface
    rate_limit_max_requests: int = Field(default=100)
    rate_limit_window_seconds: int = Field(default=900)
    cors_origin: str = Field(default="http://localhost:3001")
    log_level: str = Field(default="INFO")

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
