"""Application configuration."""
from functools import lru_cache

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings."""

    # App
    app_env: str = "development"
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    app_debug: bool = True
    log_level: str = "DEBUG"

    # Tournament
    entry_fee: int = Field(
        default=10_000_000_000_000_000,
        ge=0,
        description="Minimum stake per agent, in the smallest currency unit",
    )
    admin_ids: str = Field(
        default="",
        description="Comma-separated caller identities holding administrative authority",
    )

    # Storage
    store_backend: str = Field(
        default="memory",
        description="Ledger storage backend: memory or redis",
    )
    redis_url: str | None = Field(
        default=None,
        description="Redis connection URL (required when store_backend=redis)",
    )
    redis_key_prefix: str = "tournament"
    redis_socket_timeout: float = 5.0

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level

    @field_validator("store_backend")
    @classmethod
    def validate_store_backend(cls, v: str) -> str:
        backend = v.strip().lower()
        if backend not in {"memory", "redis"}:
            raise ValueError("store_backend must be 'memory' or 'redis'")
        return backend

    @model_validator(mode="after")
    def validate_redis_settings(self) -> "Settings":
        if self.store_backend == "redis" and not self.redis_url:
            raise ValueError("redis_url is required when store_backend is 'redis'")
        return self

    @property
    def admin_id_list(self) -> list[str]:
        """Parsed administrator identities."""
        return [a.strip() for a in self.admin_ids.split(",") if a.strip()]

    model_config = {
        "env_file": ".env",
        "extra": "ignore",
    }


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
