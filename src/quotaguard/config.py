"""Application configuration via environment variables."""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file."""

    environment: str = "development"
    log_level: str = "INFO"
    api_host: str = "0.0.0.0"
    api_port: int = 8787
    cors_origins: str = "*"

    # Rate limiting
    rate_limit_enabled: bool = True

    # Sweeper: removes windows that expired more than sweep_grace_ms ago
    sweep_interval_seconds: float = Field(default=60.0, gt=0)
    sweep_grace_ms: int = Field(default=0, ge=0)

    # Identifier resolution
    domain_header: str = "X-Client-Domain"
    domain_query_param: str = "domain"
    trust_proxy_headers: bool = True

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}


@lru_cache
def get_settings() -> Settings:
    """Return cached settings singleton."""
    return Settings()
