"""Application configuration using pydantic-settings pattern."""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    app_name: str = "claimlink"
    app_version: str = "0.1.0"
    app_env: str = Field(default="development")
    log_level: str = Field(default="INFO")

    # Database (Turso)
    turso_database_url: str | None = Field(default=None)
    turso_auth_token: str | None = Field(default=None)

    # Matching
    name_metric: Literal["token_sort", "overlap"] = Field(
        default="token_sort",
        description="Name similarity metric used by the confidence scorer",
    )
    record_min_confidence: int = Field(
        default=50,
        ge=0,
        le=100,
        description="Minimum score for participant/project candidates",
    )
    submission_min_confidence: int = Field(
        default=60,
        ge=0,
        le=100,
        description="Minimum score for pending submission candidates",
    )
    submission_window_days: int = Field(default=30, ge=1)
    match_cache_ttl_seconds: float = Field(default=300.0, gt=0)

    # Claims
    self_service_threshold: int = Field(
        default=80,
        ge=0,
        le=100,
        description="Confidence needed for a self-service claim without email match",
    )
    reassignment_policy: Literal["allow", "require_unclaim"] = Field(
        default="allow",
        description="Whether admin force-claim may overwrite an existing holder",
    )
    audit_unclaims: bool = Field(default=True)
    audit_page_cap: int = Field(default=50, ge=1)
    store_retry_attempts: int = Field(default=3, ge=1)

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
