"""Application configuration via Pydantic BaseSettings."""

from __future__ import annotations

from enum import Enum
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    development = "development"
    staging = "staging"
    production = "production"


class Settings(BaseSettings):
    """Engine settings loaded from environment variables and .env file."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    # Environment
    ENVIRONMENT: Environment = Environment.development

    # Logging
    LOG_LEVEL: str = "INFO"

    # Priority worklist
    PRIORITY_LIST_LIMIT: int = 10
    HIGH_VALUE_THRESHOLD_USD: float = 1_000_000.0
    MEDIUM_VALUE_THRESHOLD_USD: float = 500_000.0

    # Flow intelligence business-risk thresholds
    LARGE_DEAL_REVENUE_USD: float = 5_000_000.0
    DRAFT_EXPIRY_WARNING_DAYS: int = 3


@lru_cache
def get_settings() -> Settings:
    """Singleton settings instance."""
    return Settings()
