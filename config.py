# config.py
from __future__ import annotations

from functools import lru_cache
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_UPSTREAM_URL = "http://20.244.56.144/evaluation-service"


class Settings(BaseSettings):
    """Service settings loaded from the environment and an optional .env file."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Networking / Service
    HOST: str = "0.0.0.0"
    PORT: int = 9876
    LOG_LEVEL: str = "INFO"

    # Upstream
    NUMBERS_API_BASE_URL: str = DEFAULT_UPSTREAM_URL
    STOCK_API_BASE_URL: str = DEFAULT_UPSTREAM_URL
    ACCESS_TOKEN: Optional[str] = None
    TOKEN_TYPE: str = "Bearer"
    NUMBERS_TIMEOUT_MS: int = Field(500, gt=0)
    STOCK_TIMEOUT_SEC: float = Field(10.0, gt=0)

    # Window
    WINDOW_SIZE: int = Field(10, gt=0, description="Capacity of the number window")

    # Cache
    CACHE_TTL_SEC: float = Field(300.0, gt=0)
    CURRENT_PRICE_TTL_SEC: float = Field(60.0, gt=0)
    CACHE_SWEEP_SEC: float = Field(60.0, gt=0)
    DEFAULT_MINUTES: int = Field(50, gt=0)

    # Middleware
    RATE_LIMIT_MAX: int = Field(100, gt=0)
    RATE_LIMIT_WINDOW_SEC: float = Field(15 * 60, gt=0)
    CORS_ORIGINS: List[str] = Field(default_factory=lambda: ["*"])


@lru_cache
def get_settings() -> Settings:
    """Load settings once per process."""

    return Settings()
