"""Configuration management for the short-link lifecycle service.

This module provides centralized configuration management using Pydantic BaseSettings
with environment variable support and caching for performance.

Flow Diagram — get_settings()
=============================
::
    ┌─────────────┐
    │  Call get_  │
    │  settings() │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Check cache  │
    │ (lru_cache)  │
    └──────┬──────┘
    HIT?  │
    ┌─────┴─────┐
    │ NO         │ YES
    ▼            ▼
┌─────────┐  ┌─────────┐
│ Create  │  │ Return  │
│ Settings│  │ cached  │
│ instance│  │ value   │
└─────────┘  └─────────┘

How to Use
===========
**Step 1 — Import**::
    from shortener.config import get_settings

**Step 2 — Get settings**::
    settings = get_settings()
    interval = settings.SWEEP_INTERVAL_SECONDS

**Step 3 — Override in tests**::
    settings = Settings(STORAGE_BACKEND="memory", DEFAULT_MAX_CLICKS=3)

Key Behaviours
===============
- Settings are cached after first access for performance.
- Environment variables override defaults automatically.
- Code generation constants (length, retries, hex truncation) live here so the
  generator never hardcodes them.
- The sweep interval is configuration, not an engine constant.

Classes:
    Settings:  Pydantic model for all configuration values.

"""

__all__ = ["Settings", "get_settings"]

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    APP_NAME: str = "short-link-service"
    APP_ENV: str = "development"
    BASE_URL: str = "clck.ru"
    LOG_LEVEL: str = "INFO"

    # Collaborator selection
    STORAGE_BACKEND: Literal["sql", "memory"] = "sql"
    NOTIFIER_BACKEND: Literal["redis", "memory"] = "redis"

    # PostgreSQL
    DATABASE_URL: str = "postgresql+asyncpg://shortener:shortener@db:5432/shortener"

    # Redis
    REDIS_URL: str = "redis://redis:6379/0"
    NOTIFICATION_KEY_PREFIX: str = "notifications"

    # Short code generation
    SHORT_CODE_LENGTH: int = 7
    MAX_COLLISION_ATTEMPTS: int = 10
    HEX_TRUNCATION_LENGTH: int = 15
    RESERVE_ATTEMPTS: int = 3

    # Link lifecycle defaults
    DEFAULT_MAX_CLICKS: int = 100
    DEFAULT_EXPIRATION_HOURS: int = 24

    # Expiry sweep
    SWEEP_INTERVAL_SECONDS: float = 300.0

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
    )


@lru_cache()
def get_settings() -> Settings:
    return Settings()
