"""Runtime settings for the availability scheduling engine."""

from __future__ import annotations

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from ``AVAILABILITY_*`` environment variables."""

    max_occurrences: int = 104
    never_daily_occurrences: int = 30
    never_weekly_occurrences: int = 52
    never_biweekly_occurrences: int = 26
    default_title: str = "Available"
    log_level: str = "INFO"
    log_format: str = "%(asctime)s %(levelname)s %(name)s: %(message)s"

    model_config = SettingsConfigDict(env_prefix="AVAILABILITY_", env_file=".env")


@lru_cache
def get_settings() -> Settings:
    return Settings()
