"""
Configuration and settings for the backfill scripts.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-backed settings shared by every migration script."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    # Any SQLAlchemy URL (Postgres in production, SQLite for local runs).
    database_url: Optional[str] = Field(default=None)

    backfill_batch_size: int = Field(default=100, gt=0)
    slug_max_conflict_retries: int = Field(default=5, ge=1)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
