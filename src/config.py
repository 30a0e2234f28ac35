"""
Planner Sync — Centralized configuration.

Loads all settings from .env and validates them.
This module is the foundation for every other module in the project.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv
from pydantic import BaseModel, ValidationError, field_validator

# Load .env from project root (two levels up from src/config.py)
_ENV_PATH = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_ENV_PATH)


class Settings(BaseModel):
    """Application settings loaded from environment variables."""

    # SQLite
    DATABASE_PATH: str = "data/planner.db"

    # Local timezone used for "today", default block hours and time extraction
    TIMEZONE: str = "UTC"

    # Task -> TimeBlock sync
    DEFAULT_BLOCK_START_HOUR: int = 9
    DEFAULT_BLOCK_MINUTES: int = 60

    # Tasks created from AI intents
    DEFAULT_TASK_COLOR: str = "#3b82f6"

    # Daily maintenance
    CLEANUP_OLDER_THAN_DAYS: int = 30

    LOG_LEVEL: str = "INFO"

    @field_validator("TIMEZONE")
    @classmethod
    def check_timezone(cls, v: str) -> str:
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"Unknown timezone: {v!r}") from exc
        return v

    @field_validator("DEFAULT_BLOCK_START_HOUR", mode="before")
    @classmethod
    def parse_hour(cls, v: str | int) -> int:
        hour = int(v)
        if not 0 <= hour <= 23:
            raise ValueError(f"Hour out of range: {hour}")
        return hour

    @field_validator("DEFAULT_BLOCK_MINUTES", "CLEANUP_OLDER_THAN_DAYS", mode="before")
    @classmethod
    def parse_positive(cls, v: str | int) -> int:
        value = int(v)
        if value <= 0:
            raise ValueError(f"Must be positive: {value}")
        return value

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.TIMEZONE)


def _load_settings() -> Settings:
    """Load settings from environment, exiting on invalid values."""
    try:
        return Settings(
            DATABASE_PATH=os.getenv("DATABASE_PATH", "data/planner.db"),
            TIMEZONE=os.getenv("TIMEZONE", "UTC"),
            DEFAULT_BLOCK_START_HOUR=os.getenv("DEFAULT_BLOCK_START_HOUR", "9"),
            DEFAULT_BLOCK_MINUTES=os.getenv("DEFAULT_BLOCK_MINUTES", "60"),
            DEFAULT_TASK_COLOR=os.getenv("DEFAULT_TASK_COLOR", "#3b82f6"),
            CLEANUP_OLDER_THAN_DAYS=os.getenv("CLEANUP_OLDER_THAN_DAYS", "30"),
            LOG_LEVEL=os.getenv("LOG_LEVEL", "INFO"),
        )
    except ValidationError as exc:
        print(f"ERROR: invalid configuration in .env:\n{exc}", file=sys.stderr)
        sys.exit(1)


# Singleton — imported by all other modules as:
#   from src.config import settings
settings = _load_settings()
