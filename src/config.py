"""
LifeOS Reminders — Centralized configuration.

Loads all settings from .env and validates them.
This module is the foundation for every other module in the project.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv
from pydantic import BaseModel, field_validator

# Load .env from project root (two levels up from src/config.py)
_ENV_PATH = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_ENV_PATH)


class Settings(BaseModel):
    """Application settings loaded from environment variables."""

    # SQLite
    DATABASE_PATH: str = "data/reminders.db"

    # Fallback timezone for owners whose settings record has none
    TIMEZONE: str = "America/Chicago"

    # Telegram (optional — only needed for push delivery)
    TELEGRAM_BOT_TOKEN: str = ""

    # Owners processed by `python main.py`
    OWNER_IDS: list[int] = []

    # Housekeeping
    STALE_DELIVERED_DAYS: int = 30
    MAX_DAILY_PUSH: int = 5

    LOG_LEVEL: str = "INFO"

    @field_validator("OWNER_IDS", mode="before")
    @classmethod
    def parse_owner_ids(cls, v: str | list[int]) -> list[int]:
        if isinstance(v, list):
            return v
        if isinstance(v, str) and v.strip():
            return [int(uid.strip()) for uid in v.split(",") if uid.strip()]
        return []

    @field_validator("STALE_DELIVERED_DAYS", "MAX_DAILY_PUSH", mode="before")
    @classmethod
    def parse_int(cls, v: str | int) -> int:
        return int(v)

    @field_validator("TIMEZONE")
    @classmethod
    def check_timezone(cls, v: str) -> str:
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"Unknown timezone {v!r}") from exc
        return v


def _load_settings() -> Settings:
    """Load settings from environment, validating the timezone."""
    timezone = os.getenv("TIMEZONE", "America/Chicago")
    try:
        ZoneInfo(timezone)
    except (ZoneInfoNotFoundError, ValueError):
        print(f"ERROR: TIMEZONE {timezone!r} is not a known IANA zone", file=sys.stderr)
        sys.exit(1)

    return Settings(
        DATABASE_PATH=os.getenv("DATABASE_PATH", "data/reminders.db"),
        TIMEZONE=timezone,
        TELEGRAM_BOT_TOKEN=os.getenv("TELEGRAM_BOT_TOKEN", ""),
        OWNER_IDS=os.getenv("OWNER_IDS", ""),
        STALE_DELIVERED_DAYS=os.getenv("STALE_DELIVERED_DAYS", "30"),
        MAX_DAILY_PUSH=os.getenv("MAX_DAILY_PUSH", "5"),
        LOG_LEVEL=os.getenv("LOG_LEVEL", "INFO"),
    )


# Singleton — imported by all other modules as:
#   from src.config import settings
settings = _load_settings()
