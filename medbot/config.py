"""
MedBot — Centralized configuration.

Loads all settings from .env and validates required keys.
This module is the foundation for every other module in the project.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, field_validator

# Load .env from project root (one level up from medbot/config.py)
_ENV_PATH = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_ENV_PATH)


class Settings(BaseModel):
    """Application settings loaded from environment variables."""

    # LINE Messaging API
    LINE_CHANNEL_ACCESS_TOKEN: str
    LINE_CHANNEL_SECRET: str = ""   # empty → webhook signatures are not checked

    # SQLite document store shared with the app side
    DATABASE_PATH: str = "data/medbot.db"

    # Wall clock used for medicine records
    TIMEZONE: str = "Asia/Taipei"

    # Webhook server
    HOST: str = "0.0.0.0"
    PORT: int = 3000

    # How many medicine records the history reply shows
    RECORD_HISTORY_LIMIT: int = 5

    LOG_LEVEL: str = "INFO"

    @field_validator("PORT", "RECORD_HISTORY_LIMIT", mode="before")
    @classmethod
    def parse_int(cls, v: str | int) -> int:
        return int(v)

    @field_validator("LOG_LEVEL", mode="before")
    @classmethod
    def parse_level(cls, v: str) -> str:
        return (v or "INFO").upper()


def _is_placeholder(value: str) -> bool:
    return not value or value.lower().startswith("your-") or value.startswith("YOUR_")


def _load_settings() -> Settings:
    """Load settings from environment, validating required keys."""
    token = os.getenv("LINE_CHANNEL_ACCESS_TOKEN", "")

    if _is_placeholder(token):
        print("ERROR: LINE_CHANNEL_ACCESS_TOKEN is missing or not set in .env", file=sys.stderr)
        sys.exit(1)

    secret = os.getenv("LINE_CHANNEL_SECRET", "")
    if _is_placeholder(secret):
        secret = ""

    return Settings(
        LINE_CHANNEL_ACCESS_TOKEN=token,
        LINE_CHANNEL_SECRET=secret,
        DATABASE_PATH=os.getenv("DATABASE_PATH", "data/medbot.db"),
        TIMEZONE=os.getenv("TIMEZONE", "Asia/Taipei"),
        HOST=os.getenv("HOST", "0.0.0.0"),
        PORT=os.getenv("PORT", "3000"),
        RECORD_HISTORY_LIMIT=os.getenv("RECORD_HISTORY_LIMIT", "5"),
        LOG_LEVEL=os.getenv("LOG_LEVEL", "INFO"),
    )


# Singleton, imported by all other modules as:
#   from medbot.config import settings
settings = _load_settings()
