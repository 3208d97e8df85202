"""
Focusly — Centralized configuration.

Loads all settings from .env and validates required keys.
This module is the foundation for every other module in the project.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, field_validator

# Load .env from project root (two levels up from focusly/config.py)
_ENV_PATH = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_ENV_PATH)


class Settings(BaseModel):
    """Application settings loaded from environment variables."""

    # Telegram
    TELEGRAM_BOT_TOKEN: str

    # LLM — provider-agnostic (openai, anthropic)
    LLM_PROVIDER: str = "openai"
    LLM_API_KEY: str
    LLM_MODEL_HIGH: str = ""       # empty → smart default per provider
    LLM_MODEL_STANDARD: str = ""
    LLM_MAX_RETRIES: int = 3

    # SQLite
    DATABASE_PATH: str = "data/focusly.db"

    # Wall clock used for trigger ticks and new users
    TIMEZONE: str = "Africa/Lagos"

    # Paystack
    PAYSTACK_SECRET_KEY: str = ""
    PAYSTACK_BASIC_URL: str = "https://paystack.com/pay/focusly-basic"
    PAYSTACK_PREMIUM_URL: str = "https://paystack.com/pay/focusly-premium"

    # Payment webhook server (0 disables it)
    WEBHOOK_HOST: str = "0.0.0.0"
    WEBHOOK_PORT: int = 0

    # Access policy
    TRIAL_DAYS: int = 14
    TRIAL_DAILY_LIMIT: int = 5
    BASIC_WEEKLY_LIMIT: int = 10
    SUBSCRIPTION_DAYS: int = 30
    USER_RETENTION_DAYS: int = 180

    @field_validator(
        "LLM_MAX_RETRIES",
        "WEBHOOK_PORT",
        "TRIAL_DAYS",
        "TRIAL_DAILY_LIMIT",
        "BASIC_WEEKLY_LIMIT",
        "SUBSCRIPTION_DAYS",
        "USER_RETENTION_DAYS",
        mode="before",
    )
    @classmethod
    def parse_int(cls, v: str | int) -> int:
        if isinstance(v, str) and not v.strip():
            raise ValueError("must not be empty")
        return int(v)

    @field_validator("LLM_PROVIDER", mode="before")
    @classmethod
    def parse_provider(cls, v: str) -> str:
        return v.strip().lower()


def _load_settings() -> Settings:
    """Load settings from environment, validating required keys."""
    token = os.getenv("TELEGRAM_BOT_TOKEN", "")
    llm_api_key = os.getenv("LLM_API_KEY", "")

    if not token or token.startswith("your-"):
        print("ERROR: TELEGRAM_BOT_TOKEN is missing or not set in .env", file=sys.stderr)
        sys.exit(1)

    if not llm_api_key or llm_api_key.startswith("your-"):
        print("ERROR: LLM_API_KEY is missing or not set in .env", file=sys.stderr)
        sys.exit(1)

    return Settings(
        TELEGRAM_BOT_TOKEN=token,
        LLM_PROVIDER=os.getenv("LLM_PROVIDER", "openai"),
        LLM_API_KEY=llm_api_key,
        LLM_MODEL_HIGH=os.getenv("LLM_MODEL_HIGH", ""),
        LLM_MODEL_STANDARD=os.getenv("LLM_MODEL_STANDARD", ""),
        LLM_MAX_RETRIES=os.getenv("LLM_MAX_RETRIES", "3"),
        DATABASE_PATH=os.getenv("DATABASE_PATH", "data/focusly.db"),
        TIMEZONE=os.getenv("TIMEZONE", "Africa/Lagos"),
        PAYSTACK_SECRET_KEY=os.getenv("PAYSTACK_SECRET_KEY", ""),
        PAYSTACK_BASIC_URL=os.getenv(
            "PAYSTACK_BASIC_URL", "https://paystack.com/pay/focusly-basic",
        ),
        PAYSTACK_PREMIUM_URL=os.getenv(
            "PAYSTACK_PREMIUM_URL", "https://paystack.com/pay/focusly-premium",
        ),
        WEBHOOK_HOST=os.getenv("WEBHOOK_HOST", "0.0.0.0"),
        WEBHOOK_PORT=os.getenv("WEBHOOK_PORT", "0"),
        TRIAL_DAYS=os.getenv("TRIAL_DAYS", "14"),
        TRIAL_DAILY_LIMIT=os.getenv("TRIAL_DAILY_LIMIT", "5"),
        BASIC_WEEKLY_LIMIT=os.getenv("BASIC_WEEKLY_LIMIT", "10"),
        SUBSCRIPTION_DAYS=os.getenv("SUBSCRIPTION_DAYS", "30"),
        USER_RETENTION_DAYS=os.getenv("USER_RETENTION_DAYS", "180"),
    )


# Singleton — imported by all other modules as:
#   from focusly.config import settings
settings = _load_settings()
