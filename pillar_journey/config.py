"""
Pillar Journey — Centralized configuration.

Loads all settings from .env and validates required keys.
This module is the foundation for every other module in the project.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, field_validator

# Load .env from project root (one level up from pillar_journey/config.py)
_ENV_PATH = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_ENV_PATH)

_MODES = ("guided", "flexible", "intensive")
_PLAN_PROVIDERS = ("template", "llm")
_LLM_PROVIDERS = ("gemini", "anthropic", "openai", "cohere")


class Settings(BaseModel):
    """Application settings loaded from environment variables."""

    # SQLite
    DATABASE_PATH: str = "data/journeys.db"

    # Journeys
    DEFAULT_JOURNEY_MODE: str = "guided"
    DEFAULT_RECOMMENDED_PILLAR: str = "self_care"

    # Plan generation: "template" (offline) | "llm"
    PLAN_PROVIDER: str = "template"
    PLAN_GENERATION_TIMEOUT_SECONDS: float = 120.0
    PLAN_DAY_START: str = "09:00"

    # LLM — provider-agnostic (gemini, anthropic, openai, cohere)
    LLM_PROVIDER: str = "gemini"
    LLM_MODEL: str = ""          # empty → smart default per provider
    LLM_API_KEY: str = ""

    TIMEZONE: str = "Europe/Stockholm"

    @field_validator("DEFAULT_JOURNEY_MODE", mode="before")
    @classmethod
    def parse_mode(cls, v: str) -> str:
        mode = (v or "guided").strip().lower()
        if mode not in _MODES:
            raise ValueError(f"DEFAULT_JOURNEY_MODE must be one of {_MODES}, got {v!r}")
        return mode

    @field_validator("PLAN_PROVIDER", mode="before")
    @classmethod
    def parse_plan_provider(cls, v: str) -> str:
        provider = (v or "template").strip().lower()
        if provider not in _PLAN_PROVIDERS:
            raise ValueError(f"PLAN_PROVIDER must be one of {_PLAN_PROVIDERS}, got {v!r}")
        return provider

    @field_validator("LLM_PROVIDER", mode="before")
    @classmethod
    def parse_llm_provider(cls, v: str) -> str:
        provider = (v or "gemini").strip().lower()
        if provider not in _LLM_PROVIDERS:
            raise ValueError(f"LLM_PROVIDER must be one of {_LLM_PROVIDERS}, got {v!r}")
        return provider

    @field_validator("PLAN_GENERATION_TIMEOUT_SECONDS", mode="before")
    @classmethod
    def parse_timeout(cls, v: str | float) -> float:
        return float(v)

    @field_validator("PLAN_DAY_START")
    @classmethod
    def parse_day_start(cls, v: str) -> str:
        hour, _, minute = v.partition(":")
        if not (hour.isdigit() and minute.isdigit()):
            raise ValueError(f"PLAN_DAY_START must be HH:MM, got {v!r}")
        if not (0 <= int(hour) <= 23 and 0 <= int(minute) <= 59):
            raise ValueError(f"PLAN_DAY_START out of range: {v!r}")
        return f"{int(hour):02d}:{int(minute):02d}"


def _load_settings() -> Settings:
    """Load settings from environment, validating required keys."""
    plan_provider = os.getenv("PLAN_PROVIDER", "template")
    llm_api_key = os.getenv("LLM_API_KEY", "")

    if plan_provider.strip().lower() == "llm" and (
        not llm_api_key or llm_api_key.startswith("your-")
    ):
        print("ERROR: PLAN_PROVIDER=llm but LLM_API_KEY is missing in .env", file=sys.stderr)
        sys.exit(1)

    return Settings(
        DATABASE_PATH=os.getenv("DATABASE_PATH", "data/journeys.db"),
        DEFAULT_JOURNEY_MODE=os.getenv("DEFAULT_JOURNEY_MODE", "guided"),
        DEFAULT_RECOMMENDED_PILLAR=os.getenv("DEFAULT_RECOMMENDED_PILLAR", "self_care"),
        PLAN_PROVIDER=plan_provider,
        PLAN_GENERATION_TIMEOUT_SECONDS=os.getenv("PLAN_GENERATION_TIMEOUT_SECONDS", "120"),
        PLAN_DAY_START=os.getenv("PLAN_DAY_START", "09:00"),
        LLM_PROVIDER=os.getenv("LLM_PROVIDER", "gemini"),
        LLM_MODEL=os.getenv("LLM_MODEL", ""),
        LLM_API_KEY=llm_api_key,
        TIMEZONE=os.getenv("TIMEZONE", "Europe/Stockholm"),
    )


# Singleton — imported by all other modules as:
#   from pillar_journey.config import settings
settings = _load_settings()
