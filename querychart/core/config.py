"""
Centralised engine settings loaded from environment / .env file.
"""
from __future__ import annotations

from pathlib import Path
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict
from dotenv import load_dotenv

# Load .env from project root (two levels up from this file)
_ENV_PATH = Path(__file__).resolve().parents[2] / ".env"
load_dotenv(_ENV_PATH)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Time handling ────────────────────────────────────
    default_time_zone: str = "UTC"
    max_data_points: int = 1000
    fallback_interval_seconds: int = 60

    # ── Field analysis ───────────────────────────────────
    sample_size: int = 100
    date_ratio_threshold: float = 0.8

    # ── App ──────────────────────────────────────────────
    api_port: int = 8000
    log_level: str = "INFO"


@lru_cache
def get_settings() -> Settings:
    return Settings()
