"""Application configuration using Pydantic settings."""

from functools import lru_cache
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ---------------- DATABASE ----------------
    database_url: str = "sqlite+aiosqlite:///./agenda.db"

    # ---------------- AUTH ----------------
    jwt_secret: str = "change-me"
    jwt_algorithm: str = "HS256"
    jwt_expire_minutes: int = 60 * 24

    # ---------------- APP ----------------
    app_name: str = "Agenda"
    app_version: str = "1.0.0"
    debug: bool = False
    cors_origins: List[str] = []

    # ---------------- SCHEDULING ----------------
    default_timezone: str = "America/Sao_Paulo"
    max_recurrence_count: int = 52
    # Biweekly series only move the start forward unless this is on.
    biweekly_advance_end: bool = False

    # ---------------- REMINDERS ----------------
    reminder_webhook_url: str = ""
    reminder_webhook_timeout: float = 5.0


@lru_cache()
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
