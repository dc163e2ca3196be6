"""
Brainwriting – Application configuration.
Reads environment variables from a .env file via pydantic-settings.
"""

from typing import Literal

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Central configuration loaded from environment / .env."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── App ──
    APP_NAME: str = "Brainwriting"
    DEBUG: bool = True

    # ── Database ──
    DATABASE_URL: str = "sqlite+aiosqlite:///./brainwriting.db"

    # ── JWT ──
    SECRET_KEY: str = "change-me-to-a-random-secret"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60

    # ── Boards ──
    MAX_PARTICIPANTS: int = 6
    MIN_PARTICIPANTS: int = 2
    SHEET_COLUMNS: int = 3
    CELL_MAX_LENGTH: int = 100

    # ── Leases ──
    LEASE_TTL_MINUTES: int = Field(
        default=10,
        validation_alias=AliasChoices("LEASE_TTL_MINUTES", "BRAINWRITING_LOCK_DURATION_MINUTES"),
    )

    # ── Abandonment sweep ──
    ABANDON_POLICY: Literal["blank", "purge"] = "blank"
    SWEEP_ON_WRITE: bool = True
    SWEEP_INTERVAL_SECONDS: int = 0

    # ── Realtime notifications ──
    REALTIME_PUBLISH_URL: str = ""
    REALTIME_TIMEOUT_SECONDS: float = 5.0


settings = Settings()
