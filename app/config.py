"""Application configuration settings."""
from __future__ import annotations

import os
from decimal import Decimal
from functools import lru_cache

from pydantic import BaseModel, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# --- Runtime toggles -----------------------------------------------------
# Execution environment: "dev" | "staging" | "prod"
ENV = os.getenv("CRIMEWATCH_ENV", "dev").lower()

# Verifier identity used when a VERIFIED disposition is applied without an admin.
AUTO_VERIFIER_ID = "system:auto-verify"


class Settings(BaseSettings):
    """Environment configuration for the CrimeWatch backend."""

    app_env: str = ENV
    database_url: str = "sqlite:///crimewatch.db"
    LOG_LEVEL: str = "INFO"
    ALLOW_DB_CREATE_ALL: bool = False
    CORS_ALLOW_ORIGINS: list[str] = [
        "http://localhost:3000",
    ]
    SENTRY_DSN: str | None = None
    PROMETHEUS_ENABLED: bool = True

    # --- Media intake ----------------------------------------------------
    MEDIA_ROOT: str = "media"
    MEDIA_MAX_BYTES: int = 10 * 1024 * 1024

    # --- Crime classifier ------------------------------------------------
    CLASSIFIER_ENABLED: bool = False
    CLASSIFIER_PROVIDER: str = "openai"
    CLASSIFIER_MODEL: str = "gpt-4.1-mini"
    CLASSIFIER_TIMEOUT_SECONDS: int = 30
    CLASSIFIER_FALLBACK_CATEGORY: str = "UNKNOWN"
    OPENAI_API_KEY: str | None = None

    # --- Workflow --------------------------------------------------------
    AUTO_VERIFY_ENABLED: bool = False

    # --- Rewards ---------------------------------------------------------
    REWARD_PROVIDER: str = "mock"
    REWARD_AMOUNT: Decimal = Decimal("0.6")
    REWARD_CURRENCY: str = "SOL"
    REWARD_GATEWAY_URL: str | None = None
    REWARD_GATEWAY_TOKEN: str | None = None
    REWARD_TIMEOUT_SECONDS: int = 15
    REWARD_EXPLORER_URL_TEMPLATE: str = "https://explorer.solana.com/tx/{reference_id}?cluster=devnet"
    # A PENDING reward untouched for this long may be re-submitted with the same idempotency key.
    REWARD_PENDING_STALE_SECONDS: int = 900

    model_config = SettingsConfigDict(
        env_file=".env", env_prefix="", env_file_encoding="utf-8"
    )

    @field_validator("REWARD_GATEWAY_URL", "REWARD_GATEWAY_TOKEN", "OPENAI_API_KEY")
    @classmethod
    def _strip_empty_secret(cls, value: str | None) -> str | None:
        """Normalise empty secrets to ``None`` for easier validation."""

        if value is None:
            return None
        cleaned = value.strip()
        return cleaned or None

    @field_validator("REWARD_PROVIDER", "CLASSIFIER_PROVIDER")
    @classmethod
    def _lower_provider(cls, value: str) -> str:
        return value.strip().lower()


class AppInfo(BaseModel):
    name: str = "crimewatch-backend"
    version: str = "0.1.0"


settings = Settings()


@lru_cache
def get_settings() -> Settings:
    """Return cached application settings."""

    return settings


__all__ = [
    "ENV",
    "AUTO_VERIFIER_ID",
    "Settings",
    "AppInfo",
    "settings",
    "get_settings",
]
