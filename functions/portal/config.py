"""
Configuration and settings for the portal service.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-backed settings for the FastAPI service and Cloud Functions."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    api_prefix: str = Field(default="/api")

    # Document store: Firestore in production, SQL for self-hosting, memory for dev/tests.
    store_backend: Literal["memory", "sql", "firestore"] = Field(
        default="memory", validation_alias="PORTAL_STORE_BACKEND"
    )
    database_url: Optional[str] = Field(default=None, validation_alias="DATABASE_URL")

    # Thread pool size for cascades and multi-document reads.
    cascade_max_workers: int = Field(
        default=8, ge=1, validation_alias="PORTAL_CASCADE_MAX_WORKERS"
    )

    # Mail
    mail_copy_address: str = Field(
        default="prehospital@festival-medical.org",
        validation_alias="PORTAL_MAIL_COPY_ADDRESS",
    )

    # 2FA reset
    two_factor_reset_url: str = Field(
        default="https://portal.fmsprehospital.co.uk/confirm-2fa-reset.html",
        validation_alias="PORTAL_2FA_RESET_URL",
    )
    two_factor_token_ttl_minutes: int = Field(
        default=30, ge=1, validation_alias="PORTAL_2FA_TOKEN_TTL_MINUTES"
    )

    # Stripe checkout defaults when a session omits them.
    default_payment_amount: float = Field(
        default=30, validation_alias="PORTAL_DEFAULT_PAYMENT_AMOUNT"
    )
    default_payment_currency: str = Field(
        default="gbp", validation_alias="PORTAL_DEFAULT_PAYMENT_CURRENCY"
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
