from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "AdScreen Ledger API"
    database_url: str = "sqlite:///ad_ledger.db"
    log_level: str = "INFO"

    jwt_secret: str = "dev-only-secret-change-me-in-production"
    jwt_algorithm: str = "HS256"

    stripe_secret_key: str = ""
    stripe_webhook_secret: str = ""
    webhook_tolerance_seconds: int = 300
    currency: str = "usd"

    # Money settings are in minor units (cents).
    minimum_deposit: int = Field(default=1000, ge=1)
    minimum_payout: int = Field(default=10000, ge=1)
    default_commission_bps: int = Field(default=2000, ge=0, le=10000)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="ADLEDGER_",
        extra="ignore",
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
