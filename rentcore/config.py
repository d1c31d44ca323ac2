"""Application configuration via pydantic-settings."""

from __future__ import annotations

from decimal import Decimal
from functools import lru_cache
from typing import List, Literal, Optional

from pydantic import Field, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "Rentcore"
    app_version: str = "1.0.0"
    environment: Literal["development", "staging", "production"] = "development"
    debug: bool = False
    api_prefix: str = "/api/v1"
    log_level: str = "INFO"

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    workers: int = 4

    # Database
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_user: str = "rentcore"
    postgres_password: str = Field(default="rentcore_secret")
    postgres_db: str = "rentcore"
    db_pool_size: int = 20
    db_max_overflow: int = 10
    database_url_override: Optional[str] = None

    @computed_field
    @property
    def database_url(self) -> str:
        """Async database connection URL."""
        if self.database_url_override:
            return self.database_url_override
        return (
            f"postgresql+asyncpg://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    # Redis (Celery broker)
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_password: Optional[str] = None
    redis_db: int = 0

    @computed_field
    @property
    def redis_url(self) -> str:
        """Redis connection URL."""
        auth = f":{self.redis_password}@" if self.redis_password else ""
        return f"redis://{auth}{self.redis_host}:{self.redis_port}/{self.redis_db}"

    # JWT (tokens are issued by the identity service)
    jwt_secret_key: str = Field(default="change-me-in-production")
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 15

    # Encryption (bank account numbers)
    encryption_key: str = Field(default="your-32-byte-encryption-key-here")

    # Card processor
    stripe_secret_key: Optional[str] = None
    stripe_webhook_secret: Optional[str] = None

    # Cash voucher agency
    voucher_agency_name: str = "Nord Express"
    voucher_agency_api_url: Optional[str] = None
    voucher_agency_api_key: Optional[str] = None

    # Collaborators
    notification_service_url: Optional[str] = None
    sendgrid_api_key: Optional[str] = None
    email_from_address: str = "noreply@rentcore.example"
    email_from_name: str = "Rentcore"

    # CORS
    cors_origins: List[str] = ["http://localhost:3000"]

    # Currencies
    supported_currencies: List[str] = ["DZD", "EUR"]
    default_currency: str = "DZD"
    voucher_currencies: List[str] = ["DZD"]

    # Fees and commission (seed values; live rates live in the commission_rates table)
    guest_service_fee_rate: Decimal = Decimal("0.08")
    default_commission_rates: dict[str, Decimal] = {
        "default": Decimal("0.03"),
        "stay": Decimal("0.03"),
        "vehicle": Decimal("0.03"),
        "luxury": Decimal("0.05"),
    }
    commission_min_rate: Decimal = Decimal("0")
    commission_max_rate: Decimal = Decimal("0.5")
    luxury_threshold: Decimal = Decimal("500")
    reference_currency: str = "EUR"
    fx_rates_to_reference: dict[str, Decimal] = {
        "EUR": Decimal("1"),
        "DZD": Decimal("0.0068"),
    }

    # Timing
    escrow_release_delay_hours: int = 24
    completion_grace_hours: int = 6
    voucher_expiry_hours: int = 48
    card_payment_timeout_minutes: int = 30
    host_response_deadline_hours: int = 24
    check_in_hour: int = 14
    check_out_hour: int = 11

    # Disputes
    high_priority_dispute_amount: int = 10_000_000  # 100,000 DZD in centimes

    # Payout
    payout_time_hour: int = 6
    minimum_payout_amount: int = 100_000  # 1,000 DZD in centimes


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
