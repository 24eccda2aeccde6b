"""
Centralized configuration management with Pydantic Settings.
All environment variables are validated and typed.
"""
from functools import lru_cache
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _split_csv(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "Storefront Orders API"
    app_version: str = "1.0.0"
    debug: bool = False
    environment: str = Field(default="development", pattern="^(development|staging|test|production)$")

    # Server
    host: str = "0.0.0.0"
    port: int = 8000

    # Database
    database_url: str = "sqlite+aiosqlite:///./storefront.db"
    database_pool_size: int = 20
    database_max_overflow: int = 10
    database_echo: bool = False

    # Security
    secret_key: str = Field(min_length=32)
    jwt_algorithm: str = "HS256"

    # Owner access to the admin API. Both unset means the admin API is closed.
    owner_id: Optional[str] = None
    owner_token: Optional[str] = None

    # Payment webhooks
    webhook_secret: Optional[str] = None
    webhook_tolerance_seconds: int = 300

    # Payment validation - comma-separated to avoid JSON parsing issues
    supported_currencies_str: str = Field(
        default="USD,EUR,GBP,CAD,AUD,JPY,CHF,SEK,NOK,DKK",
        alias="SUPPORTED_CURRENCIES",
    )
    supported_payment_methods_str: str = Field(
        default="card,paypal,apple_pay,google_pay,bank_transfer",
        alias="SUPPORTED_PAYMENT_METHODS",
    )
    max_payment_amount: float = 999_999.99

    @property
    def supported_currencies(self) -> List[str]:
        """Parse supported currencies from comma-separated string."""
        return [code.upper() for code in _split_csv(self.supported_currencies_str)]

    @property
    def supported_payment_methods(self) -> List[str]:
        """Parse supported payment methods from comma-separated string."""
        return _split_csv(self.supported_payment_methods_str)

    # Suspicious activity heuristics
    suspicious_window_seconds: int = 60
    suspicious_max_payments: int = 5
    suspicious_amount_multiplier: float = 10.0
    suspicious_amount_floor: float = 1000.0

    # Order numbers
    order_number_padding: int = Field(default=4, ge=1, le=12)

    # CORS
    allowed_origins_str: str = Field(default="http://localhost:3000", alias="ALLOWED_ORIGINS")

    @property
    def allowed_origins(self) -> List[str]:
        """Parse allowed origins from comma-separated string."""
        return _split_csv(self.allowed_origins_str)

    # Notifications
    resend_api_key: Optional[str] = None
    mail_from: str = "Orders <orders@storefront.dev>"

    # Observability
    sentry_dsn: Optional[str] = None
    log_level: str = "INFO"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
