"""Application configuration with environment variables."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Environment
    ENV: str = "dev"

    # App Version (format: a.bc.de - major.feature.patch)
    VERSION: str = "0.1.0"

    # Logging
    LOG_LEVEL: str = "INFO"

    # Database
    DATABASE_URL: str

    # CORS
    CORS_ORIGINS: str = "http://localhost:3000"

    # Error Tracking (optional, set in production)
    SENTRY_DSN: str = ""

    # Payment gateway (Stripe-compatible REST API)
    STRIPE_SECRET_KEY: str = ""
    STRIPE_API_BASE: str = "https://api.stripe.com/v1"
    STRIPE_WEBHOOK_SECRET: str = ""
    STRIPE_WEBHOOK_TOLERANCE_SECONDS: int = 300  # Replay window for signed events
    PAYMENT_GATEWAY_TIMEOUT_SECONDS: float = 20.0
    PAYMENT_GATEWAY_MAX_ATTEMPTS: int = 3

    # Money
    DEFAULT_CURRENCY: str = "EUR"
    SUPPORTED_CURRENCIES: str = "EUR,USD,GBP,CHF"

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS_ORIGINS into a list."""
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]

    @property
    def supported_currencies_list(self) -> list[str]:
        """Parse SUPPORTED_CURRENCIES into an upper-case list."""
        return [c.strip().upper() for c in self.SUPPORTED_CURRENCIES.split(",") if c.strip()]

    @property
    def gateway_configured(self) -> bool:
        return bool(self.STRIPE_SECRET_KEY)


settings = Settings()
