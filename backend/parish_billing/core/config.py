"""Application configuration"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    # API
    API_V1_PREFIX: str = "/api"
    PROJECT_NAME: str = "Parish Billing API"
    VERSION: str = "0.1.0"
    DEBUG: bool = False
    ENVIRONMENT: str = "development"

    # Security
    JWT_SECRET: str
    JWT_ALGORITHM: str = "HS256"
    JWT_EXPIRATION_MINUTES: int = 1440  # 24 hours

    # Database
    DATABASE_URL: str

    # Redis (token blacklist)
    REDIS_URL: str = "redis://localhost:6379/0"

    # Razorpay
    # WHY: Key id/secret authenticate API calls and sign checkout payments;
    # the webhook secret signs inbound webhook bodies (configured separately
    # in the Razorpay dashboard).
    RAZORPAY_KEY_ID: str
    RAZORPAY_KEY_SECRET: str
    RAZORPAY_WEBHOOK_SECRET: str

    # Billing
    # WHY: Used when the gateway does not supply billing period dates
    BILLING_FALLBACK_PERIOD_DAYS: int = 30
    DEFAULT_BILLING_COUNTRY: str = "India"
    DEFAULT_CURRENCY: str = "INR"
    PAYMENT_HISTORY_LIMIT: int = 50

    # CORS
    CORS_ORIGINS: list[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ]

    @property
    def is_production(self) -> bool:
        """
        Check if running in production.

        WHY: Checkout responses advertise test mode outside production so
        the frontend can load Razorpay test keys.
        """
        return self.ENVIRONMENT.lower() == "production"

    @property
    def async_database_url(self) -> str:
        """Get async database URL"""
        return self.DATABASE_URL.replace("postgresql://", "postgresql+asyncpg://")


settings = Settings()
