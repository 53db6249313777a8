"""
app/core/config.py

Purpose: Application configuration

- Loads environment variables
- Centralizes config values (DB URI, secrets, etc.)
- Validates configuration on startup
- Environment-specific settings
"""

from pydantic import Field, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional, Literal


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    Validates all required configs on startup.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Environment
    ENVIRONMENT: Literal["development", "staging", "production"] = "development"

    # MongoDB
    MONGODB_URL: str = Field(
        default="mongodb://localhost:27017",
        description="MongoDB connection URI"
    )
    MONGODB_DB_NAME: str = Field(
        default="marketplace",
        description="MongoDB database name"
    )

    # Auth
    SECRET_KEY: str = Field(
        default="change-me-in-production",
        description="Secret used to sign session tokens"
    )
    JWT_ALGORITHM: str = Field(
        default="HS256",
        description="Session token signing algorithm"
    )
    JWT_EXPIRE_DAYS: int = Field(
        default=30,
        description="Session token lifetime in days"
    )
    GOOGLE_CLIENT_ID: Optional[str] = Field(
        default=None,
        description="Google OAuth client ID; the Google bridge rejects every call when unset"
    )
    GOOGLE_TOKENINFO_URL: str = Field(
        default="https://oauth2.googleapis.com/tokeninfo",
        description="Google endpoint used to verify ID tokens"
    )
    GOOGLE_TIMEOUT: float = Field(
        default=10.0,
        description="Google tokeninfo request timeout in seconds"
    )

    # Cleanup job
    CLEANUP_CRON_ENABLED: bool = Field(
        default=True,
        description="Start the profile cleanup loop with the application"
    )
    CLEANUP_INTERVAL_SECONDS: int = Field(
        default=300,
        description="Seconds between two cleanup runs"
    )
    CLEANUP_KEEP_UPGRADE_HISTORY: bool = Field(
        default=True,
        description="Move expired upgrades to history instead of deleting them"
    )

    # Billing
    INVOICE_EXPIRY_HOURS: int = Field(
        default=24,
        description="Hours a pending invoice stays payable"
    )

    # Verification
    VERIFICATION_MIN_ACCOUNT_AGE_MONTHS: int = Field(
        default=12,
        description="Account age (months) that counts as a verified step"
    )
    VERIFICATION_CONTACT_STABLE_MONTHS: int = Field(
        default=3,
        description="Months without contact changes that count as consistent"
    )

    # Rate Limiting
    RATE_LIMIT_COUPON_ATTEMPTS: int = Field(
        default=10,
        description="Maximum coupon validations per client per window"
    )
    RATE_LIMIT_COUPON_WINDOW_SECONDS: int = Field(
        default=900,
        description="Coupon validation rate limit window"
    )
    RATE_LIMIT_LOGIN_ATTEMPTS: int = Field(
        default=5,
        description="Maximum login attempts per client per window"
    )
    RATE_LIMIT_LOGIN_WINDOW_SECONDS: int = Field(
        default=900,
        description="Login rate limit window"
    )
    TRUSTED_PROXIES: list = Field(
        default=[],
        description="Proxy addresses whose X-Forwarded-For header identifies the client"
    )

    # Application
    DEBUG: bool = Field(
        default=False,
        description="Enable debug mode"
    )
    LOG_LEVEL: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )
    API_PREFIX: str = Field(
        default="/api",
        description="API route prefix"
    )
    CORS_ORIGINS: list = Field(
        default=["*"],
        description="Allowed CORS origins"
    )

    @field_validator("SECRET_KEY")
    @classmethod
    def validate_secret_key(cls, v: str, info: ValidationInfo) -> str:
        """Ensure secret key is changed in production."""
        if info.data.get("ENVIRONMENT") == "production" and v == "change-me-in-production":
            raise ValueError("SECRET_KEY must be changed in production environment")
        return v

    @field_validator("CLEANUP_INTERVAL_SECONDS")
    @classmethod
    def validate_cleanup_interval(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("CLEANUP_INTERVAL_SECONDS must be positive")
        return v

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.ENVIRONMENT == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.ENVIRONMENT == "production"


# Global settings instance
settings = Settings()


def validate_settings():
    """
    Validates critical settings on application startup.
    Raises ValueError if any required setting is missing or invalid.
    """
    errors = []

    if not settings.MONGODB_URL:
        errors.append("MONGODB_URL is required")

    if not settings.MONGODB_DB_NAME:
        errors.append("MONGODB_DB_NAME is required")

    if settings.JWT_EXPIRE_DAYS <= 0:
        errors.append("JWT_EXPIRE_DAYS must be positive")

    # Production-specific validations
    if settings.is_production:
        if "*" in settings.CORS_ORIGINS:
            errors.append("CORS_ORIGINS must list explicit origins in production")
        if len(settings.SECRET_KEY) < 32:
            errors.append("SECRET_KEY must be at least 32 characters in production")
        if not settings.GOOGLE_CLIENT_ID:
            errors.append("GOOGLE_CLIENT_ID is required in production")

    if errors:
        raise ValueError(f"Configuration validation failed: {', '.join(errors)}")

    return True
