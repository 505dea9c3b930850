"""
Configuration management for the DigiNum payments backend.

Loads settings from .env via pydantic-settings.

Security notes:
    - Vendor secrets are only ever read here; they are never echoed back in
      API responses or error payloads.
    - validate_production_settings() refuses TEST_MODE and wildcard CORS in
      production.
"""
import logging

from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # ── Database ────────────────────────────────────────────────────
    database_url: str = "sqlite:///./data/diginum.db"

    # ── Application ─────────────────────────────────────────────────
    environment: str = "development"
    # Substitute a synthetic successful payment link instead of calling
    # the real vendor (sandbox/demo without live credentials).
    test_mode: bool = False
    default_account_currency: str = "USD"
    frontend_url: str = "http://localhost:5173"
    backend_url: str = "http://localhost:8000"

    # ── Auth (JWT) ──────────────────────────────────────────────────
    jwt_secret: str = ""
    jwt_issuer: str = "diginum-api"
    jwt_access_ttl_minutes: int = 60

    # ── Outbound vendor HTTP ────────────────────────────────────────
    vendor_timeout_seconds: float = 15.0
    vendor_max_retries: int = 3
    vendor_backoff_base: float = 0.5    # seconds, doubled per attempt
    vendor_backoff_max: float = 8.0
    blocking_pool_size: int = 4         # threads for the Stripe SDK and SMTP

    # ── Swychr (AccountPe payin) ────────────────────────────────────
    swychr_email: str = ""
    swychr_password: str = ""
    swychr_base_url: str = "https://api.accountpe.com/api/payin"
    swychr_webhook_secret: str = ""

    # ── Fapshi ──────────────────────────────────────────────────────
    fapshi_public_key: str = ""
    fapshi_secret_key: str = ""
    fapshi_base_url: str = "https://api.fapshi.com/v1"
    fapshi_webhook_secret: str = ""

    # ── Campay ──────────────────────────────────────────────────────
    campay_username: str = ""
    campay_password: str = ""
    campay_base_url: str = "https://demo.campay.net/api"
    campay_webhook_key: str = ""

    # ── Stripe ──────────────────────────────────────────────────────
    stripe_secret_key: str = ""
    stripe_webhook_secret: str = ""
    stripe_webhook_tolerance: int = 300

    # ── MTN MoMo (collections) ──────────────────────────────────────
    mtn_momo_subscription_key: str = ""
    mtn_momo_user_id: str = ""
    mtn_momo_api_key: str = ""
    mtn_momo_environment: str = "sandbox"   # sandbox | production
    mtn_momo_base_url: str = "https://sandbox.momodeveloper.mtn.com"
    mtn_momo_currency: str = "EUR"          # sandbox only accepts EUR

    # ── Exchange rates ──────────────────────────────────────────────
    fixer_api_key: str = ""
    fixer_base_url: str = "https://data.fixer.io/api"
    exchange_rate_ttl_hours: int = 24

    # ── Notifications (SMTP) ────────────────────────────────────────
    smtp_host: str = ""
    smtp_port: int = 587
    smtp_username: str = ""
    smtp_password: str = ""
    smtp_sender: str = "DigiNum <no-reply@diginum.app>"

    # ── CORS ────────────────────────────────────────────────────────
    cors_origins: str = "http://localhost:5173,http://127.0.0.1:5173,http://localhost:3000,http://127.0.0.1:3000"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # allow unknown .env keys without crashing
    )

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins from comma-separated string."""
        return [origin.strip() for origin in self.cors_origins.split(",")]

    @property
    def payment_callback_url(self) -> str:
        return f"{self.backend_url.rstrip('/')}/webhooks"

    @property
    def payment_return_url(self) -> str:
        return f"{self.frontend_url.rstrip('/')}/payment/success"

    def validate_production_settings(self):
        """
        Validate settings for production safety.

        Called during app startup.
        """
        if self.environment == "production":
            if "*" in self.cors_origins:
                raise ValueError(
                    "CORS_ORIGINS must not contain '*' in production. "
                    "Set explicit allowed origins."
                )
            if self.test_mode:
                raise ValueError(
                    "TEST_MODE must be false in production. "
                    "Test mode returns synthetic payment links."
                )
            if not self.jwt_secret:
                raise ValueError(
                    "JWT_SECRET must be set in production. "
                    "It is used to sign access tokens for API callers."
                )
            logger.info("✅ Production settings validated")
        else:
            warnings = []
            if self.test_mode:
                warnings.append("TEST_MODE=true (synthetic payment links)")
            if "*" in self.cors_origins:
                warnings.append("CORS_ORIGINS contains '*' (open access)")
            for w in warnings:
                logger.warning(f"⚠️  {w}")


# Global settings instance
settings = Settings()
