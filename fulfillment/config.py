"""
Application configuration using pydantic-settings.
Loads from environment variables / .env file.
"""

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "ticket-fulfillment"
    app_env: Literal["development", "staging", "production"] = "development"
    debug: bool = False

    # API Server
    host: str = "0.0.0.0"
    port: int = 8000

    # Postgres
    database_url: str = ""

    # Stripe
    stripe_secret_key: str = ""
    stripe_webhook_secret: str = ""
    workshop_voucher_product_id: str = ""

    # Resend (email)
    resend_api_key: str = ""
    resend_api_url: str = "https://api.resend.com"
    resend_audience_id: str = ""
    email_from: str = "ZurichJS Conference <hello@zurichjs.com>"
    email_reply_to: str = "hello@zurichjs.com"
    support_email: str = "hello@zurichjs.com"
    # Resend allows 2 requests/second
    email_send_delay_ms: int = 600

    # PostHog (analytics)
    posthog_api_key: str = ""
    posthog_host: str = "https://eu.i.posthog.com"

    # Public site and order links
    base_url: str = "https://conf.zurichjs.com"
    order_token_secret: str = "change-me"

    # Conference details used in confirmations
    conference_name: str = "ZurichJS Conference 2026"
    conference_date: str = "September 11, 2026"
    venue_name: str = "Technopark Zürich"
    venue_address: str = "Technoparkstrasse 1, 8005 Zürich"

    @property
    def is_development(self) -> bool:
        return self.app_env == "development"

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
