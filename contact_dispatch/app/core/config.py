"""
Environment configuration — single source of truth for all settings.

Uses pydantic-settings for type-safe config with .env file support.
Every provider setting is optional: a provider whose credentials are
missing is simply left out of the registry, so an incomplete
environment never stops the process from starting.

Usage:
    from contact_dispatch.app.core.config import settings
    print(settings.RECIPIENT_EMAIL)
"""

from __future__ import annotations

from functools import lru_cache
from typing import List, Optional

from pydantic import AliasChoices, Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application-wide settings loaded from environment variables or .env file.

    Precedence: env var > .env file > default value
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
        populate_by_name=True,
    )

    # ── Application ──
    APP_NAME: str = "Contact Dispatch"
    APP_VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"  # development | staging | production
    LOG_LEVEL: str = "INFO"  # DEBUG | INFO | WARNING | ERROR | CRITICAL

    # ── Server ──
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # ── Addresses ──
    RECIPIENT_EMAIL: Optional[str] = None
    BCC_EMAIL: Optional[str] = None
    FROM_EMAIL: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("FROM_EMAIL", "SENDGRID_FROM"),
    )
    FROM_NAME: Optional[str] = None

    # ── SendGrid (HTTP API) ──
    SENDGRID_API_KEY: Optional[SecretStr] = None
    SENDGRID_API_BASE_URL: str = "https://api.sendgrid.com"
    SENDGRID_TIMEOUT_SECONDS: float = 10.0

    # ── Mailgun (HTTP API) ──
    MAILGUN_API_KEY: Optional[SecretStr] = None
    MAILGUN_DOMAIN: Optional[str] = None
    MAILGUN_FROM_EMAIL: Optional[str] = None
    MAILGUN_API_BASE_URL: str = "https://api.mailgun.net"
    MAILGUN_TIMEOUT_SECONDS: float = 10.0

    # ── SMTP relay ──
    SMTP_HOST: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("SMTP_HOST", "EMAIL_HOST"),
    )
    SMTP_FALLBACK_HOST: Optional[str] = None
    SMTP_PORT: int = Field(
        default=587, validation_alias=AliasChoices("SMTP_PORT", "EMAIL_PORT"),
    )
    SMTP_USER: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("SMTP_USER", "EMAIL_USER"),
    )
    SMTP_PASSWORD: Optional[SecretStr] = Field(
        default=None, validation_alias=AliasChoices("SMTP_PASSWORD", "EMAIL_PASS"),
    )
    SMTP_FROM: Optional[str] = None  # defaults to SMTP_USER (authenticated mailbox)
    SMTP_SECURITY: str = "starttls"  # starttls | ssl; no plaintext mode
    SMTP_VERIFY_BEFORE_SEND: bool = False
    SMTP_CONNECT_TIMEOUT: float = 15.0  # connect + greeting
    SMTP_SOCKET_TIMEOUT: float = 20.0
    SMTP_TLS_INSECURE_SKIP_VERIFY: bool = False  # local development only

    # ── Contact form ──
    CONTACT_AUTO_REPLY: bool = False
    CONTACT_SUBJECT_PREFIX: str = "New Contact: "

    # ── Request gate ──
    ALLOWED_ORIGINS: str = ""  # comma separated; empty = any origin
    FRONTEND_URL: Optional[str] = None
    RATE_LIMIT_WINDOW_SECONDS: int = 15 * 60
    RATE_LIMIT_MAX_REQUESTS: int = 5
    RATE_LIMIT_BACKEND: str = "memory"  # memory | redis
    REDIS_URL: str = "redis://localhost:6379/0"
    TRUSTED_PROXIES: str = ""  # comma separated peer addresses allowed to set X-Forwarded-For

    # ── Diagnostics ──
    DEBUG_EMAIL: bool = False  # echo the last provider error to clients
    DEBUG_ROUTES_ENABLED: Optional[bool] = None  # unset = on outside production

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    @property
    def is_development(self) -> bool:
        return self.ENVIRONMENT == "development"

    @property
    def allowed_origins(self) -> List[str]:
        """Allow-list of browser origins; an empty list means any origin."""
        origins = [o.strip() for o in self.ALLOWED_ORIGINS.split(",") if o.strip()]
        if self.FRONTEND_URL and self.FRONTEND_URL.strip() not in origins:
            origins.append(self.FRONTEND_URL.strip())
        return origins

    @property
    def debug_routes_enabled(self) -> bool:
        if self.DEBUG_ROUTES_ENABLED is None:
            return not self.is_production
        return self.DEBUG_ROUTES_ENABLED

    @property
    def trusted_proxies(self) -> List[str]:
        return [p.strip() for p in self.TRUSTED_PROXIES.split(",") if p.strip()]

    @property
    def smtp_skip_tls_verify(self) -> bool:
        """Certificate checks may only be relaxed outside production."""
        return self.SMTP_TLS_INSECURE_SKIP_VERIFY and not self.is_production


@lru_cache()
def get_settings() -> Settings:
    """Cached settings singleton."""
    return Settings()


settings = get_settings()
