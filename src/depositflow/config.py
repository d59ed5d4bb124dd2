"""Application configuration using pydantic-settings."""

from decimal import Decimal
from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ======================
    # Database
    # ======================
    database_url: str = Field(
        default="sqlite+aiosqlite:///./data/depositflow.db",
        description="Database connection URL",
    )

    # ======================
    # API
    # ======================
    api_host: str = Field(default="0.0.0.0", description="API server host")
    api_port: int = Field(default=8000, description="API server port")

    # ======================
    # Environment
    # ======================
    environment: str = Field(default="development", description="Runtime environment")
    debug: bool = Field(default=True, description="Enable debug mode")

    # ======================
    # Admin / review
    # ======================
    admin_token: str = Field(default="", description="Admin API token for review endpoints")

    # ======================
    # Deposit arithmetic
    # ======================
    # Counted in units of the asset's amount precision (1 = 0.01 at precision 2)
    deposit_rounding_buffer: int = Field(
        default=1,
        ge=0,
        description="Smallest units added on top of the ceiling when suggesting a required gross",
    )
    activation_tolerance: int = Field(
        default=1,
        ge=0,
        description="Smallest units of net shortfall absorbed when checking activation deposits",
    )

    # ======================
    # Lifecycle
    # ======================
    auto_complete_confirmed: bool = Field(
        default=False,
        description="Complete deposits as soon as the watcher reports enough confirmations",
    )
    stale_deposit_hours: int = Field(
        default=72, description="Age after which an open deposit is reported as stale"
    )

    # ======================
    # External collaborators
    # ======================
    confirmation_webhook_secret: Optional[str] = Field(
        default=None, description="HMAC secret shared with the chain watcher"
    )
    notification_webhook_url: Optional[str] = Field(
        default=None, description="Endpoint receiving deposit lifecycle events (email service)"
    )
    ledger_webhook_url: Optional[str] = Field(
        default=None, description="Endpoint of the core ledger receiving credit/debit instructions"
    )
    outbox_interval: int = Field(
        default=30, description="Seconds between ledger outbox forwarding cycles"
    )
    http_timeout: float = Field(default=10.0, description="Timeout for outbound HTTP calls")

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment.lower() == "production"

    def get_safe_dict(self) -> dict:
        """Return settings dict with secrets redacted."""
        return {
            "environment": self.environment,
            "debug": self.debug,
            "api_host": self.api_host,
            "api_port": self.api_port,
            "database_url": self._redact_url(self.database_url),
            "admin_token": "***" if self.admin_token else "(not set)",
            "deposits": {
                "rounding_buffer": str(self.deposit_rounding_buffer),
                "activation_tolerance": str(self.activation_tolerance),
                "auto_complete_confirmed": self.auto_complete_confirmed,
                "stale_deposit_hours": self.stale_deposit_hours,
            },
            "collaborators": {
                "confirmation_webhook_secret": (
                    "***" if self.confirmation_webhook_secret else "(not set)"
                ),
                "notification_webhook_url": self.notification_webhook_url or "(log only)",
                "ledger_webhook_url": self.ledger_webhook_url or "(not set)",
            },
        }

    @staticmethod
    def _redact_url(url: str) -> str:
        """Redact sensitive parts of database URL."""
        if "://" in url and "@" in url:
            proto, rest = url.split("://", 1)
            if "@" in rest:
                creds, host = rest.rsplit("@", 1)
                if ":" in creds:
                    user, _ = creds.split(":", 1)
                    return f"{proto}://{user}:***@{host}"
        return url


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
