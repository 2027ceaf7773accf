"""Application configuration using Pydantic Settings."""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        env_nested_delimiter="__",
    )

    # Application
    app_name: str = "Communication Triage"
    app_version: str = "1.0.0"
    debug: bool = False
    environment: Literal["development", "staging", "production"] = "development"
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Public URL of this server, used to build default OAuth redirect URIs
    public_base_url: str = Field(default="http://localhost:3000", alias="PUBLIC_BASE_URL")

    # Database
    database_url: str | None = Field(default=None, alias="DATABASE_URL")
    database_echo: bool = False  # Log SQL queries

    # Encryption key for stored refresh/bot tokens
    encryption_key: str | None = Field(
        default=None,
        alias="ENCRYPTION_KEY",
        description="Fernet key for encrypting provider tokens. Generate with: python -c 'from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())'"
    )

    @property
    def encryption_enabled(self) -> bool:
        """Check if encryption is configured."""
        return bool(self.encryption_key)

    # Gmail Integration
    gmail_client_id: str | None = Field(default=None, alias="GMAIL_CLIENT_ID")
    gmail_client_secret: str | None = Field(default=None, alias="GMAIL_CLIENT_SECRET")
    gmail_redirect_uri_override: str | None = Field(default=None, alias="GMAIL_REDIRECT_URI")
    gmail_pubsub_topic: str | None = Field(default=None, alias="GMAIL_PUBSUB_TOPIC")
    gmail_pubsub_verification_token: str | None = Field(
        default=None, alias="GMAIL_PUBSUB_VERIFICATION_TOKEN"
    )
    gmail_sync_default_max_results: int = Field(
        default=10, ge=1, le=500, alias="GMAIL_SYNC_DEFAULT_MAX_RESULTS"
    )
    gmail_webhook_fallback_max_results: int = Field(
        default=5, ge=1, le=100, alias="GMAIL_WEBHOOK_FALLBACK_MAX_RESULTS"
    )

    @property
    def gmail_enabled(self) -> bool:
        """Check if Gmail OAuth is configured."""
        return bool(self.gmail_client_id and self.gmail_client_secret)

    @property
    def gmail_redirect_uri(self) -> str:
        return self.gmail_redirect_uri_override or f"{self.public_base_url}/auth/google/callback"

    # Slack Integration
    slack_client_id: str | None = Field(default=None, alias="SLACK_CLIENT_ID")
    slack_client_secret: str | None = Field(default=None, alias="SLACK_CLIENT_SECRET")
    slack_signing_secret: str | None = Field(default=None, alias="SLACK_SIGNING_SECRET")
    slack_redirect_uri_override: str | None = Field(default=None, alias="SLACK_REDIRECT_URI")

    @property
    def slack_enabled(self) -> bool:
        """Check if Slack OAuth is configured."""
        return bool(self.slack_client_id and self.slack_client_secret)

    @property
    def slack_redirect_uri(self) -> str:
        return self.slack_redirect_uri_override or f"{self.public_base_url}/auth/slack/callback"

    # Webhooks
    signature_tolerance_seconds: int = Field(
        default=60 * 5, ge=1, alias="SIGNATURE_TOLERANCE_SECONDS"
    )

    # Outbound provider calls
    http_timeout_seconds: float = Field(default=10.0, gt=0, alias="HTTP_TIMEOUT_SECONDS")

    @property
    def database_configured(self) -> bool:
        return bool(self.database_url)

    @property
    def database_url_async(self) -> str:
        """Get async database URL (uses asyncpg for Postgres)."""
        url = self.database_url or "sqlite+aiosqlite:///./triage.db"
        if url.startswith("postgres://"):
            url = url.replace("postgres://", "postgresql://", 1)
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
