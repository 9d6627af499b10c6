"""Application configuration using Pydantic Settings"""

import logging
from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

# Scopes requested per credential tier during the OAuth flow
USER_SCOPES = [
    "moderator:read:followers",  # channel.follow v2
    "channel:read:subscriptions",  # Subscription EventSub
    "bits:read",  # Cheer EventSub
]

CHAT_SCOPES = [
    "user:read:chat",
    "user:write:chat",
]


class Settings(BaseSettings):
    """Application settings with environment variable support"""

    model_config = SettingsConfigDict(
        env_file=Path.cwd() / ".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Twitch OAuth
    client_id: str = Field(default="", description="Twitch OAuth Client ID")
    client_secret: str = Field(default="", description="Twitch OAuth Client Secret")

    # EventSub
    webhook_secret: str = Field(default="", description="Shared secret for EventSub webhooks")
    public_url: str = Field(default="", description="Public base URL Twitch delivers to")
    channel_login: str = Field(default="", description="Channel login to register events for")
    broadcaster_id: str = Field(default="", description="Channel user ID (skips login lookup)")
    message_dedupe_ttl: int = Field(
        default=600, description="Seconds a delivered message ID is remembered"
    )

    # Credential renewal
    renewal_interval: int = Field(default=900, description="Seconds between renewal ticks")
    renewal_fraction: float = Field(
        default=0.75, description="Fraction of a credential's lifetime before renewal"
    )

    # Database (optional; memory store when empty)
    database_url: str = Field(default="", description="PostgreSQL database URL")
    database_ssl: bool = Field(default=False, description="Require SSL for PostgreSQL")

    # Server
    frontend_url: str = Field(default="http://localhost:3000", description="Overlay origin")
    environment: str = Field(default="development", description="Environment name")
    log_level: str = Field(default="INFO", description="Logging level")
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port")

    @field_validator("database_url")
    @classmethod
    def validate_database_url(cls, v: str) -> str:
        """Validate database URL starts with postgresql:// when set"""
        if v and not v.startswith("postgresql://"):
            raise ValueError("DATABASE_URL must start with 'postgresql://'")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is a valid logging level"""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in valid_levels:
            logger.warning(f"Invalid log level '{v}', defaulting to INFO")
            return "INFO"
        return v_upper

    @field_validator("renewal_fraction")
    @classmethod
    def validate_renewal_fraction(cls, v: float) -> float:
        if not 0 < v < 1:
            raise ValueError("RENEWAL_FRACTION must be between 0 and 1")
        return v

    @property
    def callback_url(self) -> str:
        """EventSub webhook callback URL"""
        return f"{self.public_url.rstrip('/')}/webhook/twitch"

    @property
    def oauth_redirect_uri(self) -> str:
        return f"{self.public_url.rstrip('/')}/auth/twitch/callback"

    @property
    def cors_origins(self) -> list[str]:
        """Get CORS allowed origins"""
        return [self.frontend_url]

    @property
    def is_development(self) -> bool:
        """Check if running in development environment"""
        return self.environment.lower() == "development"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
