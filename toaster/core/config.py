"""Application configuration using Pydantic Settings"""

import logging
from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

TOKEN_FILENAME = ".tokens.json"
STATE_FILENAME = ".oauth-state.json"
CHAT_FILTERS_FILENAME = ".chat-filters.json"

BROADCASTER_SCOPES = [
    "channel:read:subscriptions",  # Subscription + gift EventSub
    "channel:read:redemptions",  # Channel points EventSub
    "bits:read",  # Cheer EventSub
    "moderator:read:followers",  # Follow EventSub (v2)
    "chat:read",  # IRC chat
]


class Settings(BaseSettings):
    """Application settings with environment variable support"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Self-hosted mode
    twitch_client_id: str = Field(default="", description="Twitch OAuth Client ID")
    twitch_client_secret: str = Field(default="", description="Twitch OAuth Client Secret")

    # Delegated-proxy mode
    oauth_proxy_url: str = Field(default="", description="Base URL of the OAuth proxy")

    # Bootstrap tokens (used only when no token file exists)
    twitch_access_token: str = Field(default="", description="Initial user access token")
    twitch_refresh_token: str = Field(default="", description="Initial user refresh token")

    redirect_uri: str = Field(
        default="http://localhost:3000/auth/callback", description="OAuth redirect URI"
    )

    # Local files
    data_dir: Path = Field(default_factory=Path.cwd, description="Directory for local state")

    # Behaviour
    event_history_size: int = Field(default=50, ge=1, description="Events kept in history")
    token_refresh_margin: int = Field(
        default=300, ge=0, description="Refresh tokens this many seconds before expiry"
    )
    oauth_state_ttl: int = Field(default=600, ge=1, description="OAuth state lifetime in seconds")

    # Server
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=3000, description="Server port")

    # Environment
    environment: str = Field(default="development", description="Environment name")
    log_level: str = Field(default="INFO", description="Logging level")

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

    @field_validator("oauth_proxy_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @property
    def token_file(self) -> Path:
        return self.data_dir / TOKEN_FILENAME

    @property
    def state_file(self) -> Path:
        return self.data_dir / STATE_FILENAME

    @property
    def chat_filters_file(self) -> Path:
        return self.data_dir / CHAT_FILTERS_FILENAME

    @property
    def is_self_hosted(self) -> bool:
        """Confidential client credentials are available locally"""
        return bool(self.twitch_client_id and self.twitch_client_secret)

    @property
    def is_proxy_mode(self) -> bool:
        """No local secret, but an OAuth proxy is configured"""
        return not self.is_self_hosted and bool(self.oauth_proxy_url)

    @property
    def is_development(self) -> bool:
        """Check if running in development environment"""
        return self.environment.lower() == "development"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
