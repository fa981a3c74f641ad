"""OAuth proxy configuration"""

import logging
from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class ProxySettings(BaseSettings):
    """Holds the confidential client credentials on behalf of proxy-mode users"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    twitch_client_id: str = Field(default="", description="Twitch OAuth Client ID (public)")
    twitch_client_secret: str = Field(default="", description="Twitch OAuth Client Secret")

    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8080, description="Server port")

    environment: str = Field(default="production", description="Environment name")
    log_level: str = Field(default="INFO", description="Logging level")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in valid_levels:
            logger.warning(f"Invalid log level '{v}', defaulting to INFO")
            return "INFO"
        return v_upper

    @property
    def is_configured(self) -> bool:
        return bool(self.twitch_client_id and self.twitch_client_secret)


@lru_cache
def get_proxy_settings() -> ProxySettings:
    return ProxySettings()
