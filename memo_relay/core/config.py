"""
Application configuration using 12-factor environment variables.
"""
from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""
    
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )
    
    # Application
    app_name: str = Field(default="Memo Relay")
    app_version: str = Field(default="1.0.0")
    debug: bool = Field(default=False)
    
    # Server
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000)
    
    # Security
    channel_secret: Optional[str] = Field(default=None, description="HMAC-SHA256 secret shared with the chat platform")
    api_token: Optional[str] = Field(default=None, description="Bearer token for the pull/ack consumer")
    
    # Storage
    database_url: str = Field(default="sqlite:///./data/relay.db")
    message_ttl_seconds: int = Field(default=864000, ge=1)  # 10 days
    
    # Pull
    pull_default_limit: int = Field(default=50, ge=1)
    pull_max_limit: int = Field(default=1000, ge=1)
    
    # Logging
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json")  # json or text
    
    @property
    def is_channel_secret_configured(self) -> bool:
        """Check if the webhook signing secret is configured."""
        return bool(self.channel_secret)
    
    @property
    def is_api_token_configured(self) -> bool:
        return bool(self.api_token)


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
