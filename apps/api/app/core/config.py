"""Application configuration for the room broker."""
from __future__ import annotations

from functools import lru_cache
from typing import Annotated

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    app_env: str = Field(default="development")
    log_level: str = Field(default="INFO")
    cors_allow_origins: Annotated[list[str], NoDecode] = Field(default_factory=lambda: ["*"])

    app_access_key: str = Field(default="")
    app_secret_key: str = Field(default="")
    template_id: str = Field(default="")
    hms_api_base: str = Field(default="https://api.100ms.live/v2")
    upstream_timeout_seconds: float = Field(default=10.0, gt=0)

    token_refresh_hours: float = Field(default=12, gt=0)
    token_expiry_hours: float = Field(default=24, gt=0)

    rate_limit_window_ms: int = Field(default=600_000, gt=0)
    max_requests_per_window: int = Field(default=300, gt=0)

    room_name_prefix: str = Field(default="broker-room")
    room_timeout_ms: int = Field(default=300_000, gt=0)
    inactive_check_interval_seconds: float = Field(default=60, gt=0)
    creator_role: str = Field(default="creator")
    viewer_role: str = Field(default="viewer")

    neynar_api_key: str = Field(default="")
    neynar_api_base: str = Field(default="https://api.neynar.com")

    @field_validator("cors_allow_origins", mode="before")
    @classmethod
    def _split_origins(cls, value: object) -> object:
        """Allow comma-separated env values for CORS origins."""

        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        return value

    @property
    def rate_limit_window_seconds(self) -> float:
        return self.rate_limit_window_ms / 1000

    @property
    def room_timeout_seconds(self) -> float:
        return self.room_timeout_ms / 1000


@lru_cache
def get_settings() -> Settings:
    """Return cached settings instance."""

    return Settings()


settings = get_settings()
