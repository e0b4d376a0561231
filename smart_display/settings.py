"""
Configuration settings for the smart display service.

Values come from the environment (optionally from a `.env` file) and can be
overridden by passing keyword arguments, which is what the tests do.
"""
import os
import logging
from functools import lru_cache
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ConfigDict, field_validator, model_validator

load_dotenv()


def _env(key: str, default: Optional[str] = None):
    return lambda: os.getenv(key, default)


def _env_float(key: str, default: str):
    return lambda: float(os.getenv(key, default))


def _env_int(key: str, default: str):
    return lambda: int(os.getenv(key, default))


def _env_bool(key: str, default: str):
    return lambda: os.getenv(key, default).lower() in ("1", "true", "yes")


class Settings(BaseModel):
    """
    Runtime configuration for the service and its integrations.
    """
    # Storage
    database_url: str = Field(
        default_factory=_env("DISPLAY_DB_URL", "sqlite:///./smart_display.db"),
        description="Database URL (sync or async form)"
    )

    # Accounts
    jwt_secret_key: str = Field(
        default_factory=_env("JWT_SECRET_KEY", "smart_display_default_secret"),
        description="HMAC key for issued JWTs"
    )
    jwt_algorithm: str = Field(default_factory=_env("JWT_ALGORITHM", "HS256"))
    access_token_expire_minutes: int = Field(default_factory=_env_int("ACCESS_TOKEN_EXPIRE_MINUTES", "1440"))
    refresh_token_expire_days: int = Field(default_factory=_env_int("REFRESH_TOKEN_EXPIRE_DAYS", "7"))
    cookie_secure: bool = Field(default_factory=_env_bool("COOKIE_SECURE", "false"))

    # Google Calendar OAuth
    google_client_id: Optional[str] = Field(default_factory=_env("GOOGLE_CLIENT_ID"))
    google_client_secret: Optional[str] = Field(default_factory=_env("GOOGLE_CLIENT_SECRET"))
    google_redirect_uri: str = Field(
        default_factory=_env("GOOGLE_REDIRECT_URI", "http://localhost:8000/api/google-calendar/callback")
    )
    google_authorize_url: str = Field(
        default_factory=_env("GOOGLE_AUTHORIZE_URL", "https://accounts.google.com/o/oauth2/v2/auth")
    )
    google_token_url: str = Field(default_factory=_env("GOOGLE_TOKEN_URL", "https://oauth2.googleapis.com/token"))
    google_calendar_api: str = Field(
        default_factory=_env("GOOGLE_CALENDAR_API", "https://www.googleapis.com/calendar/v3")
    )
    oauth_flow_timeout: float = Field(default_factory=_env_float("OAUTH_FLOW_TIMEOUT", "600"))

    # Home Assistant realtime reconnect policy
    ha_reconnect_initial_delay: float = Field(default_factory=_env_float("HA_RECONNECT_INITIAL_DELAY", "1.0"))
    ha_reconnect_max_delay: float = Field(default_factory=_env_float("HA_RECONNECT_MAX_DELAY", "60.0"))
    ha_reconnect_failure_threshold: int = Field(default_factory=_env_int("HA_RECONNECT_FAILURE_THRESHOLD", "10"))

    # HTTP
    http_timeout: float = Field(default_factory=_env_float("HTTP_TIMEOUT", "10.0"))
    public_origin: str = Field(default_factory=_env("PUBLIC_ORIGIN", "http://localhost:3000"))
    cors_allow_origins: List[str] = Field(
        default_factory=lambda: [
            o.strip() for o in os.getenv("CORS_ALLOW_ORIGINS", "http://localhost:3000").split(",") if o.strip()
        ]
    )

    # Misc
    enable_admin: bool = Field(default_factory=_env_bool("ENABLE_ADMIN", "true"))
    debug: bool = Field(default_factory=_env_bool("DEBUG", "false"))
    log_level_name: str = Field(default_factory=_env("LOG_LEVEL", "INFO"))

    model_config = ConfigDict(extra='ignore')

    @field_validator("database_url")
    @classmethod
    def _async_driver(cls, value: str) -> str:
        # The engine is always async: map plain URLs onto their async drivers
        if value.startswith("sqlite:///"):
            return value.replace("sqlite:///", "sqlite+aiosqlite:///", 1)
        if value.startswith("postgresql://"):
            return value.replace("postgresql://", "postgresql+asyncpg://", 1)
        if value.startswith("postgresql+psycopg2://"):
            return value.replace("postgresql+psycopg2://", "postgresql+asyncpg://", 1)
        return value

    @model_validator(mode="after")
    def _check_reconnect_policy(self) -> "Settings":
        if self.ha_reconnect_initial_delay <= 0:
            raise ValueError("ha_reconnect_initial_delay must be positive")
        if self.ha_reconnect_max_delay < self.ha_reconnect_initial_delay:
            raise ValueError("ha_reconnect_max_delay must be >= ha_reconnect_initial_delay")
        if self.ha_reconnect_failure_threshold < 1:
            raise ValueError("ha_reconnect_failure_threshold must be at least 1")
        return self

    @property
    def log_level(self) -> int:
        if self.debug:
            return logging.DEBUG
        level = logging.getLevelName(self.log_level_name.upper())
        return level if isinstance(level, int) else logging.INFO


@lru_cache
def get_settings() -> Settings:
    """Process-wide settings read from the environment."""
    return Settings()
