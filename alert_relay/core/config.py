"""
Environment configuration — single source of truth for all settings.

Uses pydantic-settings for type-safe config with .env file support.
All values have sensible defaults for local development; only the
upstream API token and the Telegram bot token are needed for a real
deployment.

Usage:
    from alert_relay.core.config import settings
    print(settings.ALERTS_API_URL)
"""

from __future__ import annotations

from functools import lru_cache
from typing import Annotated, List, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


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
    )

    # ── Application ──
    APP_NAME: str = "Air Alert Relay"
    APP_VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"  # development | staging | production
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"  # DEBUG | INFO | WARNING | ERROR | CRITICAL

    # ── Server ──
    HOST: str = "0.0.0.0"
    PORT: int = 3002

    # ── CORS ──
    CORS_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://localhost:3002",
    ]
    CORS_ALLOW_ALL: bool = True  # False in production

    # ── Database ──
    DATABASE_URL: str = "sqlite+aiosqlite:///./alert_relay.db"
    DATABASE_POOL_SIZE: int = 10  # ignored for SQLite
    DATABASE_ECHO: bool = False  # log SQL queries

    # ── Alert source (alerts.in.ua) ──
    ALERTS_API_URL: str = "https://api.alerts.in.ua/v1/alerts/active.json"
    ALERTS_API_TOKEN: Optional[str] = None
    ALERT_CACHE_TTL_SECONDS: float = 30.0
    ALERT_MAX_RETRIES: int = 3
    ALERT_RETRY_BASE_DELAY_MS: int = 1000  # delay = base * 2^attempt
    ALERT_FETCH_TIMEOUT_SECONDS: float = 10.0

    # ── Weather (OpenWeatherMap) ──
    OPENWEATHERMAP_API_KEY: Optional[str] = None
    WEATHER_API_URL: str = "https://api.openweathermap.org/data/2.5/weather"
    WEATHER_TIMEOUT_SECONDS: float = 10.0
    WEATHER_CACHE_TTL_SECONDS: float = 300.0
    WEATHER_LANGUAGE: str = "uk"

    # ── Telegram ──
    TELEGRAM_BOT_TOKEN: Optional[str] = None  # None → simulated sink
    TELEGRAM_API_URL: str = "https://api.telegram.org"
    TELEGRAM_TIMEOUT_SECONDS: float = 15.0
    TELEGRAM_CHAT_IDS: Annotated[List[str], NoDecode] = []  # broadcast groups
    MEDIA_DIR: str = "media/images"

    # ── Polling ──
    POLLING_ENABLED: bool = True
    POLL_INTERVAL_SECONDS: float = 30.0
    BROADCAST_INTERVAL_SECONDS: float = 30.0
    CYCLE_TIMEOUT_SECONDS: float = 60.0
    DISPATCH_CONCURRENCY: int = 8
    SHUTDOWN_GRACE_SECONDS: float = 0.5

    # ── Aggregate (broadcast) watch ──
    TARGET_REGION_UID: str = "24"
    TARGET_REGION_NAME: str = "Черкаська область"

    # ── Subscriber store ──
    SUBSCRIBER_CACHE_TTL_SECONDS: float = 5.0

    @field_validator("TELEGRAM_CHAT_IDS", mode="before")
    @classmethod
    def _split_chat_ids(cls, value):
        # TELEGRAM_CHAT_IDS=-100123,-100456
        if isinstance(value, str):
            return [part.strip() for part in value.split(",") if part.strip()]
        return value

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    @property
    def telegram_enabled(self) -> bool:
        return bool(self.TELEGRAM_BOT_TOKEN)


@lru_cache()
def get_settings() -> Settings:
    """Cached settings singleton."""
    return Settings()


settings = get_settings()
