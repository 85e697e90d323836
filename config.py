"""
Application configuration via pydantic-settings.

All settings are loaded from environment variables (and .env file).

The pixel base endpoint defaults to ``{APP_URL}/pixel``; set PIXEL_URL to
serve pixels from a different host (e.g. a dedicated tracking subdomain).
"""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class PixelSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # None means "derive from AppSettings.app_url"
    pixel_url: Optional[str] = None
    pixel_size: Literal["1x1", "hidden"] = "1x1"
    pixel_position: Literal["top", "bottom"] = "bottom"
    pixel_id_prefix: str = "px_"


class StoreSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # memory is single-instance only; use redis or mongo when running replicas
    store_backend: Literal["memory", "redis", "mongo"] = "memory"
    store_lock_shards: int = 64

    mongodb_uri: Optional[str] = None
    db_name: str = "pixel-tracker"
    tracking_collection: str = "tracking_records"


class RedisSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Optional; without Redis there is no open-event fan-out
    redis_uri: Optional[str] = None
    redis_key_prefix: str = "pixel"
    open_events_channel: str = "tracking_events"


class LoggingSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    log_level: str = "INFO"
    log_format: str = "console"  # "json" in production


class SentrySettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    sentry_dsn: str = ""
    sentry_send_pii: bool = False
    sentry_traces_sample_rate: float = 0.1
    sentry_profile_sample_rate: float = 0.05


class AppSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Core
    env: str = "development"
    app_url: str = "http://localhost:8000"
    app_name: str = "pixel-tracker"

    cors_origins: list[str] = ["*"]

    # GeoIP database paths (configurable for self-hosters)
    geoip_country_db: str = "misc/GeoLite2-Country.mmdb"
    geoip_city_db: str = "misc/GeoLite2-City.mmdb"

    # OpenAPI docs URL (None disables the docs UI in production)
    docs_url: Optional[str] = "/docs"

    # Sub-configs (composed via model_validator below)
    pixel: Optional[PixelSettings] = None
    store: Optional[StoreSettings] = None
    redis: Optional[RedisSettings] = None
    logging: Optional[LoggingSettings] = None
    sentry: Optional[SentrySettings] = None

    @model_validator(mode="after")
    def _populate_sub_configs(self) -> "AppSettings":
        if self.pixel is None:
            self.pixel = PixelSettings()
        if self.store is None:
            self.store = StoreSettings()
        if self.redis is None:
            self.redis = RedisSettings()
        if self.logging is None:
            self.logging = LoggingSettings()
        if self.sentry is None:
            self.sentry = SentrySettings()
        return self

    @property
    def is_production(self) -> bool:
        return self.env == "production"

    @property
    def pixel_endpoint(self) -> str:
        """Base URL embedded in every injected pixel."""
        if self.pixel.pixel_url:
            return self.pixel.pixel_url
        return f"{self.app_url.rstrip('/')}/pixel"
