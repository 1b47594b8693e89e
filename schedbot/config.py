# schedbot/config.py
"""Application configuration using pydantic-settings.

Provides a centralized Settings class for all environment variables.
Every variable is prefixed with SCHEDBOT_ (e.g. SCHEDBOT_TIMEZONE).
"""

import os
from zoneinfo import ZoneInfo

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    All settings are loaded from .env file and environment variables.
    Environment variables take precedence over .env file values.
    """

    # Storage
    data_dir: str = "data"
    store_path: str = ""  # Defaults to <data_dir>/schedules.json
    media_dir: str = ""  # Defaults to <data_dir>/media

    # Scheduling
    timezone: str = "Asia/Ho_Chi_Minh"
    misfire_grace_time: int = 60 * 5

    # Remote data calls
    api_cache_ttl: int = 300  # Seconds
    api_timeout: float = 10.0  # Seconds
    api_retries: int = 3

    # Media downloads
    media_download_timeout: float = 30.0

    # Custom handler modules imported at startup (JSON list in env)
    handler_modules: list[str] = []

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"  # "json" or "text"

    model_config = SettingsConfigDict(
        env_prefix="SCHEDBOT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",  # Ignore unknown env vars
        case_sensitive=False,  # Allow case-insensitive env var names
    )

    @property
    def resolved_store_path(self) -> str:
        """Get the job store document path.

        Returns:
            SCHEDBOT_STORE_PATH if set, otherwise <data_dir>/schedules.json.
        """
        return self.store_path or os.path.join(self.data_dir, "schedules.json")

    @property
    def resolved_media_dir(self) -> str:
        """Get the managed media directory.

        Returns:
            SCHEDBOT_MEDIA_DIR if set, otherwise <data_dir>/media.
        """
        return self.media_dir or os.path.join(self.data_dir, "media")

    @property
    def tz(self) -> ZoneInfo:
        """Get the configured timezone as a ZoneInfo."""
        return ZoneInfo(self.timezone)


# Singleton instance - import this in your code
settings = Settings()
