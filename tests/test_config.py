# tests/test_config.py
"""Tests for application settings."""

import os
from zoneinfo import ZoneInfo

from schedbot.config import Settings


class TestSettings:
    """Tests for Settings."""

    def test_defaults(self, monkeypatch):
        """Test default values without environment overrides."""
        for key in list(os.environ):
            if key.startswith("SCHEDBOT_"):
                monkeypatch.delenv(key)

        config = Settings(_env_file=None)

        assert config.timezone == "Asia/Ho_Chi_Minh"
        assert config.misfire_grace_time == 300
        assert config.api_cache_ttl == 300
        assert config.handler_modules == []
        assert config.resolved_store_path == os.path.join("data", "schedules.json")
        assert config.resolved_media_dir == os.path.join("data", "media")
        assert config.tz == ZoneInfo("Asia/Ho_Chi_Minh")

    def test_environment_overrides(self, monkeypatch, temp_data_dir):
        """Test SCHEDBOT_ prefixed environment variables."""
        monkeypatch.setenv("SCHEDBOT_DATA_DIR", temp_data_dir)
        monkeypatch.setenv("SCHEDBOT_TIMEZONE", "UTC")
        monkeypatch.setenv("SCHEDBOT_HANDLER_MODULES", '["myproject.handlers"]')
        monkeypatch.setenv("SCHEDBOT_API_RETRIES", "5")

        config = Settings(_env_file=None)

        assert config.resolved_store_path == os.path.join(temp_data_dir, "schedules.json")
        assert config.tz == ZoneInfo("UTC")
        assert config.handler_modules == ["myproject.handlers"]
        assert config.api_retries == 5

    def test_explicit_paths_win(self, monkeypatch):
        """Test that explicit store and media paths override data_dir."""
        monkeypatch.setenv("SCHEDBOT_STORE_PATH", "/srv/jobs.json")
        monkeypatch.setenv("SCHEDBOT_MEDIA_DIR", "/srv/media")

        config = Settings(_env_file=None)

        assert config.resolved_store_path == "/srv/jobs.json"
        assert config.resolved_media_dir == "/srv/media"
